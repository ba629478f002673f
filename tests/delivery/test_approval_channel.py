"""
Tests for the file-based approval channel.
"""

import json

import pytest

from conftest import SHIFT_ID, WINDOW_START
from shift_app.collaborators import ApprovalDecision, ApprovalRequest
from shift_app.delivery import FileApprovalChannel
from shift_app.errors import ApprovalError
from shift_app.plan.models import PriorityTier


@pytest.fixture
def channel(tmp_path):
    return FileApprovalChannel(tmp_path / "approval")


class TestRequest:

    def test_request_written_as_json(self, channel):
        channel.request(ApprovalRequest(
            shift_id=SHIFT_ID,
            shift_name="morning",
            requested_at=WINDOW_START,
            tasks=({"id": "deploy", "title": "Deploy", "priority": "P1", "steps": 2},),
            carryover_task_ids=("deploy",),
        ))

        document = json.loads(channel.request_path.read_text())
        assert document["shift_id"] == SHIFT_ID
        assert document["requested_at"] == "2024-05-01T06:00:00+00:00"
        assert document["tasks"][0]["id"] == "deploy"
        assert document["carryover_task_ids"] == ["deploy"]

    def test_request_replaces_previous(self, channel):
        channel.request(ApprovalRequest(shift_id="old", shift_name="night", requested_at=WINDOW_START))
        channel.request(ApprovalRequest(shift_id=SHIFT_ID, shift_name="morning", requested_at=WINDOW_START))

        assert json.loads(channel.request_path.read_text())["shift_id"] == SHIFT_ID


class TestPoll:

    def test_no_response_file(self, channel):
        assert channel.poll(SHIFT_ID) is None

    def test_empty_response_file(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text("")

        assert channel.poll(SHIFT_ID) is None

    def test_response_for_other_shift_ignored(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text("shift_id: 2024-04-30-night\ndecision: approve_all\n")

        assert channel.poll(SHIFT_ID) is None

    def test_approve_subset(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text(
            f"shift_id: {SHIFT_ID}\n"
            "decision: approve_subset\n"
            "approver: alice\n"
            "task_ids: [deploy, rotate-logs]\n"
        )

        response = channel.poll(SHIFT_ID)

        assert response.decision == ApprovalDecision.APPROVE_SUBSET
        assert response.approver == "alice"
        assert response.task_ids == ("deploy", "rotate-logs")

    def test_add_task_with_proposals(self, channel):
        """Proposals in a response are parsed like signals."""
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text(
            f"shift_id: {SHIFT_ID}\n"
            "decision: add_task\n"
            "responded_at: 2024-05-01T06:30:00Z\n"
            "tasks:\n"
            "  - id: hotfix\n"
            "    title: Ship hotfix\n"
            "    priority: P1\n"
            "    actions: [Build, Deploy]\n"
        )

        response = channel.poll(SHIFT_ID)

        assert response.decision == ApprovalDecision.ADD_TASK
        assert response.approver == "user"
        assert response.responded_at.isoformat() == "2024-05-01T06:30:00+00:00"
        (proposal,) = response.tasks
        assert proposal.id == "hotfix"
        assert proposal.priority == PriorityTier.P1
        assert proposal.source == "approval"
        assert [a.description for a in proposal.actions] == ["Build", "Deploy"]

    def test_unparsable_yaml(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text("decision: [approve_all\n")

        with pytest.raises(ApprovalError):
            channel.poll(SHIFT_ID)

    def test_non_mapping_document(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text("- approve_all\n")

        with pytest.raises(ApprovalError):
            channel.poll(SHIFT_ID)

    def test_unknown_decision(self, channel):
        channel.directory.mkdir(parents=True)
        channel.response_path.write_text(f"shift_id: {SHIFT_ID}\ndecision: maybe\n")

        with pytest.raises(ApprovalError) as exc_info:
            channel.poll(SHIFT_ID)
        assert exc_info.value.decision == "maybe"
