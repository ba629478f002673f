"""Tests for plan store data models."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from shift_app.plan.models import (
    BlockKind,
    Carryover,
    Plan,
    PriorityTier,
    Step,
    StepStatus,
    Task,
    TaskProposal,
)


class TestStep:
    """Test Step behaviour."""

    def test_terminal_statuses(self):
        """Only done and skipped steps are terminal."""
        step = Step(id="t.s1", task_id="t", description="x")
        assert not step.is_terminal
        for status in (StepStatus.DONE, StepStatus.SKIPPED):
            assert Step(id="t.s1", task_id="t", description="x", status=status).is_terminal
        for status in (StepStatus.CLAIMED, StepStatus.BLOCKED):
            assert not Step(id="t.s1", task_id="t", description="x", status=status).is_terminal

    def test_as_carryover_releases_claim(self):
        """An abandoned claim is carried as pending."""
        claimed_at = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        step = Step(id="t.s1", task_id="t", description="x",
                    status=StepStatus.CLAIMED, claimed_at=claimed_at)

        carried = step.as_carryover()

        assert carried.status == StepStatus.PENDING
        assert carried.claimed_at is None
        assert carried.carryover is True

    def test_as_carryover_keeps_block(self):
        """Blocked steps keep their reason, kind and attempts."""
        step = Step(id="t.s1", task_id="t", description="x", status=StepStatus.BLOCKED,
                    attempt_count=3, block_reason="api down", block_kind=BlockKind.TRANSIENT)

        carried = step.as_carryover()

        assert carried.status == StepStatus.BLOCKED
        assert carried.attempt_count == 3
        assert carried.block_reason == "api down"
        assert carried.block_kind == BlockKind.TRANSIENT

    def test_dict_round_trip_keeps_timestamps(self):
        """Serialized steps restore with timezone-aware timestamps."""
        blocked_at = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        step = Step(id="t.s1", task_id="t", description="x", sub_actions=("a", "b"),
                    scope_bound=2, status=StepStatus.BLOCKED, attempt_count=1,
                    block_kind=BlockKind.DEPENDENCY, block_reason="waiting", blocked_at=blocked_at)

        restored = Step.from_dict(step.to_dict())

        assert restored == step
        assert restored.blocked_at.tzinfo is not None


class TestTask:
    """Test task identity."""

    def test_split_part_refers_to_its_proposal(self):
        part = Task(id="release.2", title="Release (part 2/2)", priority=PriorityTier.P1,
                    step_ids=("release.2.s1",), split_from="release")

        assert part.source_id == "release"
        assert part.refers_to("release")
        assert part.refers_to("release.2")
        assert Task.from_dict(part.to_dict()) == part

    def test_dotted_id_is_not_a_split(self):
        """Only an explicit marker ties a task to another proposal."""
        task = Task(id="v1.2", title="Ship v1.2", priority=PriorityTier.P2, step_ids=("v1.2.s1",))

        assert task.source_id == "v1.2"
        assert not task.refers_to("v1")


class TestPriorityTier:
    """Test priority ranks."""

    def test_rank_order(self):
        """P1 ranks before P2 before P3."""
        assert PriorityTier.P1.rank < PriorityTier.P2.rank < PriorityTier.P3.rank


class TestPlan:
    """Test Plan queries."""

    def test_ordered_steps_by_priority_then_declared_order(self, make_plan):
        """Steps come out by priority tier, then task order, then step order."""
        plan = make_plan(tasks=[("P3", 1), ("P1", 2), ("P3", 1), ("P2", 1)])

        ordered = [s.id for s in plan.ordered_steps()]

        assert ordered == ["task-2.s1", "task-2.s2", "task-4.s1", "task-1.s1", "task-3.s1"]

    def test_predecessors_terminal(self, make_plan):
        """A step is runnable only after every earlier step of its task is terminal."""
        plan = make_plan(tasks=[("P2", 3)])
        second = plan.get_step("task-1.s2")
        assert not plan.predecessors_terminal(second)
        assert plan.predecessors_terminal(plan.get_step("task-1.s1"))

        plan.replace_step(replace(plan.get_step("task-1.s1"), status=StepStatus.SKIPPED))
        assert plan.predecessors_terminal(second)

    def test_replace_unknown_step_raises(self, make_plan):
        """Replacing a step that is not in the plan is a programming error."""
        plan = make_plan()
        with pytest.raises(KeyError):
            plan.replace_step(Step(id="nope", task_id="task-1", description="x"))

    def test_counts(self, make_plan):
        """Counts cover every status plus the total."""
        plan = make_plan(tasks=[("P2", 2), ("P3", 1)])
        counts = plan.counts()
        assert counts["total"] == 3
        assert counts["pending"] == 3
        assert counts["done"] == 0
        assert set(counts) == {"pending", "claimed", "done", "blocked", "skipped", "total"}

    def test_approved_returns_copy(self, make_plan):
        """Approval stamps a copy and leaves the draft untouched."""
        draft = make_plan(approved=False)
        stamp = datetime(2024, 5, 1, 6, 30, tzinfo=timezone.utc)

        plan = draft.approved("bob", stamp, auto=True)

        assert plan.is_approved
        assert plan.approved_by == "bob"
        assert plan.auto_approved
        assert not draft.is_approved
        assert plan.steps is not draft.steps

    def test_dict_round_trip(self, make_plan):
        """A plan survives a dict round trip."""
        plan = make_plan(tasks=[("P1", 2), ("P3", 1)])
        restored = Plan.from_dict(plan.to_dict())
        assert restored.to_dict() == plan.to_dict()
        assert restored.window_start == plan.window_start


class TestCarryover:
    """Test carryover bookkeeping."""

    def _carryover(self):
        created = datetime(2024, 5, 1, 14, 0, tzinfo=timezone.utc)
        steps = {
            "a.s1": Step(id="a.s1", task_id="a", description="a1", carryover=True),
            "b.s1": Step(id="b.s1", task_id="b", description="b1", carryover=True),
        }
        tasks = [
            Task(id="a", title="A", priority=PriorityTier.P1, step_ids=("a.s1",), carryover=True),
            Task(id="b", title="B", priority=PriorityTier.P2, step_ids=("b.s1",), carryover=True),
        ]
        return Carryover(source_shift="2024-05-01-morning", created_at=created, tasks=tasks, steps=steps)

    def test_take_removes_tasks_and_records_consumer(self):
        """Taken tasks leave the carryover and the consumer is recorded."""
        carryover = self._carryover()
        at = datetime(2024, 5, 1, 14, 5, tzinfo=timezone.utc)

        taken = carryover.take({"a"}, "2024-05-01-afternoon", at)

        assert taken == ["a"]
        assert [t.id for t in carryover.tasks] == ["b"]
        assert "a.s1" not in carryover.steps
        assert carryover.consumed == [
            {"shift_id": "2024-05-01-afternoon", "task_ids": ["a"], "at": "2024-05-01T14:05:00+00:00"}
        ]

    def test_take_twice_is_noop(self):
        """A retried take neither fails nor records twice."""
        carryover = self._carryover()
        at = datetime(2024, 5, 1, 14, 5, tzinfo=timezone.utc)
        carryover.take({"a"}, "s2", at)

        assert carryover.take({"a"}, "s2", at) == []
        assert len(carryover.consumed) == 1

    def test_is_empty(self):
        """A carryover with no tasks is empty."""
        carryover = self._carryover()
        carryover.take({"a", "b"}, "s2", datetime(2024, 5, 1, tzinfo=timezone.utc))
        assert carryover.is_empty

    def test_dict_round_trip(self):
        """Carryover survives a dict round trip."""
        carryover = self._carryover()
        restored = Carryover.from_dict(carryover.to_dict())
        assert restored.to_dict() == carryover.to_dict()


class TestTaskProposal:
    """Test proposal parsing."""

    def test_from_dict_with_string_and_mapping_actions(self):
        """Actions may be plain strings or mappings."""
        proposal = TaskProposal.from_dict({
            "id": "report",
            "title": "Weekly report",
            "priority": "P1",
            "actions": ["collect numbers", {"description": "send email", "minutes": 2, "external": True}],
        })

        assert proposal.priority == PriorityTier.P1
        assert proposal.actions[0].description == "collect numbers"
        assert proposal.actions[0].minutes == 5
        assert proposal.actions[1].external is True

    def test_default_priority(self):
        """Priority defaults to P3."""
        proposal = TaskProposal.from_dict({"id": "x", "title": "X", "actions": ["a"]})
        assert proposal.priority == PriorityTier.P3

    @pytest.mark.parametrize("data", [
        {"title": "missing id"},
        {"id": "x", "title": "bad priority", "priority": "P9"},
        {"id": "x", "title": "bad minutes", "actions": [{"description": "a", "minutes": "soon"}]},
    ])
    def test_invalid_proposals(self, data):
        """Malformed proposals raise ValueError."""
        with pytest.raises(ValueError):
            TaskProposal.from_dict(data)
