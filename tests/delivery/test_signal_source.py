"""
Tests for the YAML signal source.
"""

from datetime import date

import pytest

from conftest import SHIFT_DATE
from shift_app.delivery import YamlSignalSource
from shift_app.errors import ConfigurationError
from shift_app.plan.models import PriorityTier

SIGNALS = """\
tasks:
  - id: rotate-logs
    title: Rotate application logs
    priority: P2
    actions:
      - Archive yesterday's logs
      - description: Delete archives older than 30 days
        minutes: 10
        external: true
  - id: night-backup
    title: Verify backups
    shifts: [night]
  - id: release
    title: Cut release
    priority: P1
    dates: ["2024-05-02"]
  - id: audit
    title: Quarterly audit
    dates: [2024-05-01]
"""


@pytest.fixture
def source(tmp_path):
    return YamlSignalSource(tmp_path / "signals.yaml")


class TestCollect:

    def test_missing_file_means_no_signals(self, source):
        assert source.collect("morning", SHIFT_DATE) == []

    def test_empty_file(self, source):
        source.path.write_text("")

        assert source.collect("morning", SHIFT_DATE) == []

    def test_filters_by_shift_and_date(self, source):
        source.path.write_text(SIGNALS)

        morning = source.collect("morning", SHIFT_DATE)
        night_next_day = source.collect("night", date(2024, 5, 2))

        assert [p.id for p in morning] == ["rotate-logs", "audit"]
        assert [p.id for p in night_next_day] == ["rotate-logs", "night-backup", "release"]

    def test_proposal_fields(self, source):
        source.path.write_text(SIGNALS)

        proposal = source.collect("morning", SHIFT_DATE)[0]

        assert proposal.priority == PriorityTier.P2
        assert proposal.source == "signal"
        first, second = proposal.actions
        assert (first.description, first.minutes, first.external) == ("Archive yesterday's logs", 5, False)
        assert (second.minutes, second.external) == (10, True)

    def test_default_priority(self, source):
        source.path.write_text(SIGNALS)

        audit = source.collect("morning", SHIFT_DATE)[1]

        assert audit.priority == PriorityTier.P3

    def test_malformed_and_duplicate_entries_skipped(self, source):
        """One bad entry does not hide the rest of the file."""
        source.path.write_text(
            "tasks:\n"
            "  - just a string\n"
            "  - id: no-title\n"
            "  - id: bad-priority\n"
            "    title: Bad\n"
            "    priority: urgent\n"
            "  - id: good\n"
            "    title: Good\n"
            "  - id: good\n"
            "    title: Good again\n"
        )

        proposals = source.collect("morning", SHIFT_DATE)

        assert [(p.id, p.title) for p in proposals] == [("good", "Good")]

    def test_unparsable_file(self, source):
        source.path.write_text("tasks: [unclosed\n")

        with pytest.raises(ConfigurationError):
            source.collect("morning", SHIFT_DATE)

    def test_tasks_must_be_a_list(self, source):
        source.path.write_text("tasks:\n  rotate-logs: true\n")

        with pytest.raises(ConfigurationError):
            source.collect("morning", SHIFT_DATE)
