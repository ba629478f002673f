"""Tests for the context log store."""

from datetime import datetime, timedelta, timezone

import pytest

from shift_app.errors import StoreCorruptionError
from shift_app.persistence.context_log import HEADER, ContextLog

T0 = datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def log(tmp_path):
    context_log = ContextLog(tmp_path / "context.md")
    context_log.initialize()
    return context_log


class TestContextLog:
    """Test ContextLog."""

    def test_initialize_once(self, log):
        """initialize() never overwrites an existing log."""
        log.append("fact", T0)
        assert log.initialize() is False
        assert len(log.read()) == 1

    def test_append_format(self, log):
        """Entries are timestamped markdown list items under a header."""
        log.append("VPN must be up before deploys", T0)
        lines = log.path.read_text().splitlines()
        assert lines[0] == HEADER
        assert lines[-1] == "- 2024-05-01T06:00:00+00:00 | VPN must be up before deploys"

    def test_append_preserves_order(self, log):
        """Entries are read back in the order they were written."""
        log.append("first", T0)
        log.extend(["second", "third"], T0 + timedelta(minutes=1))
        assert [e.text for e in log.read()] == ["first", "second", "third"]

    def test_multiline_collapsed_and_blank_ignored(self, log):
        """Text is kept on one line; blank text adds nothing."""
        entry = log.append("line one\nline two", T0)
        assert entry.text == "line one line two"
        assert log.append("   \n", T0) is None
        assert len(log.read()) == 1

    def test_text_with_separator(self, log):
        """Only the first separator splits timestamp from text."""
        log.append("a | b", T0)
        assert log.read()[0].text == "a | b"

    def test_entries_since(self, log):
        log.append("old", T0)
        log.append("new", T0 + timedelta(hours=2))
        assert [e.text for e in log.entries_since(T0 + timedelta(hours=1))] == ["new"]
        assert len(log.entries_since(None)) == 2

    def test_prune_keeps_newest(self, log):
        """Pruning drops the oldest entries."""
        log.extend([f"fact {i}" for i in range(5)], T0)
        assert log.prune(2) == 3
        assert [e.text for e in log.read()] == ["fact 3", "fact 4"]

    def test_prune_disabled(self, log):
        log.extend(["a", "b"], T0)
        assert log.prune(0) == 0
        assert log.prune(5) == 0
        assert len(log.read()) == 2

    def test_missing_log_reads_empty(self, tmp_path):
        assert ContextLog(tmp_path / "absent.md").read() == []

    @pytest.mark.parametrize("line", [
        "just some text",
        "- 2024-05-01T06:00:00+00:00 no separator",
        "- not-a-time | text",
    ])
    def test_malformed_lines_are_corruption(self, log, line):
        """Lines that are not well-formed entries raise StoreCorruptionError."""
        log.path.write_text(f"{HEADER}\n\n{line}\n")
        with pytest.raises(StoreCorruptionError) as exc_info:
            log.read()
        assert exc_info.value.store == "context_log"
