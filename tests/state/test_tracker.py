"""Tests for the shift state tracker."""

import json
from datetime import datetime, timezone

import pytest

from shift_app.errors import StoreCorruptionError
from shift_app.state.models import ShiftState, ShiftStatus
from shift_app.state.tracker import ShiftStateTracker

from conftest import SHIFT_DATE, SHIFT_ID, WINDOW_END, WINDOW_START

NOW = datetime(2024, 5, 1, 6, 5, tzinfo=timezone.utc)


@pytest.fixture
def tracker(tmp_path):
    return ShiftStateTracker(tmp_path / "state.json")


class TestShiftStateTracker:
    """Test ShiftStateTracker."""

    def test_missing_record_is_idle(self, tracker):
        """No record means an idle engine."""
        assert not tracker.exists()
        assert tracker.read() == ShiftState()

    def test_write_then_read(self, tracker):
        """The full record is written and read back."""
        state = ShiftState().begin(ShiftStatus.EXECUTING, NOW, "morning", SHIFT_ID, SHIFT_DATE,
                                   WINDOW_START, WINDOW_END)
        tracker.write(state)
        assert tracker.exists()
        assert tracker.read() == state

    def test_update_applies_mutator(self, tracker):
        """update() reads, mutates and writes the whole record."""
        tracker.update(lambda s: s.begin(ShiftStatus.AWAITING_APPROVAL, NOW, "morning", SHIFT_ID,
                                         SHIFT_DATE, WINDOW_START, WINDOW_END), trigger="plan")
        result = tracker.update(lambda s: s.with_status(ShiftStatus.EXECUTING, NOW, approved_by="alice"))

        assert result.status == ShiftStatus.EXECUTING
        assert tracker.read().approved_by == "alice"
        assert tracker.read().shift_id == SHIFT_ID

    def test_failed_mutator_leaves_record(self, tracker):
        """A mutator that raises leaves the stored record untouched."""
        tracker.write(ShiftState())
        before = tracker.path.read_bytes()

        def explode(state):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            tracker.update(explode)
        assert tracker.path.read_bytes() == before

    def test_invalid_json_is_corruption(self, tracker):
        """Unparseable records raise StoreCorruptionError."""
        tracker.path.write_text("{not json")
        with pytest.raises(StoreCorruptionError) as exc_info:
            tracker.read()
        assert exc_info.value.store == "shift_state"

    def test_schema_violation_is_corruption(self, tracker):
        """Records that fail the schema raise StoreCorruptionError."""
        document = ShiftState().to_dict()
        document["status"] = "running"
        tracker.path.write_text(json.dumps(document))
        with pytest.raises(StoreCorruptionError):
            tracker.read()

    def test_bad_date_is_corruption(self, tracker):
        """Values that pass the schema but cannot be decoded are corruption."""
        document = ShiftState().to_dict()
        document["date"] = "yesterday"
        tracker.path.write_text(json.dumps(document))
        with pytest.raises(StoreCorruptionError):
            tracker.read()
