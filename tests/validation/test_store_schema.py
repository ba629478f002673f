"""Tests for store schema validation."""

import copy

import pytest

from shift_app.errors import StoreCorruptionError
from shift_app.plan.models import Carryover
from shift_app.state.models import ShiftState
from shift_app.validation.store_schema import validator


@pytest.fixture
def plan_document(make_plan):
    return make_plan(tasks=[("P1", 2), ("P2", 1)]).to_dict()


class TestPlanValidation:
    """Test plan document validation."""

    def test_valid_plan(self, plan_document):
        validator.validate_plan(plan_document, "plan.json")

    @pytest.mark.parametrize("mutate", [
        lambda d: d.pop("shift_id"),
        lambda d: d.update(schema_version=2),
        lambda d: d.update(date="May 1st"),
        lambda d: d.update(window_start=1714543200),
        lambda d: d["steps"][0].update(status="running"),
        lambda d: d["steps"][0].update(attempt_count=-1),
        lambda d: d["steps"][0].update(attempt_count=True),
        lambda d: d["steps"][0].update(block_kind="bored"),
        lambda d: d["steps"][0].update(status="claimed", claimed_at=None),
        lambda d: d["steps"].append(copy.deepcopy(d["steps"][0])),
        lambda d: d["tasks"][0].update(priority="P0"),
        lambda d: d["tasks"][0].update(step_ids=["ghost.s1"]),
        lambda d: d["tasks"][1].update(step_ids=list(d["tasks"][0]["step_ids"])),
        lambda d: d.update(tasks="none"),
    ])
    def test_invalid_plans(self, plan_document, mutate):
        """Every schema breach surfaces as StoreCorruptionError."""
        mutate(plan_document)
        with pytest.raises(StoreCorruptionError) as exc_info:
            validator.validate_plan(plan_document, "plan.json")
        assert exc_info.value.store == "plan"
        assert exc_info.value.path == "plan.json"

    def test_not_an_object(self):
        with pytest.raises(StoreCorruptionError):
            validator.validate_plan(["not", "a", "plan"])


class TestStateValidation:
    """Test shift state validation."""

    def test_idle_state_is_valid(self):
        validator.validate_state(ShiftState().to_dict())

    @pytest.mark.parametrize("changes", [
        {"status": "paused"},
        {"cycles_run": -1},
        {"completed": "3"},
        {"status": "executing", "shift_id": None},
        {"last_cycle_at": "noon"},
    ])
    def test_invalid_states(self, changes):
        document = ShiftState().to_dict()
        document.update(changes)
        with pytest.raises(StoreCorruptionError):
            validator.validate_state(document)


class TestCarryoverValidation:
    """Test carryover validation."""

    def test_valid_carryover(self, make_plan):
        plan = make_plan()
        carryover = Carryover(source_shift=plan.shift_id, created_at=plan.window_end,
                              tasks=list(plan.tasks), steps=dict(plan.steps))
        validator.validate_carryover(carryover.to_dict())

    def test_missing_created_at(self, make_plan):
        plan = make_plan()
        document = Carryover(source_shift=plan.shift_id, created_at=plan.window_end).to_dict()
        document["created_at"] = None
        with pytest.raises(StoreCorruptionError) as exc_info:
            validator.validate_carryover(document)
        assert exc_info.value.store == "carryover"
