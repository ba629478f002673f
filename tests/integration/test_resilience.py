"""
Resilience against overlapping invocations, crashes and corrupt stores.
"""

import json
from datetime import timedelta

import pytest

from shift_app.collaborators import NotificationLevel, WorkResult
from shift_app.errors import StoreCorruptionError
from shift_app.executor import CycleOutcome
from shift_app.plan.models import StepStatus

from conftest import SHIFT_ID


class TestOverlap:
    """Invocations that overlap in time."""

    def test_overlapping_invocation_is_busy(self, make_engine, make_plan, start_shift, workspace, performer, now):
        """A second invocation started mid-step does not claim or run anything."""
        start_shift(make_plan(tasks=[("P2", 2)]))
        engine = make_engine()
        nested = []

        def overlap(assignment):
            nested.append(make_engine().cycle(now + timedelta(minutes=1)))
            return WorkResult.ok("done")

        performer.script(overlap)
        engine.cycle(now)

        assert nested[0].outcome == CycleOutcome.BUSY
        assert performer.performed == ["task-1.s1", "task-1.s2"]

    def test_crash_mid_step_recovers(self, make_engine, make_plan, start_shift, workspace, performer, now):
        """An invocation that dies after claiming leaves a claim the next one reclaims."""
        start_shift(make_plan(tasks=[("P2", 1)]))
        performer.script(KeyboardInterrupt())

        with pytest.raises(KeyboardInterrupt):
            make_engine().cycle(now)
        assert workspace.plan_store().load().get_step("task-1.s1").status == StepStatus.CLAIMED

        assert make_engine().cycle(now + timedelta(minutes=10)).outcome == CycleOutcome.BUSY
        result = make_engine().cycle(now + timedelta(minutes=31))

        assert result.reclaimed == ("task-1.s1",)
        assert workspace.plan_store().load().get_step("task-1.s1").status == StepStatus.DONE


class TestCorruption:
    """Corrupt stores halt and alert without repair."""

    @pytest.mark.parametrize("store", ["state.json", "plan.json", "context.md"])
    def test_corrupt_store_halts_cycle(self, make_engine, make_plan, start_shift, workspace, performer,
                                       notifier, now, store):
        start_shift(make_plan())
        target = workspace.root / store
        target.write_text("garbage that is not a store\n")
        snapshot = {p.name: p.read_bytes() for p in workspace.root.iterdir() if p.is_file()}

        with pytest.raises(StoreCorruptionError):
            make_engine().cycle(now)

        assert performer.assignments == []
        assert {p.name: p.read_bytes() for p in workspace.root.iterdir() if p.is_file()} == snapshot
        assert [level for level, _, _ in notifier.sent] == [NotificationLevel.CRITICAL]

    def test_corrupt_plan_halts_planner(self, make_engine, make_plan, start_shift, workspace, notifier):
        plan = make_plan()
        start_shift(plan)
        workspace.plan_path.write_text("{}")

        with pytest.raises(StoreCorruptionError):
            make_engine().plan("afternoon", plan.window_end + timedelta(minutes=1))

        assert not workspace.history_path(SHIFT_ID).exists()
        assert notifier.sent[0][0] == NotificationLevel.CRITICAL

    def test_missing_plan_for_active_shift(self, make_engine, make_plan, start_shift, workspace, now):
        """An executing shift without its plan is never given an empty one."""
        start_shift(make_plan())
        workspace.plan_path.unlink()

        with pytest.raises(StoreCorruptionError):
            make_engine().cycle(now)
        assert not workspace.plan_path.exists()

    def test_claimed_step_without_timestamp(self, make_engine, make_plan, start_shift, workspace, now):
        start_shift(make_plan())
        document = workspace.plan_store().load().to_dict()
        document["steps"][0].update(status="claimed", claimed_at=None)
        workspace.plan_path.write_text(json.dumps(document))

        with pytest.raises(StoreCorruptionError):
            make_engine().cycle(now)
