"""
Handoff archiver.

Closes a shift: freezes its plan into the history directory, forwards every
non-terminal step into the carryover draft for the next shift, writes the
handoff document, prunes the context log and marks the shift completed.
Each write is idempotent so an interrupted archive can simply be re-run.
"""

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Optional

import structlog

from .collaborators import NotificationLevel, Notifier
from .config.defaults import DefaultConfig
from .delivery.alerts import alert_store_corruption
from .errors import StateTransitionError, StoreCorruptionError
from .models.handoff import HandoffDocument, Lesson
from .persistence.workspace import ShiftWorkspace
from .plan.models import Carryover, Plan, Task
from .state.models import ShiftState, ShiftStatus

logger = structlog.get_logger(__name__)


class ArchiveReason(str, Enum):
    """Why a shift was closed."""
    NO_RUNNABLE_STEPS = "no_runnable_steps"
    WINDOW_ELAPSED = "window_elapsed"
    MANUAL = "manual"
    CANCELLED = "cancelled"


class HandoffArchiver:
    """Freezes a finished shift and seeds the next one."""

    def __init__(self, workspace: ShiftWorkspace, config: DefaultConfig, notifier: Notifier):
        self.workspace = workspace
        self.config = config
        self.notifier = notifier
        self.tracker = workspace.state_tracker()
        self.plan_store = workspace.plan_store()
        self.carryover_store = workspace.carryover_store()
        self.context_log = workspace.context_log()
        self.logger = logger

    def archive(self, now: datetime, reason: ArchiveReason) -> Optional[HandoffDocument]:
        """
        Close the current shift.

        Returns:
            The handoff document, or ``None`` when there is no approved plan
            to archive (a shift cancelled while awaiting approval)

        Raises:
            StoreCorruptionError: If a store cannot be read; nothing is written
            StateTransitionError: If no shift has been started
        """
        try:
            return self._archive(now, reason)
        except StoreCorruptionError as e:
            alert_store_corruption(self.notifier, e, "archiver")
            raise

    def _archive(self, now: datetime, reason: ArchiveReason) -> Optional[HandoffDocument]:
        state = self.tracker.read()

        if state.status == ShiftStatus.COMPLETED:
            stored = self.workspace.handoff_store().load()
            if stored is not None and stored.shift_id == state.shift_id:
                self.logger.info("Shift already archived", shift_id=state.shift_id)
                return stored

        if state.status not in (ShiftStatus.EXECUTING, ShiftStatus.CANCELLED, ShiftStatus.COMPLETED):
            raise StateTransitionError(
                f"Cannot archive a shift in status {state.status.value}",
                current_state=state.status.value,
                attempted_transition=ShiftStatus.COMPLETED.value,
                context={"shift_id": state.shift_id}
            )

        plan = self.plan_store.require()
        if plan.shift_id != state.shift_id:
            raise StoreCorruptionError(
                f"plan store belongs to {plan.shift_id}, shift state to {state.shift_id}",
                store="plan",
                path=str(self.plan_store.path)
            )
        if not plan.is_approved:
            self.logger.info("No approved plan to archive", shift_id=plan.shift_id, status=state.status.value)
            return None

        # Read everything before the first write
        carryover = self.carryover_store.load()
        lessons = self._lessons_since(plan.approved_at or plan.window_start)

        self.logger.info("Archiving shift", shift_id=plan.shift_id, reason=reason.value)

        self.plan_store.archive(plan, self.workspace.history_path(plan.shift_id))
        carried = self._write_carryover(plan, carryover, now)

        final_status = ShiftStatus.CANCELLED if state.status == ShiftStatus.CANCELLED else ShiftStatus.COMPLETED
        handoff = HandoffDocument.from_plan(
            plan,
            created_at=now,
            reason=reason.value,
            final_status=final_status.value,
            carried_over=carried,
            lessons=lessons,
        )
        self.workspace.history_handoff_store(plan.shift_id).save(handoff)
        self.workspace.handoff_store().save(handoff)

        self.context_log.prune(self.config.store.context_log_max_entries)

        self.tracker.update(lambda s: self._finalize(s, plan, now), trigger=f"archive:{reason.value}")

        self._notify(handoff)
        return handoff

    def _finalize(self, state: ShiftState, plan: Plan, now: datetime) -> ShiftState:
        if state.status == ShiftStatus.EXECUTING:
            state = state.with_status(ShiftStatus.COMPLETED, now)
        return replace(state.with_counts(plan), updated_at=now)

    def _lessons_since(self, since: datetime) -> list[Lesson]:
        entries = self.context_log.entries_since(since)
        limit = self.config.store.handoff_lesson_limit
        entries = entries[-limit:] if limit else []
        return [Lesson(timestamp=e.timestamp, text=e.text) for e in entries]

    def _write_carryover(self, plan: Plan, existing: Optional[Carryover], now: datetime) -> list[str]:
        """
        Write the carryover draft for the next shift.

        Returns:
            Ids of the steps carried over from ``plan``
        """
        if existing is not None and existing.source_shift == plan.shift_id:
            self.logger.info("Carryover already written", shift_id=plan.shift_id)
            return [step_id for task in existing.tasks if task.carried_from == plan.shift_id
                    for step_id in task.step_ids]

        tasks = []
        steps = {}

        # Earlier carryover this plan never took stays ahead of the new work
        plan_task_ids = {task.id for task in plan.tasks}
        if existing is not None:
            for task in existing.tasks:
                if task.id in plan_task_ids:
                    continue
                tasks.append(task)
                for step in existing.steps_for(task):
                    steps[step.id] = step

        carried = []
        for task in self._tasks_in_priority_order(plan):
            open_steps = [plan.steps[step_id] for step_id in task.step_ids
                          if not plan.steps[step_id].is_terminal]
            if not open_steps:
                continue
            tasks.append(Task(
                id=task.id,
                title=task.title,
                priority=task.priority,
                step_ids=tuple(step.id for step in open_steps),
                carryover=True,
                carried_from=plan.shift_id,
                split_from=task.split_from,
            ))
            for step in open_steps:
                steps[step.id] = step.as_carryover()
                carried.append(step.id)

        self.carryover_store.save(Carryover(
            source_shift=plan.shift_id,
            created_at=now,
            approved=True,
            tasks=tasks,
            steps=steps,
            consumed=list(existing.consumed) if existing is not None else [],
        ))
        self.logger.info("Carryover written", shift_id=plan.shift_id, steps=len(carried), tasks=len(tasks))
        return carried

    @staticmethod
    def _tasks_in_priority_order(plan: Plan) -> list[Task]:
        indexed = sorted(enumerate(plan.tasks), key=lambda pair: (pair[1].priority.rank, pair[0]))
        return [task for _, task in indexed]

    def _notify(self, handoff: HandoffDocument) -> None:
        counts = handoff.counts
        message = (
            f"Shift {handoff.shift_id} handed off ({handoff.reason}): "
            f"{counts.get('done', 0)} done, {counts.get('blocked', 0)} blocked, "
            f"{counts.get('skipped', 0)} skipped, {len(handoff.carried_over)} carried over"
        )
        level = NotificationLevel.WARNING if handoff.needs_attention else NotificationLevel.INFO
        self.notifier.notify(level, message, {
            "shift_id": handoff.shift_id,
            "needs_review": [item.step_id for item in handoff.needs_review],
            "user_blocked": [item.step_id for item in handoff.user_blocked],
        })
