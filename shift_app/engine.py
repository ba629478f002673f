"""
Shift engine coordinator.

Builds everything one invocation needs from the workspace directory and the
configuration directory: validated configuration, stores, collaborators,
planner, executor and archiver. Nothing is kept between invocations.
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from .archiver import ArchiveReason, HandoffArchiver
from .collaborators import ApprovalChannel, Notifier, SignalSource, WorkPerformer
from .config.loader import ConfigLoader
from .config.notifications import build_notification_config
from .config.validation import ConfigValidator
from .delivery import (
    CommandWorkPerformer,
    FileApprovalChannel,
    YamlSignalSource,
    create_notifier,
)
from .delivery.alerts import alert_store_corruption
from .errors import ConfigurationError, StateTransitionError, StoreCorruptionError
from .executor import CycleExecutor, CycleResult
from .models.handoff import HandoffDocument
from .persistence.context_log import ContextEntry
from .persistence.workspace import ShiftWorkspace
from .planner import Planner, PlanningResult
from .state.models import ShiftStatus
from .utils.time import locate_window, utc_now

logger = structlog.get_logger(__name__)


class ShiftEngine:
    """
    Entry point for the periodic trigger.

    Collaborators default to the file-based implementations rooted in the
    workspace; tests and embedding applications pass their own.
    """

    def __init__(
        self,
        workspace_dir: Path,
        config_dir: Optional[Path] = None,
        shift_name: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None,
        performer: Optional[WorkPerformer] = None,
        approvals: Optional[ApprovalChannel] = None,
        signals: Optional[SignalSource] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic
    ) -> None:
        self.logger = logger
        self.workspace = ShiftWorkspace(workspace_dir)
        self.config_loader = ConfigLoader.create(config_dir)

        merged = self.config_loader.merge_config(shift_name, overrides)
        errors = ConfigValidator.validate_config(merged)
        if errors:
            error_msgs = [f"{err.field}: {err.message} (got: {err.value})" for err in errors]
            raise ConfigurationError(f"Invalid configuration: {'; '.join(error_msgs)}", errors=errors)
        self.config = ConfigLoader.build(merged)

        self.clock = clock
        self.monotonic = monotonic
        self.notifier = notifier or create_notifier(
            build_notification_config(self.config.notifications, self.workspace.root)
        )
        self.approvals = approvals or FileApprovalChannel(self.workspace.approval_dir)
        self.signals = signals or YamlSignalSource(self.workspace.signals_path)
        self.performer = performer
        if self.performer is None and self.config.work.command:
            self.performer = CommandWorkPerformer(
                self.config.work.command,
                timeout_margin_seconds=self.config.work.timeout_margin_seconds,
                cwd=self.workspace.root,
            )

        self.archiver = HandoffArchiver(self.workspace, self.config, self.notifier)
        self.planner = Planner(self.workspace, self.config, self.signals, self.approvals, self.archiver)

    @classmethod
    def create(
        cls,
        workspace_dir: Path,
        config_dir: Optional[Path] = None,
        shift_name: Optional[str] = None,
        **kwargs
    ) -> "ShiftEngine":
        """
        Build an engine configured for ``shift_name``, or for the shift the
        workspace is currently working on.
        """
        if shift_name is None:
            try:
                shift_name = ShiftWorkspace(workspace_dir).state_tracker().read().shift_name
            except StoreCorruptionError as e:
                engine = cls(workspace_dir, config_dir, None, **kwargs)
                alert_store_corruption(engine.notifier, e, "engine")
                raise
        return cls(workspace_dir, config_dir, shift_name, **kwargs)

    def _now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self.clock()

    def init_workspace(self) -> list[Path]:
        """Create the workspace layout; existing stores are left alone."""
        return self.workspace.scaffold()

    def current_shift_name(self, now: Optional[datetime] = None) -> str:
        """The shift whose window contains ``now``, or else the next one to start."""
        now = self._now(now)
        located = [
            (locate_window(now, window.start, window.end), window.name)
            for window in self.config.shifts.windows
        ]
        for (_, start, end), name in located:
            if start <= now < end:
                return name
        return min(located, key=lambda item: item[0][1])[1]

    def plan(self, shift_name: Optional[str] = None, now: Optional[datetime] = None) -> PlanningResult:
        now = self._now(now)
        return self.planner.plan_shift(shift_name or self.current_shift_name(now), now)

    def cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """Run one executor invocation."""
        if self.performer is None:
            raise ConfigurationError("No work performer configured (set work.command in shifts.yaml)")
        executor = CycleExecutor(self.workspace, self.config, self.performer, self.archiver,
                                 monotonic=self.monotonic)
        return executor.run_cycle(self._now(now))

    def handoff(self, now: Optional[datetime] = None) -> Optional[HandoffDocument]:
        """Close the current shift now, regardless of remaining steps."""
        return self.archiver.archive(self._now(now), ArchiveReason.MANUAL)

    def cancel(self, reason: str, now: Optional[datetime] = None) -> Optional[HandoffDocument]:
        """
        Cancel the whole plan.

        An approved plan is archived so its open steps are carried over;
        a draft awaiting approval is simply dropped.

        Raises:
            StateTransitionError: If no shift is awaiting approval or executing
        """
        now = self._now(now)
        try:
            state = self.workspace.state_tracker().read()
        except StoreCorruptionError as e:
            alert_store_corruption(self.notifier, e, "engine")
            raise

        if state.status not in (ShiftStatus.EXECUTING, ShiftStatus.AWAITING_APPROVAL):
            raise StateTransitionError(
                f"Nothing to cancel while {state.status.value}",
                current_state=state.status.value,
                attempted_transition=ShiftStatus.CANCELLED.value,
            )

        self.workspace.state_tracker().update(
            lambda s: s.with_status(ShiftStatus.CANCELLED, now, cancel_reason=reason),
            trigger="cancel"
        )
        self.logger.warning("Shift cancelled", shift_id=state.shift_id, reason=reason)
        return self.archiver.archive(now, ArchiveReason.CANCELLED)

    def log_fact(self, text: str, now: Optional[datetime] = None) -> Optional[ContextEntry]:
        """Record an operational fact for future steps and shifts."""
        return self.workspace.context_log().append(text, self._now(now))

    def status(self) -> dict[str, Any]:
        """Current shift state plus plan and carryover summaries."""
        try:
            state = self.workspace.state_tracker().read()
            plan = self.workspace.plan_store().load()
            carryover = self.workspace.carryover_store().load()
        except StoreCorruptionError as e:
            alert_store_corruption(self.notifier, e, "engine")
            raise

        summary = state.to_dict()
        summary["plan"] = None
        if plan is not None and plan.shift_id == state.shift_id:
            summary["plan"] = {
                "approved": plan.is_approved,
                "counts": plan.counts(),
                "steps": [
                    {"id": step.id, "status": step.status.value, "attempts": step.attempt_count}
                    for step in plan.ordered_steps()
                ],
            }
        summary["carryover"] = {
            "source_shift": carryover.source_shift,
            "tasks": [task.id for task in carryover.tasks],
        } if carryover is not None else None
        return summary
