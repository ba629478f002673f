"""
Cycle executor.

One call to ``CycleExecutor.run_cycle`` is one stateless invocation: every
decision is made from the durable stores, a step is claimed and persisted
before its action starts, and the outcome is recorded against the claim it
was started under. An invocation that dies mid-step leaves the claim behind;
the next invocation releases it once it is older than the staleness window.
A staleness window shorter than a real step's run time means that step can
be executed twice.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

import structlog

from .archiver import ArchiveReason, HandoffArchiver
from .collaborators import StepAssignment, WorkPerformer, WorkResult
from .config.defaults import DefaultConfig
from .delivery.alerts import alert_store_corruption
from .errors import StepFailure, StoreCorruptionError
from .models.handoff import HandoffDocument
from .persistence.workspace import ShiftWorkspace
from .plan.models import BlockKind, Plan, Step, StepStatus
from .plan.transitions import transition_handler
from .state.models import ShiftStatus
from .utils.time import elapsed_seconds, is_stale

logger = structlog.get_logger(__name__)


class CycleOutcome(str, Enum):
    """What one invocation did."""
    NOT_EXECUTING = "not_executing"      # No active shift; nothing touched
    BUSY = "busy"                        # Another invocation holds a live claim
    WAITING = "waiting"                  # Only blocked steps not yet due for re-check
    EXECUTED = "executed"                # At least one step was attempted
    HANDED_OFF = "handed_off"            # Shift closed by the archiver


@dataclass(frozen=True)
class StepRun:
    """One attempted step within an invocation."""
    step_id: str
    status: str                          # Resulting step status, or "discarded"
    duration_seconds: float
    detail: str = ""


@dataclass(frozen=True)
class CycleResult:
    """Result of one invocation."""
    outcome: CycleOutcome
    steps: tuple = ()                    # StepRun
    reclaimed: tuple = ()                # Step ids released from stale claims
    handoff: Optional[HandoffDocument] = None


class CycleExecutor:
    """The per-invocation state machine over the plan store."""

    def __init__(
        self,
        workspace: ShiftWorkspace,
        config: DefaultConfig,
        performer: WorkPerformer,
        archiver: HandoffArchiver,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.workspace = workspace
        self.config = config
        self.params = config.executor
        self.performer = performer
        self.archiver = archiver
        self.notifier = archiver.notifier
        self.monotonic = monotonic
        self.tracker = workspace.state_tracker()
        self.plan_store = workspace.plan_store()
        self.context_log = workspace.context_log()
        self.logger = logger

    def run_cycle(self, now: datetime) -> CycleResult:
        """
        Run one invocation.

        Raises:
            StoreCorruptionError: After alerting; no store is modified
        """
        try:
            return self._run_cycle(now)
        except StoreCorruptionError as e:
            alert_store_corruption(self.notifier, e, "executor")
            raise

    def _run_cycle(self, now: datetime) -> CycleResult:
        state = self.tracker.read()
        if state.status != ShiftStatus.EXECUTING:
            self.logger.info("No shift executing, nothing to do", status=state.status.value)
            return CycleResult(outcome=CycleOutcome.NOT_EXECUTING)

        if state.window_elapsed(now):
            self.logger.info("Shift window elapsed", shift_id=state.shift_id,
                             window_end=state.window_end.isoformat())
            handoff = self.archiver.archive(now, ArchiveReason.WINDOW_ELAPSED)
            return CycleResult(outcome=CycleOutcome.HANDED_OFF, handoff=handoff)

        if state.window_start is not None and now < state.window_start:
            self.logger.info("Shift window has not started", shift_id=state.shift_id,
                             window_start=state.window_start.isoformat())
            return CycleResult(outcome=CycleOutcome.WAITING)

        shift_id = state.shift_id
        plan = self._load_plan(shift_id)

        reclaimed = self._release_stale_claims(plan, now)
        if reclaimed:
            self.plan_store.save(plan)

        live_claims = plan.steps_with_status(StepStatus.CLAIMED)
        if live_claims:
            self.logger.info("Live claim held by another invocation",
                             step_id=live_claims[0].id, claimed_at=live_claims[0].claimed_at.isoformat())
            return CycleResult(outcome=CycleOutcome.BUSY, reclaimed=tuple(reclaimed))

        runs = []
        lessons = []
        attempted = set()
        current = now

        while len(runs) < self.params.max_steps_per_invocation:
            step = self._select_step(plan, current, attempted)
            if step is None:
                break
            attempted.add(step.id)

            run, plan, shift_open = self._execute_step(step, plan, shift_id, current, lessons)
            runs.append(run)
            current = current + timedelta(seconds=run.duration_seconds)

            if not shift_open:
                break
            if run.duration_seconds > self.params.fast_completion_seconds:
                self.logger.debug("Step was not a fast completion, stopping", step_id=step.id,
                                  duration_seconds=run.duration_seconds)
                break
            if state.window_elapsed(current):
                break

        if lessons:
            self.context_log.extend(lessons, current)

        if not runs:
            if self._has_waiting_blocks(plan):
                self.logger.info("Only blocked steps remain, waiting for re-check", shift_id=shift_id)
                return CycleResult(outcome=CycleOutcome.WAITING, reclaimed=tuple(reclaimed))
            handoff = self.archiver.archive(now, ArchiveReason.NO_RUNNABLE_STEPS)
            return CycleResult(outcome=CycleOutcome.HANDED_OFF, reclaimed=tuple(reclaimed), handoff=handoff)

        final_plan = plan
        self.tracker.update(
            lambda s: s.with_cycle(final_plan, current)
            if s.status == ShiftStatus.EXECUTING and s.shift_id == shift_id else s,
            trigger="cycle"
        )
        self.logger.info("Cycle complete", shift_id=shift_id, steps=[r.step_id for r in runs],
                         reclaimed=reclaimed)
        return CycleResult(outcome=CycleOutcome.EXECUTED, steps=tuple(runs), reclaimed=tuple(reclaimed))

    def _load_plan(self, shift_id: str) -> Plan:
        plan = self.plan_store.require()
        if plan.shift_id != shift_id:
            raise StoreCorruptionError(
                f"plan store belongs to {plan.shift_id}, shift state to {shift_id}",
                store="plan",
                path=str(self.plan_store.path)
            )
        return plan

    def _release_stale_claims(self, plan: Plan, now: datetime) -> list[str]:
        reclaimed = []
        for step in plan.steps_with_status(StepStatus.CLAIMED):
            if is_stale(step.claimed_at, now, self.params.staleness_minutes):
                plan.replace_step(transition_handler.release_stale(step, now, self.params.staleness_minutes))
                reclaimed.append(step.id)
        if reclaimed:
            self.logger.warning("Released stale claims", step_ids=reclaimed,
                                staleness_minutes=self.params.staleness_minutes)
        return reclaimed

    def _select_step(self, plan: Plan, now: datetime, attempted: set) -> Optional[Step]:
        """
        Pick the next runnable step.

        Pending steps come first in (tier, task, step) order; a step is only
        runnable once every earlier step of its task is terminal. Blocked
        steps are re-checked only when no pending step is runnable.
        """
        ordered = [s for s in plan.ordered_steps() if s.id not in attempted]

        for step in ordered:
            if step.status == StepStatus.PENDING and plan.predecessors_terminal(step):
                return step

        for step in ordered:
            if step.status == StepStatus.BLOCKED and self._recheck_due(step, now) \
                    and plan.predecessors_terminal(step):
                requeued = transition_handler.requeue(step, now)
                plan.replace_step(requeued)
                return requeued

        return None

    def _recheck_due(self, step: Step, now: datetime) -> bool:
        if step.block_kind == BlockKind.USER_INPUT:
            return False
        if step.blocked_at is None:
            return True
        return elapsed_seconds(step.blocked_at, now) >= self.params.blocked_recheck_minutes * 60

    def _has_waiting_blocks(self, plan: Plan) -> bool:
        return any(s.block_kind != BlockKind.USER_INPUT for s in plan.steps_with_status(StepStatus.BLOCKED))

    def _execute_step(
        self,
        step: Step,
        plan: Plan,
        shift_id: str,
        now: datetime,
        lessons: list
    ) -> tuple[StepRun, Plan, bool]:
        """
        Claim, perform and record one step.

        Returns:
            The run, the plan as re-read after the action, and whether the
            shift is still executing
        """
        context = [entry.render() for entry in self.context_log.read()]

        claimed = transition_handler.claim(step, now)
        plan.replace_step(claimed)
        self.plan_store.save(plan)

        assignment = StepAssignment.for_step(claimed, context)
        started = self.monotonic()
        result = self._perform(assignment)
        duration = max(self.monotonic() - started, 0.0)
        finished_at = now + timedelta(seconds=duration)

        # Other invocations may have run while the action was in flight
        state = self.tracker.read()
        plan = self.plan_store.require()
        if state.status != ShiftStatus.EXECUTING or state.shift_id != shift_id:
            lessons.append(f"Result of step {step.id} arrived after shift {shift_id} closed "
                           f"and was not recorded: {self._summarize(result.text)}")
            self.logger.warning("Shift closed during step, result discarded", step_id=step.id,
                                status=state.status.value)
            return StepRun(step.id, "discarded", duration, result.text), plan, False

        current = plan.get_step(step.id)
        if current is None or current.status != StepStatus.CLAIMED or current.claimed_at != claimed.claimed_at:
            lessons.append(f"Result of step {step.id} was not recorded because its claim "
                           f"was released while it ran: {self._summarize(result.text)}")
            self.logger.warning("Claim lost during step, result discarded", step_id=step.id,
                                status=current.status.value if current else None)
            return StepRun(step.id, "discarded", duration, result.text), plan, True

        updated = self._record_result(current, result, finished_at)
        plan.replace_step(updated)
        self.plan_store.save(plan)
        lessons.extend(result.lessons)

        return StepRun(step.id, updated.status.value, duration, result.text), plan, True

    def _perform(self, assignment: StepAssignment) -> WorkResult:
        """Run the performer; every failure becomes a classified result."""
        try:
            result = self.performer.perform(assignment)
        except StepFailure as e:
            self.logger.info("Step failed", step_id=assignment.step_id, kind=e.kind, error=str(e))
            return WorkResult.failed(str(e), BlockKind(e.kind))
        except Exception as e:
            # Unclassified errors are retried like transient failures
            self.logger.warning("Step raised an unexpected error", step_id=assignment.step_id,
                                error=str(e), exc_info=True)
            return WorkResult.failed(f"{type(e).__name__}: {e}", BlockKind.TRANSIENT)

        if not isinstance(result, WorkResult):
            return WorkResult.failed(f"Work performer returned {type(result).__name__}, not a WorkResult")
        return result

    def _record_result(self, step: Step, result: WorkResult, at: datetime) -> Step:
        if result.success:
            if result.actions_taken is not None and result.actions_taken > step.scope_bound:
                return transition_handler.block(
                    step, at, BlockKind.USER_INPUT,
                    f"scope exceeded: {result.actions_taken} actions for a bound of {step.scope_bound}"
                )
            return transition_handler.complete(step, at, self._summarize(result.text) or "done")

        kind = result.failure_kind or BlockKind.TRANSIENT
        reason = self._summarize(result.text) or f"{kind.value} failure"
        blocked = transition_handler.block(
            step, at, kind, reason, count_attempt=kind != BlockKind.DEPENDENCY
        )

        if kind == BlockKind.TRANSIENT and blocked.attempt_count >= self.params.retry_ceiling:
            return transition_handler.skip(
                blocked, at, f"retry ceiling of {self.params.retry_ceiling} reached; last error: {reason}"
            )
        return blocked

    def _summarize(self, text: str) -> str:
        text = " ".join(str(text or "").split())
        limit = self.params.result_summary_chars
        return text if len(text) <= limit else text[:limit - 3] + "..."
