"""
Planner.

Runs once per shift window (and again on every trigger while an approval is
outstanding). Builds a draft from unconsumed carryover and incoming signals,
obtains approval, and activates the approved plan. Unapproved work is never
activated: without a response the shift either narrows to carryover that
was approved before or keeps waiting.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .archiver import ArchiveReason, HandoffArchiver
from .collaborators import (
    ApprovalChannel,
    ApprovalDecision,
    ApprovalRequest,
    ApprovalResponse,
    SignalSource,
)
from .config.defaults import DefaultConfig
from .delivery.alerts import alert_store_corruption
from .errors import ApprovalError, ConfigurationError, StoreCorruptionError
from .logging.config import get_planner_logger
from .models.handoff import HandoffDocument
from .persistence.workspace import ShiftWorkspace
from .plan.decomposition import DecompositionPolicy
from .plan.models import BlockKind, Carryover, Plan, Step, StepStatus, Task, TaskProposal
from .state.models import ShiftState, ShiftStatus
from .utils.time import locate_window, shift_id_for

logger = get_planner_logger(__name__)

AUTO_CARRYOVER_APPROVER = "auto:carryover"
TIMEOUT_CARRYOVER_APPROVER = "auto:timeout-carryover"


class PlanningOutcome(str, Enum):
    """What one planner run did."""
    ALREADY_EXECUTING = "already_executing"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    NARROWED = "narrowed"
    CANCELLED = "cancelled"
    SHIFT_CLOSED = "shift_closed"
    NOTHING_TO_PLAN = "nothing_to_plan"


@dataclass(frozen=True)
class PlanningResult:
    """Result of one planner run."""
    outcome: PlanningOutcome
    shift_id: Optional[str]
    plan: Optional[Plan] = None
    decision: Optional[ApprovalDecision] = None
    handoff: Optional[HandoffDocument] = None


def _awaits_user(plan: Plan, task: Task) -> bool:
    """True if one of the task's steps is blocked until a user answers."""
    return any(
        plan.steps[step_id].status == StepStatus.BLOCKED
        and plan.steps[step_id].block_kind == BlockKind.USER_INPUT
        for step_id in task.step_ids
    )


class Planner:
    """Turns signals, carryover and an approval response into an executing plan."""

    def __init__(
        self,
        workspace: ShiftWorkspace,
        config: DefaultConfig,
        signals: SignalSource,
        approvals: ApprovalChannel,
        archiver: HandoffArchiver
    ):
        self.workspace = workspace
        self.config = config
        self.signals = signals
        self.approvals = approvals
        self.archiver = archiver
        self.notifier = archiver.notifier
        self.policy = DecompositionPolicy(config.decomposition)
        self.tracker = workspace.state_tracker()
        self.plan_store = workspace.plan_store()
        self.carryover_store = workspace.carryover_store()
        self.context_log = workspace.context_log()
        self.logger = logger

    def plan_shift(self, shift_name: str, now: datetime) -> PlanningResult:
        """
        Plan (or keep planning) the current or next occurrence of ``shift_name``.

        Raises:
            ConfigurationError: Unknown shift name
            DecompositionError: A proposal violates the sizing policy; nothing is written
            ApprovalError: The approval response is malformed
            StoreCorruptionError: After alerting; nothing is written
        """
        try:
            return self._plan_shift(shift_name, now)
        except StoreCorruptionError as e:
            alert_store_corruption(self.notifier, e, "planner")
            raise

    def _plan_shift(self, shift_name: str, now: datetime) -> PlanningResult:
        try:
            window = self.config.shifts.get(shift_name)
        except KeyError as e:
            raise ConfigurationError(f"Unknown shift {shift_name!r}") from e

        shift_date, window_start, window_end = locate_window(now, window.start, window.end)
        shift_id = shift_id_for(shift_date, shift_name)

        state = self.tracker.read()
        handoff = None

        if state.status == ShiftStatus.EXECUTING:
            if not state.window_elapsed(now):
                self.logger.info("Shift already executing", shift_id=state.shift_id)
                return PlanningResult(PlanningOutcome.ALREADY_EXECUTING, state.shift_id)
            handoff = self.archiver.archive(now, ArchiveReason.WINDOW_ELAPSED)
            state = self.tracker.read()

        if state.status == ShiftStatus.CANCELLED:
            handoff = self._finish_cancelled(state, now) or handoff

        if state.shift_id == shift_id:
            if state.status == ShiftStatus.AWAITING_APPROVAL:
                draft = self.plan_store.require()
                if draft.shift_id != shift_id:
                    raise StoreCorruptionError(
                        f"plan store belongs to {draft.shift_id}, shift state to {shift_id}",
                        store="plan",
                        path=str(self.plan_store.path)
                    )
                if draft.is_approved:
                    return self._finish_activation(draft, now)
                return self._resume(draft, state, now)

            if state.status in (ShiftStatus.COMPLETED, ShiftStatus.CANCELLED):
                self.logger.info("Shift already closed", shift_id=shift_id, status=state.status.value)
                return PlanningResult(PlanningOutcome.SHIFT_CLOSED, shift_id, handoff=handoff)

        stored = self.plan_store.load()
        if stored is not None and stored.shift_id == shift_id and stored.is_approved:
            return replace(self._finish_activation(stored, now), handoff=handoff)

        if state.status == ShiftStatus.AWAITING_APPROVAL:
            self.logger.warning("Superseding unanswered approval request",
                                previous_shift_id=state.shift_id, shift_id=shift_id)

        carryover = self.carryover_store.load()
        draft = self._build_draft(shift_name, shift_id, shift_date, window_start, window_end, carryover)

        if not draft.tasks:
            self.logger.info("Nothing to plan", shift_id=shift_id)
            return PlanningResult(PlanningOutcome.NOTHING_TO_PLAN, shift_id, handoff=handoff)

        if self._auto_approvable(draft, carryover):
            approved = draft.approved(AUTO_CARRYOVER_APPROVER, now, auto=True)
            self.context_log.append(
                f"Shift {shift_id} auto-approved {len(approved.tasks)} carryover task(s) from "
                f"{carryover.source_shift}: {', '.join(t.id for t in approved.tasks)}",
                now
            )
            result = self._activate(approved, now, PlanningOutcome.AUTO_APPROVED, None)
            return replace(result, handoff=handoff)

        self.plan_store.save(draft)
        self.approvals.request(self._approval_request(draft, now))
        state = self.tracker.update(
            lambda s: s.begin(
                ShiftStatus.AWAITING_APPROVAL, now, shift_name, shift_id, shift_date,
                window_start, window_end,
                approval_requested_at=now,
                carryover_from_shift=draft.carryover_from,
            ).with_counts(draft),
            trigger="plan_drafted"
        )
        self.logger.info("Approval requested", shift_id=shift_id, tasks=len(draft.tasks),
                         steps=len(draft.steps))

        result = self._resume(draft, state, now)
        return replace(result, handoff=handoff)

    def _finish_activation(self, plan: Plan, now: datetime) -> PlanningResult:
        """Activation was interrupted after the approved plan was written."""
        self.logger.warning("Finishing interrupted activation", shift_id=plan.shift_id)
        outcome = PlanningOutcome.AUTO_APPROVED if plan.auto_approved else PlanningOutcome.APPROVED
        return self._activate(plan, now, outcome, None)

    def _finish_cancelled(self, state: ShiftState, now: datetime) -> Optional[HandoffDocument]:
        """Archive a cancelled, approved plan whose archiving never finished."""
        plan = self.plan_store.load()
        if plan is None or not plan.is_approved or plan.shift_id != state.shift_id:
            return None
        stored = self.workspace.handoff_store().load()
        if stored is not None and stored.shift_id == plan.shift_id:
            return None
        return self.archiver.archive(now, ArchiveReason.CANCELLED)

    def _build_draft(self, shift_name, shift_id, shift_date, window_start, window_end,
                     carryover: Optional[Carryover]) -> Plan:
        tasks: list[Task] = []
        steps: dict[str, Step] = {}

        if carryover is not None:
            for task in carryover.tasks:
                tasks.append(task)
                for step in carryover.steps_for(task):
                    steps[step.id] = step

        taken_ids = {t.id for t in tasks} | {t.source_id for t in tasks}
        new_tasks, new_steps = self._decompose(
            [p for p in self.signals.collect(shift_name, shift_date)
             if self._is_new(p, taken_ids)]
        )
        tasks.extend(new_tasks)
        steps.update(new_steps)

        return Plan(
            shift_id=shift_id,
            shift_name=shift_name,
            date=shift_date,
            window_start=window_start,
            window_end=window_end,
            tasks=tasks,
            steps=steps,
            carryover_from=carryover.source_shift if carryover is not None and carryover.tasks else None,
        )

    def _is_new(self, proposal: TaskProposal, taken_ids: set) -> bool:
        if proposal.id in taken_ids:
            self.logger.info("Signal already covered by carryover", task_id=proposal.id)
            return False
        return True

    def _decompose(self, proposals: list[TaskProposal]) -> tuple[list[Task], dict[str, Step]]:
        """Decompose proposals and validate the result as a whole."""
        tasks: list[Task] = []
        steps: dict[str, Step] = {}
        for proposal in proposals:
            proposal_tasks, proposal_steps = self.policy.decompose(proposal)
            tasks.extend(proposal_tasks)
            steps.update({s.id: s for s in proposal_steps})
        self.policy.check(tasks, steps)
        return tasks, steps

    def _auto_approvable(self, draft: Plan, carryover: Optional[Carryover]) -> bool:
        if not self.config.approval.auto_approve_carryover or carryover is None:
            return False
        if not carryover.approved or not all(task.carryover for task in draft.tasks):
            return False
        if any(step.external_effect for step in draft.steps.values()):
            return False
        # Only an approver can unblock these; never re-activate them silently
        return not any(_awaits_user(draft, task) for task in draft.tasks)

    def _approval_request(self, draft: Plan, now: datetime) -> ApprovalRequest:
        previous = self.workspace.handoff_store().load()
        return ApprovalRequest(
            shift_id=draft.shift_id,
            shift_name=draft.shift_name,
            requested_at=now,
            tasks=tuple(
                {
                    "id": task.id,
                    "title": task.title,
                    "priority": task.priority.value,
                    "carryover": task.carryover,
                    "steps": [
                        {
                            "id": step_id,
                            "description": draft.steps[step_id].description,
                            "status": draft.steps[step_id].status.value,
                            "external_effect": draft.steps[step_id].external_effect,
                        }
                        for step_id in task.step_ids
                    ],
                }
                for task in draft.tasks
            ),
            carryover_task_ids=tuple(t.id for t in draft.tasks if t.carryover),
            blocked=tuple(f"{i.step_id}: {i.detail}" for i in previous.blocked) if previous else (),
            needs_review=tuple(f"{i.step_id}: {i.detail}" for i in previous.needs_review) if previous else (),
            lessons=tuple(lesson.text for lesson in previous.lessons) if previous else (),
        )

    def _resume(self, draft: Plan, state: ShiftState, now: datetime) -> PlanningResult:
        """Poll for the approval of a stored draft."""
        response = self.approvals.poll(draft.shift_id)

        if response is None:
            deadline = (state.approval_requested_at or now) + timedelta(minutes=self.config.approval.timeout_minutes)
            if now < deadline:
                return PlanningResult(PlanningOutcome.AWAITING_APPROVAL, draft.shift_id, plan=draft)
            response = ApprovalResponse(decision=ApprovalDecision.NO_RESPONSE_TIMEOUT, approver="timeout")

        return self._apply_response(draft, response, now)

    def _apply_response(self, draft: Plan, response: ApprovalResponse, now: datetime) -> PlanningResult:
        decision = response.decision
        self.logger.info("Applying approval decision", shift_id=draft.shift_id,
                         decision=decision.value, approver=response.approver)

        if decision == ApprovalDecision.SKIP:
            reason = response.note or f"skipped by {response.approver}"
            self.tracker.update(
                lambda s: s.with_status(ShiftStatus.CANCELLED, now, cancel_reason=reason),
                trigger="approval:skip"
            )
            return PlanningResult(PlanningOutcome.CANCELLED, draft.shift_id, plan=draft, decision=decision)

        if decision == ApprovalDecision.NO_RESPONSE_TIMEOUT:
            return self._on_timeout(draft, now)

        handlers: dict[ApprovalDecision, Callable[[Plan, ApprovalResponse], Plan]] = {
            ApprovalDecision.APPROVE_ALL: lambda plan, _: plan,
            ApprovalDecision.APPROVE_SUBSET: self._approve_subset,
            ApprovalDecision.MODIFY: self._modify,
            ApprovalDecision.ADD_TASK: self._add_tasks,
        }
        plan = handlers[decision](draft, response)
        approved = plan.approved(response.approver, now)
        return self._activate(approved, now, PlanningOutcome.APPROVED, decision)

    def _on_timeout(self, draft: Plan, now: datetime) -> PlanningResult:
        decision = ApprovalDecision.NO_RESPONSE_TIMEOUT
        carried = [t for t in draft.tasks if t.carryover and not _awaits_user(draft, t)]

        if self.config.approval.on_timeout != "carryover_only" or not carried:
            self.logger.info("No approval yet, still waiting", shift_id=draft.shift_id,
                             policy=self.config.approval.on_timeout)
            return PlanningResult(PlanningOutcome.AWAITING_APPROVAL, draft.shift_id, plan=draft, decision=decision)

        narrowed = self._keep(draft, lambda task: task in carried).approved(
            TIMEOUT_CARRYOVER_APPROVER, now, auto=True
        )
        self.context_log.append(
            f"Approval for shift {draft.shift_id} timed out; narrowed to {len(narrowed.tasks)} "
            f"previously approved carryover task(s): {', '.join(t.id for t in narrowed.tasks)}",
            now
        )
        return self._activate(narrowed, now, PlanningOutcome.NARROWED, decision)

    def _approve_subset(self, draft: Plan, response: ApprovalResponse) -> Plan:
        selected = set(response.task_ids)
        unknown = [i for i in selected if not any(t.refers_to(i) for t in draft.tasks)]
        if unknown:
            raise ApprovalError(f"Unknown task ids in approval: {', '.join(sorted(unknown))}",
                                decision=response.decision.value)
        return self._keep(draft, lambda task: any(task.refers_to(i) for i in selected))

    def _modify(self, draft: Plan, response: ApprovalResponse) -> Plan:
        """Replace proposals by id, keeping each replacement at the original's position."""
        plan = self._keep(draft, lambda task: True)
        for proposal in response.tasks:
            positions = [i for i, t in enumerate(plan.tasks) if t.refers_to(proposal.id)]
            if not positions:
                raise ApprovalError(f"Cannot modify unknown task {proposal.id!r}",
                                    decision=response.decision.value)

            new_tasks, new_steps = self._decompose([proposal])
            removed = [plan.tasks[i] for i in positions]
            for task in removed:
                for step_id in task.step_ids:
                    plan.steps.pop(step_id, None)

            kept = [t for i, t in enumerate(plan.tasks) if i not in positions]
            insert_at = positions[0]
            plan.tasks = kept[:insert_at] + new_tasks + kept[insert_at:]
            plan.steps.update(new_steps)

        return self._with_carryover_source(plan)

    def _add_tasks(self, draft: Plan, response: ApprovalResponse) -> Plan:
        if not response.tasks:
            raise ApprovalError("add_task response carries no tasks", decision=response.decision.value)

        existing = {t.id for t in draft.tasks} | {t.source_id for t in draft.tasks}
        duplicates = [p.id for p in response.tasks if p.id in existing]
        if duplicates:
            raise ApprovalError(f"Tasks already in the plan: {', '.join(duplicates)}",
                                decision=response.decision.value)

        new_tasks, new_steps = self._decompose(list(response.tasks))
        plan = self._keep(draft, lambda task: True)
        plan.tasks.extend(new_tasks)
        plan.steps.update(new_steps)
        return plan

    def _keep(self, draft: Plan, predicate: Callable[[Task], bool]) -> Plan:
        """Copy of ``draft`` with only the tasks matching ``predicate``."""
        tasks = [t for t in draft.tasks if predicate(t)]
        steps = {step_id: draft.steps[step_id] for t in tasks for step_id in t.step_ids}
        return self._with_carryover_source(replace(draft, tasks=tasks, steps=steps))

    @staticmethod
    def _with_carryover_source(plan: Plan) -> Plan:
        if not any(t.carryover for t in plan.tasks):
            plan.carryover_from = None
        return plan

    def _activate(self, plan: Plan, now: datetime, outcome: PlanningOutcome,
                  decision: Optional[ApprovalDecision]) -> PlanningResult:
        """
        Write the approved plan, consume its carryover, and start executing.

        Each write is safe to repeat, so an interrupted activation is
        finished by the next planner run.
        """
        self.plan_store.save(plan)

        carryover = self.carryover_store.load()
        if carryover is not None and carryover.tasks:
            kept = {t.id for t in plan.tasks}
            # Approver replacements stand in for every part of a split carryover task
            replaced = {t.source_id for t in plan.tasks if not t.carryover}
            consumed = {t.id for t in carryover.tasks if t.id in kept or t.source_id in replaced}
            if consumed:
                self.carryover_store.take(consumed, plan.shift_id, now)

        self.tracker.update(
            lambda s: s.begin(
                ShiftStatus.EXECUTING, now, plan.shift_name, plan.shift_id, plan.date,
                plan.window_start, plan.window_end,
                approved_at=plan.approved_at,
                approved_by=plan.approved_by,
                auto_approved=plan.auto_approved,
                carryover_from_shift=plan.carryover_from,
            ).with_counts(plan),
            trigger=f"approval:{outcome.value}"
        )
        self.logger.info("Plan activated", shift_id=plan.shift_id, approved_by=plan.approved_by,
                         auto_approved=plan.auto_approved, tasks=len(plan.tasks), steps=len(plan.steps))
        return PlanningResult(outcome, plan.shift_id, plan=plan, decision=decision)
