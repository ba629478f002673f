"""
Step state transitions.

Every status change of a step goes through ``StepTransitionHandler`` so the
allowed-transition table is enforced and logged in one place:

    pending -> claimed
    claimed -> done | blocked | pending (stale reclaim)
    blocked -> pending | skipped
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

import structlog

from ..errors import StateTransitionError
from ..logging.config import get_state_logger, log_step_transition
from ..utils.time import is_stale
from .models import BlockKind, Step, StepStatus

logger = structlog.get_logger(__name__)
state_logger = get_state_logger(__name__)

ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: frozenset({StepStatus.CLAIMED}),
    StepStatus.CLAIMED: frozenset({StepStatus.DONE, StepStatus.BLOCKED, StepStatus.PENDING}),
    StepStatus.BLOCKED: frozenset({StepStatus.PENDING, StepStatus.SKIPPED}),
    StepStatus.DONE: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


def is_allowed(current: StepStatus, target: StepStatus) -> bool:
    """Check a transition against the allowed-transition table."""
    return target in ALLOWED_TRANSITIONS[current]


class StepTransitionHandler:
    """Applies validated, logged status transitions to steps."""

    def __init__(self):
        self.logger = logger
        self.state_logger = state_logger

    def _validate(self, step: Step, target: StepStatus) -> None:
        if not is_allowed(step.status, target):
            raise StateTransitionError(
                f"Invalid step transition from {step.status.value} to {target.value}",
                current_state=step.status.value,
                attempted_transition=target.value,
                context={"step_id": step.id}
            )

    def _apply(self, step: Step, target: StepStatus, trigger: str,
               context: Optional[dict] = None, **changes) -> Step:
        self._validate(step, target)
        new_step = replace(step, status=target, **changes)
        log_step_transition(
            self.state_logger,
            step_id=step.id,
            from_state=step.status.value,
            to_state=target.value,
            trigger=trigger,
            context=context
        )
        return new_step

    def claim(self, step: Step, now: datetime) -> Step:
        """pending -> claimed, stamping the claim time."""
        return self._apply(
            step, StepStatus.CLAIMED, "claim",
            context={"claimed_at": now.isoformat()},
            claimed_at=now,
        )

    def release_stale(self, step: Step, now: datetime, staleness_minutes: float) -> Step:
        """
        claimed -> pending for a claim older than the staleness window.

        Raises:
            StateTransitionError: If the claim is still live
        """
        if not is_stale(step.claimed_at, now, staleness_minutes):
            raise StateTransitionError(
                "Claim is still within the staleness window",
                current_state=step.status.value,
                attempted_transition=StepStatus.PENDING.value,
                context={"step_id": step.id}
            )
        return self._apply(
            step, StepStatus.PENDING, "stale_reclaim",
            context={
                "claimed_at": step.claimed_at.isoformat() if step.claimed_at else None,
                "staleness_minutes": staleness_minutes,
            },
            claimed_at=None,
        )

    def complete(self, step: Step, now: datetime, summary: str) -> Step:
        """claimed -> done with a brief result."""
        return self._apply(
            step, StepStatus.DONE, "success",
            result_summary=summary,
            finished_at=now,
            claimed_at=None,
            block_reason=None,
            block_kind=None,
            blocked_at=None,
        )

    def block(self, step: Step, now: datetime, kind: BlockKind, reason: str,
              count_attempt: bool = True) -> Step:
        """claimed -> blocked, recording the reason and failure kind."""
        attempts = step.attempt_count + 1 if count_attempt else step.attempt_count
        return self._apply(
            step, StepStatus.BLOCKED, f"failure:{kind.value}",
            context={"reason": reason, "attempt_count": attempts},
            claimed_at=None,
            attempt_count=attempts,
            block_reason=reason,
            block_kind=kind,
            blocked_at=now,
        )

    def requeue(self, step: Step, now: datetime) -> Step:
        """blocked -> pending when the block condition may have cleared."""
        if step.block_kind == BlockKind.USER_INPUT:
            raise StateTransitionError(
                "Steps waiting on user input are never requeued automatically",
                current_state=step.status.value,
                attempted_transition=StepStatus.PENDING.value,
                context={"step_id": step.id}
            )
        return self._apply(
            step, StepStatus.PENDING, "recheck",
            context={"previous_reason": step.block_reason, "requeued_at": now.isoformat()},
        )

    def skip(self, step: Step, now: datetime, reason: str) -> Step:
        """blocked -> skipped, flagged for human review."""
        return self._apply(
            step, StepStatus.SKIPPED, "exhausted",
            context={"reason": reason, "attempt_count": step.attempt_count},
            block_reason=reason,
            finished_at=now,
            needs_review=True,
        )


# Global handler instance
transition_handler = StepTransitionHandler()
