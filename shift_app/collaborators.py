"""
External collaborator contracts.

The engine never performs work, talks to an approver, or gathers priority
signals itself. It calls these interfaces, whose concrete implementations
live in ``shift_app.delivery`` (or in tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from .plan.models import BlockKind, Step, TaskProposal
from .utils.time import ensure_utc, format_timestamp, parse_timestamp


class NotificationLevel(str, Enum):
    """Notification severity, ordered."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return ("info", "warning", "critical").index(self.value)


@dataclass(frozen=True)
class StepAssignment:
    """Everything a work performer gets for one step: its text and the context log."""
    step_id: str
    task_id: str
    description: str
    sub_actions: tuple = ()
    scope_bound: int = 1
    estimated_minutes: int = 0
    external_effect: bool = False
    attempt: int = 1
    context: tuple = ()                              # Context log lines, oldest first

    @classmethod
    def for_step(cls, step: Step, context: list[str]) -> "StepAssignment":
        return cls(
            step_id=step.id,
            task_id=step.task_id,
            description=step.description,
            sub_actions=tuple(step.sub_actions),
            scope_bound=step.scope_bound,
            estimated_minutes=step.estimated_minutes,
            external_effect=step.external_effect,
            attempt=step.attempt_count + 1,
            context=tuple(context),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "task_id": self.task_id,
            "description": self.description,
            "sub_actions": list(self.sub_actions),
            "scope_bound": self.scope_bound,
            "estimated_minutes": self.estimated_minutes,
            "external_effect": self.external_effect,
            "attempt": self.attempt,
            "context": list(self.context),
        }


@dataclass(frozen=True)
class WorkResult:
    """Outcome of one step's external action."""
    success: bool
    text: str = ""
    failure_kind: Optional[BlockKind] = None
    actions_taken: Optional[int] = None              # Sub-actions actually performed, if reported
    lessons: tuple = ()                              # Facts to append to the context log

    @classmethod
    def ok(cls, text: str, actions_taken: Optional[int] = None, lessons: tuple = ()) -> "WorkResult":
        return cls(success=True, text=text, actions_taken=actions_taken, lessons=tuple(lessons))

    @classmethod
    def failed(cls, text: str, kind: BlockKind = BlockKind.TRANSIENT, lessons: tuple = ()) -> "WorkResult":
        return cls(success=False, text=text, failure_kind=kind, lessons=tuple(lessons))


class ApprovalDecision(str, Enum):
    """Every answer an approval channel can deliver."""
    APPROVE_ALL = "approve_all"
    APPROVE_SUBSET = "approve_subset"
    MODIFY = "modify"
    ADD_TASK = "add_task"
    SKIP = "skip"
    NO_RESPONSE_TIMEOUT = "no_response_timeout"


@dataclass(frozen=True)
class ApprovalRequest:
    """Draft plan summary sent to the approver."""
    shift_id: str
    shift_name: str
    requested_at: datetime
    tasks: tuple = ()                                # Task summaries (dicts)
    carryover_task_ids: tuple = ()
    blocked: tuple = ()                              # From the previous handoff
    needs_review: tuple = ()
    lessons: tuple = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "shift_id": self.shift_id,
            "shift_name": self.shift_name,
            "requested_at": format_timestamp(self.requested_at),
            "tasks": list(self.tasks),
            "carryover_task_ids": list(self.carryover_task_ids),
            "blocked": list(self.blocked),
            "needs_review": list(self.needs_review),
            "lessons": list(self.lessons),
        }


@dataclass(frozen=True)
class ApprovalResponse:
    """The approver's answer to one request."""
    decision: ApprovalDecision
    approver: str = "user"
    task_ids: tuple = ()                             # approve_subset
    tasks: tuple = ()                                # TaskProposal, for modify / add_task
    note: Optional[str] = None
    responded_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovalResponse":
        """
        Build a response from a plain mapping.

        Raises:
            ValueError: If the decision or a task proposal is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Approval response must be a mapping, got {type(data).__name__}")
        try:
            decision = ApprovalDecision(data["decision"])
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid approval decision: {data.get('decision')!r}") from e

        return cls(
            decision=decision,
            approver=str(data.get("approver") or "user"),
            task_ids=tuple(str(t) for t in data.get("task_ids") or ()),
            tasks=tuple(TaskProposal.from_dict(t, source="approval") for t in data.get("tasks") or ()),
            note=data.get("note"),
            responded_at=_coerce_timestamp(data.get("responded_at")),
        )


def _coerce_timestamp(value: Any) -> Optional[datetime]:
    # YAML already turns unquoted ISO timestamps into datetimes
    if isinstance(value, datetime):
        return ensure_utc(value)
    return parse_timestamp(value) if value else None


class WorkPerformer(ABC):
    """Performs one step's declared action; opaque to the engine."""

    @abstractmethod
    def perform(self, assignment: StepAssignment) -> WorkResult:
        """
        Perform the step, bounded to its declared scope.

        May also raise a ``StepFailure`` subclass instead of returning a
        failed result.
        """
        pass


class ApprovalChannel(ABC):
    """Asynchronous approval round for a draft plan."""

    @abstractmethod
    def request(self, request: ApprovalRequest) -> None:
        """Publish a request for approval."""
        pass

    @abstractmethod
    def poll(self, shift_id: str) -> Optional[ApprovalResponse]:
        """Return the response for ``shift_id``, or ``None`` if none has arrived."""
        pass


class SignalSource(ABC):
    """Supplies priority and urgency signals as task proposals."""

    @abstractmethod
    def collect(self, shift_name: str, shift_date: date) -> list[TaskProposal]:
        pass


class Notifier(ABC):
    """Out-of-band alerts and summaries."""

    @abstractmethod
    def notify(self, level: NotificationLevel, message: str,
               context: Optional[dict[str, Any]] = None) -> bool:
        """Send one notification. Returns True if it was delivered."""
        pass

