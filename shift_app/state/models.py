"""
Shift state data model.

A single durable record describing the active shift. Counters are never
incremented on their own; they are always re-derived from the plan store.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ..errors import StateTransitionError
from ..utils.time import format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from ..plan.models import Plan

SCHEMA_VERSION = 1


class ShiftStatus(str, Enum):
    """Shift lifecycle states."""
    IDLE = "idle"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


SHIFT_TRANSITIONS = {
    ShiftStatus.IDLE: frozenset({
        ShiftStatus.AWAITING_APPROVAL, ShiftStatus.EXECUTING, ShiftStatus.CANCELLED,
    }),
    ShiftStatus.AWAITING_APPROVAL: frozenset({
        ShiftStatus.AWAITING_APPROVAL, ShiftStatus.EXECUTING, ShiftStatus.CANCELLED,
    }),
    ShiftStatus.EXECUTING: frozenset({
        ShiftStatus.EXECUTING, ShiftStatus.COMPLETED, ShiftStatus.CANCELLED,
    }),
    ShiftStatus.COMPLETED: frozenset({
        ShiftStatus.IDLE, ShiftStatus.AWAITING_APPROVAL, ShiftStatus.EXECUTING, ShiftStatus.CANCELLED,
    }),
    ShiftStatus.CANCELLED: frozenset({
        ShiftStatus.CANCELLED, ShiftStatus.IDLE, ShiftStatus.AWAITING_APPROVAL, ShiftStatus.EXECUTING,
    }),
}


@dataclass(frozen=True)
class ShiftState:
    """Metadata for the active shift."""

    status: ShiftStatus = ShiftStatus.IDLE
    shift_name: Optional[str] = None
    shift_id: Optional[str] = None
    date: Optional[date] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    approval_requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    total_steps: int = 0
    completed: int = 0
    blocked: int = 0
    skipped: int = 0
    cycles_run: int = 0
    last_cycle_at: Optional[datetime] = None
    auto_approved: bool = False
    carryover_from_shift: Optional[str] = None
    cancel_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    def with_status(self, status: ShiftStatus, now: datetime, **changes) -> "ShiftState":
        """
        Transition to ``status`` (validated) and apply field changes.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        if status not in SHIFT_TRANSITIONS[self.status]:
            raise StateTransitionError(
                f"Invalid shift transition from {self.status.value} to {status.value}",
                current_state=self.status.value,
                attempted_transition=status.value,
                context={"shift_id": self.shift_id}
            )
        return replace(self, status=status, updated_at=now, **changes)

    def begin(
        self,
        status: ShiftStatus,
        now: datetime,
        shift_name: str,
        shift_id: str,
        shift_date: date,
        window_start: datetime,
        window_end: datetime,
        **changes
    ) -> "ShiftState":
        """
        Start a fresh record for a new shift, replacing every field.

        The status transition from the previous record is still validated.
        """
        if status not in SHIFT_TRANSITIONS[self.status]:
            raise StateTransitionError(
                f"Cannot begin shift {shift_id} from {self.status.value}",
                current_state=self.status.value,
                attempted_transition=status.value,
                context={"shift_id": shift_id}
            )
        return replace(
            ShiftState(),
            status=status,
            shift_name=shift_name,
            shift_id=shift_id,
            date=shift_date,
            window_start=window_start,
            window_end=window_end,
            updated_at=now,
            **changes
        )

    def with_counts(self, plan: "Plan") -> "ShiftState":
        """Counters re-derived from the plan store."""
        counts = plan.counts()
        return replace(
            self,
            total_steps=counts["total"],
            completed=counts["done"],
            blocked=counts["blocked"],
            skipped=counts["skipped"],
        )

    def with_cycle(self, plan: "Plan", now: datetime) -> "ShiftState":
        """Record one executed cycle and refresh counters."""
        return replace(
            self.with_counts(plan),
            cycles_run=self.cycles_run + 1,
            last_cycle_at=now,
            updated_at=now,
        )

    def window_elapsed(self, now: datetime) -> bool:
        return self.window_end is not None and now >= self.window_end

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "status": self.status.value,
            "shift_name": self.shift_name,
            "shift_id": self.shift_id,
            "date": self.date.isoformat() if self.date else None,
            "window_start": format_timestamp(self.window_start),
            "window_end": format_timestamp(self.window_end),
            "approval_requested_at": format_timestamp(self.approval_requested_at),
            "approved_at": format_timestamp(self.approved_at),
            "approved_by": self.approved_by,
            "total_steps": self.total_steps,
            "completed": self.completed,
            "blocked": self.blocked,
            "skipped": self.skipped,
            "cycles_run": self.cycles_run,
            "last_cycle_at": format_timestamp(self.last_cycle_at),
            "auto_approved": self.auto_approved,
            "carryover_from_shift": self.carryover_from_shift,
            "cancel_reason": self.cancel_reason,
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShiftState":
        shift_date = data.get("date")
        return cls(
            status=ShiftStatus(data["status"]),
            shift_name=data.get("shift_name"),
            shift_id=data.get("shift_id"),
            date=date.fromisoformat(shift_date) if shift_date else None,
            window_start=parse_timestamp(data.get("window_start")),
            window_end=parse_timestamp(data.get("window_end")),
            approval_requested_at=parse_timestamp(data.get("approval_requested_at")),
            approved_at=parse_timestamp(data.get("approved_at")),
            approved_by=data.get("approved_by"),
            total_steps=int(data.get("total_steps", 0)),
            completed=int(data.get("completed", 0)),
            blocked=int(data.get("blocked", 0)),
            skipped=int(data.get("skipped", 0)),
            cycles_run=int(data.get("cycles_run", 0)),
            last_cycle_at=parse_timestamp(data.get("last_cycle_at")),
            auto_approved=bool(data.get("auto_approved", False)),
            carryover_from_shift=data.get("carryover_from_shift"),
            cancel_reason=data.get("cancel_reason"),
            updated_at=parse_timestamp(data.get("updated_at")),
        )
