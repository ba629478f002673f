"""Handoff document produced at shift end and consumed by the next planner run"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..plan.models import SCHEMA_VERSION, BlockKind, Plan, Step, StepStatus
from ..utils.time import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class HandoffItem:
    """One step as reported in a handoff"""
    step_id: str
    task_id: str
    description: str
    status: StepStatus
    detail: Optional[str] = None                     # Result summary or block reason
    block_kind: Optional[BlockKind] = None
    attempt_count: int = 0

    @classmethod
    def from_step(cls, step: Step) -> "HandoffItem":
        detail = step.result_summary if step.status == StepStatus.DONE else step.block_reason
        return cls(
            step_id=step.id,
            task_id=step.task_id,
            description=step.description,
            status=step.status,
            detail=detail,
            block_kind=step.block_kind,
            attempt_count=step.attempt_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "task_id": self.task_id,
            "description": self.description,
            "status": self.status.value,
            "detail": self.detail,
            "block_kind": self.block_kind.value if self.block_kind else None,
            "attempt_count": self.attempt_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HandoffItem":
        block_kind = data.get("block_kind")
        return cls(
            step_id=data["step_id"],
            task_id=data["task_id"],
            description=data["description"],
            status=StepStatus(data["status"]),
            detail=data.get("detail"),
            block_kind=BlockKind(block_kind) if block_kind else None,
            attempt_count=int(data.get("attempt_count", 0)),
        )


@dataclass(frozen=True)
class Lesson:
    """Context log delta carried in a handoff"""
    timestamp: datetime
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": format_timestamp(self.timestamp), "text": self.text}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lesson":
        return cls(timestamp=parse_timestamp(data["timestamp"]), text=data["text"])


@dataclass(frozen=True)
class HandoffDocument:
    """Structured end-of-shift summary"""
    shift_id: str
    shift_name: str
    created_at: datetime
    reason: str
    final_status: str
    approved_by: Optional[str] = None
    auto_approved: bool = False
    completed: tuple = ()                            # HandoffItem, status done
    blocked: tuple = ()                              # HandoffItem, still blocked
    needs_review: tuple = ()                         # HandoffItem, skipped
    pending: tuple = ()                              # HandoffItem, never started
    carried_over: tuple = ()                         # Step ids forwarded to the next shift
    lessons: tuple = ()                              # Lesson
    counts: dict = field(default_factory=dict)

    @classmethod
    def from_plan(
        cls,
        plan: Plan,
        created_at: datetime,
        reason: str,
        final_status: str,
        carried_over: list[str],
        lessons: list[Lesson]
    ) -> "HandoffDocument":
        """Build the handoff from the final plan; every step is listed exactly once"""
        by_status = {status: [] for status in StepStatus}
        for step in plan.ordered_steps():
            by_status[step.status].append(HandoffItem.from_step(step))

        # An abandoned claim is reported as pending work
        pending = by_status[StepStatus.PENDING] + by_status[StepStatus.CLAIMED]

        return cls(
            shift_id=plan.shift_id,
            shift_name=plan.shift_name,
            created_at=created_at,
            reason=reason,
            final_status=final_status,
            approved_by=plan.approved_by,
            auto_approved=plan.auto_approved,
            completed=tuple(by_status[StepStatus.DONE]),
            blocked=tuple(by_status[StepStatus.BLOCKED]),
            needs_review=tuple(by_status[StepStatus.SKIPPED]),
            pending=tuple(pending),
            carried_over=tuple(carried_over),
            lessons=tuple(lessons),
            counts=plan.counts(),
        )

    @property
    def user_blocked(self) -> list[HandoffItem]:
        return [item for item in self.blocked if item.block_kind == BlockKind.USER_INPUT]

    @property
    def needs_attention(self) -> bool:
        return bool(self.needs_review or self.user_blocked)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "shift_id": self.shift_id,
            "shift_name": self.shift_name,
            "created_at": format_timestamp(self.created_at),
            "reason": self.reason,
            "final_status": self.final_status,
            "approved_by": self.approved_by,
            "auto_approved": self.auto_approved,
            "completed": [i.to_dict() for i in self.completed],
            "blocked": [i.to_dict() for i in self.blocked],
            "needs_review": [i.to_dict() for i in self.needs_review],
            "pending": [i.to_dict() for i in self.pending],
            "carried_over": list(self.carried_over),
            "lessons": [lesson.to_dict() for lesson in self.lessons],
            "counts": dict(self.counts),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HandoffDocument":
        def items(key: str) -> tuple:
            return tuple(HandoffItem.from_dict(i) for i in data.get(key) or ())

        return cls(
            shift_id=data["shift_id"],
            shift_name=data["shift_name"],
            created_at=parse_timestamp(data["created_at"]),
            reason=data["reason"],
            final_status=data["final_status"],
            approved_by=data.get("approved_by"),
            auto_approved=bool(data.get("auto_approved", False)),
            completed=items("completed"),
            blocked=items("blocked"),
            needs_review=items("needs_review"),
            pending=items("pending"),
            carried_over=tuple(data.get("carried_over") or ()),
            lessons=tuple(Lesson.from_dict(x) for x in data.get("lessons") or ()),
            counts=dict(data.get("counts") or {}),
        )

    def to_markdown(self) -> str:
        """Human-legible rendering of the handoff"""
        approval = self.approved_by or "-"
        if self.auto_approved:
            approval += " (auto)"

        lines = [
            f"# Handoff: {self.shift_id}",
            "",
            f"- Shift: {self.shift_name}",
            f"- Closed: {format_timestamp(self.created_at)} ({self.reason})",
            f"- Final status: {self.final_status}",
            f"- Approved by: {approval}",
            f"- Steps: {self.counts.get('done', 0)} done, {self.counts.get('blocked', 0)} blocked, "
            f"{self.counts.get('skipped', 0)} skipped, of {self.counts.get('total', 0)}",
            "",
        ]

        lines.append("## Completed")
        lines.extend(self._render_items(self.completed, with_detail=True))
        lines.append("")

        lines.append("## Blocked")
        for item in self.blocked:
            kind = item.block_kind.value if item.block_kind else "unknown"
            lines.append(f"- [{item.step_id}] {item.description} ({kind}, {item.attempt_count} attempts): "
                         f"{item.detail or 'no reason recorded'}")
        if not self.blocked:
            lines.append("- none")
        lines.append("")

        lines.append("## Needs review")
        for item in self.needs_review:
            lines.append(f"- [{item.step_id}] {item.description} ({item.attempt_count} attempts): "
                         f"{item.detail or 'no reason recorded'}")
        if not self.needs_review:
            lines.append("- none")
        lines.append("")

        lines.append("## Carried over")
        if self.carried_over:
            lines.extend(f"- {step_id}" for step_id in self.carried_over)
        else:
            lines.append("- none")
        lines.append("")

        lines.append("## Lessons")
        if self.lessons:
            lines.extend(f"- {format_timestamp(lesson.timestamp)}: {lesson.text}" for lesson in self.lessons)
        else:
            lines.append("- none")

        return "\n".join(lines) + "\n"

    @staticmethod
    def _render_items(items: tuple, with_detail: bool = False) -> list[str]:
        if not items:
            return ["- none"]
        rendered = []
        for item in items:
            line = f"- [{item.step_id}] {item.description}"
            if with_detail and item.detail:
                line += f": {item.detail}"
            rendered.append(line)
        return rendered
