"""
Plan store data models: steps, tasks, plans and carryover drafts.

Steps and tasks are immutable; a Plan is the mutable in-memory container
that one invocation reads in full, changes, and writes back in full.
Dictionary round-trips are the only serialization boundary; the persistence
layer decides the byte format.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from ..utils.time import format_timestamp, parse_timestamp

SCHEMA_VERSION = 1


class StepStatus(str, Enum):
    """Five-state step lifecycle."""
    PENDING = "pending"
    CLAIMED = "claimed"
    DONE = "done"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({StepStatus.DONE, StepStatus.SKIPPED})


class PriorityTier(str, Enum):
    """Task priority tiers; P1 runs first."""
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        return int(self.value[1:])


class BlockKind(str, Enum):
    """Why a step is blocked."""
    TRANSIENT = "transient"
    DEPENDENCY = "dependency"
    USER_INPUT = "user_input"


@dataclass(frozen=True)
class Step:
    """Smallest atomic unit of work, executed within a single invocation."""

    id: str
    task_id: str
    description: str
    sub_actions: tuple = ()
    scope_bound: int = 1                             # Max sub-actions the step may perform
    estimated_minutes: int = 0
    external_effect: bool = False                    # Externally visible or destructive
    status: StepStatus = StepStatus.PENDING
    claimed_at: Optional[datetime] = None
    attempt_count: int = 0
    result_summary: Optional[str] = None
    block_reason: Optional[str] = None
    block_kind: Optional[BlockKind] = None
    blocked_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    needs_review: bool = False
    carryover: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def as_carryover(self) -> "Step":
        """
        Copy of this step for the next shift's draft.

        An abandoned claim is released back to pending; blocked steps keep
        their reason, kind and attempt count.
        """
        status = StepStatus.PENDING if self.status == StepStatus.CLAIMED else self.status
        return replace(self, status=status, claimed_at=None, carryover=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "description": self.description,
            "sub_actions": list(self.sub_actions),
            "scope_bound": self.scope_bound,
            "estimated_minutes": self.estimated_minutes,
            "external_effect": self.external_effect,
            "status": self.status.value,
            "claimed_at": format_timestamp(self.claimed_at),
            "attempt_count": self.attempt_count,
            "result_summary": self.result_summary,
            "block_reason": self.block_reason,
            "block_kind": self.block_kind.value if self.block_kind else None,
            "blocked_at": format_timestamp(self.blocked_at),
            "finished_at": format_timestamp(self.finished_at),
            "needs_review": self.needs_review,
            "carryover": self.carryover,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        block_kind = data.get("block_kind")
        return cls(
            id=data["id"],
            task_id=data["task_id"],
            description=data["description"],
            sub_actions=tuple(data.get("sub_actions") or ()),
            scope_bound=int(data.get("scope_bound", 1)),
            estimated_minutes=int(data.get("estimated_minutes", 0)),
            external_effect=bool(data.get("external_effect", False)),
            status=StepStatus(data["status"]),
            claimed_at=parse_timestamp(data.get("claimed_at")),
            attempt_count=int(data.get("attempt_count", 0)),
            result_summary=data.get("result_summary"),
            block_reason=data.get("block_reason"),
            block_kind=BlockKind(block_kind) if block_kind else None,
            blocked_at=parse_timestamp(data.get("blocked_at")),
            finished_at=parse_timestamp(data.get("finished_at")),
            needs_review=bool(data.get("needs_review", False)),
            carryover=bool(data.get("carryover", False)),
        )


@dataclass(frozen=True)
class Task:
    """An approved unit of work, executed as an ordered list of steps."""

    id: str
    title: str
    priority: PriorityTier
    step_ids: tuple = ()
    carryover: bool = False
    carried_from: Optional[str] = None               # Shift id the task was carried from
    split_from: Optional[str] = None                 # Proposal id when this task is one part of a split

    @property
    def source_id(self) -> str:
        """Id of the proposal the task was decomposed from."""
        return self.split_from or self.id

    def refers_to(self, task_id: str) -> bool:
        return task_id in (self.id, self.split_from)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority.value,
            "step_ids": list(self.step_ids),
            "carryover": self.carryover,
            "carried_from": self.carried_from,
            "split_from": self.split_from,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            title=data["title"],
            priority=PriorityTier(data["priority"]),
            step_ids=tuple(data.get("step_ids") or ()),
            carryover=bool(data.get("carryover", False)),
            carried_from=data.get("carried_from"),
            split_from=data.get("split_from"),
        )


@dataclass(frozen=True)
class ActionSpec:
    """One sub-action of a proposed task."""
    description: str
    minutes: int = 5
    external: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "ActionSpec":
        if isinstance(data, str):
            return cls(description=data)
        return cls(
            description=str(data["description"]),
            minutes=int(data.get("minutes", 5)),
            external=bool(data.get("external", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"description": self.description, "minutes": self.minutes, "external": self.external}


@dataclass(frozen=True)
class TaskProposal:
    """A not-yet-decomposed task offered by a signal source or an approver."""
    id: str
    title: str
    priority: PriorityTier = PriorityTier.P3
    actions: tuple = ()
    source: str = "signal"

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "signal") -> "TaskProposal":
        """
        Build a proposal from a plain mapping.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            return cls(
                id=str(data["id"]),
                title=str(data["title"]),
                priority=PriorityTier(data.get("priority", "P3")),
                actions=tuple(ActionSpec.from_dict(a) for a in data.get("actions") or ()),
                source=source,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid task proposal {data!r}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority.value,
            "actions": [a.to_dict() for a in self.actions],
            "source": self.source,
        }


@dataclass
class Plan:
    """One shift's approved (or draft) work, owned by the plan store."""

    shift_id: str
    shift_name: str
    date: date
    window_start: datetime
    window_end: datetime
    tasks: list = field(default_factory=list)        # list[Task], in declared order
    steps: dict = field(default_factory=dict)        # step id -> Step
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    auto_approved: bool = False
    carryover_from: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    def get_step(self, step_id: str) -> Optional[Step]:
        return self.steps.get(step_id)

    def replace_step(self, step: Step) -> None:
        if step.id not in self.steps:
            raise KeyError(step.id)
        self.steps[step.id] = step

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def ordered_steps(self) -> list[Step]:
        """Steps ordered by (priority tier, task order, step order)."""
        indexed = sorted(enumerate(self.tasks), key=lambda pair: (pair[1].priority.rank, pair[0]))
        ordered = []
        for _, task in indexed:
            for step_id in task.step_ids:
                ordered.append(self.steps[step_id])
        return ordered

    def predecessors_terminal(self, step: Step) -> bool:
        """True when every earlier step of the same task is done or skipped."""
        task = self.get_task(step.task_id)
        if task is None:
            return True
        for step_id in task.step_ids:
            if step_id == step.id:
                return True
            if not self.steps[step_id].is_terminal:
                return False
        return True

    def steps_with_status(self, status: StepStatus) -> list[Step]:
        return [s for s in self.ordered_steps() if s.status == status]

    def non_terminal_steps(self) -> list[Step]:
        return [s for s in self.ordered_steps() if not s.is_terminal]

    def counts(self) -> dict[str, int]:
        """Step count per status, plus ``total``."""
        counts = {status.value: 0 for status in StepStatus}
        for step in self.steps.values():
            counts[step.status.value] += 1
        counts["total"] = len(self.steps)
        return counts

    def approved(self, approver: str, approved_at: datetime, auto: bool = False) -> "Plan":
        """Copy of this plan stamped with its approval."""
        return replace(
            self,
            tasks=list(self.tasks),
            steps=dict(self.steps),
            approved_by=approver,
            approved_at=approved_at,
            auto_approved=auto,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "shift_id": self.shift_id,
            "shift_name": self.shift_name,
            "date": self.date.isoformat(),
            "window_start": format_timestamp(self.window_start),
            "window_end": format_timestamp(self.window_end),
            "approved_by": self.approved_by,
            "approved_at": format_timestamp(self.approved_at),
            "auto_approved": self.auto_approved,
            "carryover_from": self.carryover_from,
            "tasks": [t.to_dict() for t in self.tasks],
            "steps": [s.to_dict() for s in self.ordered_steps()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        steps = [Step.from_dict(s) for s in data.get("steps") or ()]
        return cls(
            shift_id=data["shift_id"],
            shift_name=data["shift_name"],
            date=date.fromisoformat(data["date"]),
            window_start=parse_timestamp(data["window_start"]),
            window_end=parse_timestamp(data["window_end"]),
            tasks=[Task.from_dict(t) for t in data.get("tasks") or ()],
            steps={s.id: s for s in steps},
            approved_by=data.get("approved_by"),
            approved_at=parse_timestamp(data.get("approved_at")),
            auto_approved=bool(data.get("auto_approved", False)),
            carryover_from=data.get("carryover_from"),
        )


@dataclass
class Carryover:
    """
    Non-terminal work forwarded from a finished shift to the next plan.

    Tasks leave the carryover as they are taken into an approved plan, so
    each carried step lands in exactly one later plan.
    """

    source_shift: str
    created_at: datetime
    approved: bool = True                            # Source plan was approved
    tasks: list = field(default_factory=list)        # list[Task]
    steps: dict = field(default_factory=dict)        # step id -> Step
    consumed: list = field(default_factory=list)     # [{"shift_id", "task_ids", "at"}]

    @property
    def is_empty(self) -> bool:
        return not self.tasks

    def steps_for(self, task: Task) -> list[Step]:
        return [self.steps[step_id] for step_id in task.step_ids]

    def take(self, task_ids: set, shift_id: str, at: datetime) -> list[str]:
        """
        Remove the given tasks (and their steps) and record who took them.

        Unknown or already-taken ids are ignored, so a retried activation
        does not fail or double-record.
        """
        taken = [t for t in self.tasks if t.id in task_ids]
        if not taken:
            return []
        for task in taken:
            for step_id in task.step_ids:
                self.steps.pop(step_id, None)
        self.tasks = [t for t in self.tasks if t.id not in task_ids]
        taken_ids = [t.id for t in taken]
        self.consumed.append({"shift_id": shift_id, "task_ids": taken_ids, "at": format_timestamp(at)})
        return taken_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "source_shift": self.source_shift,
            "created_at": format_timestamp(self.created_at),
            "approved": self.approved,
            "tasks": [t.to_dict() for t in self.tasks],
            "steps": [self.steps[step_id].to_dict() for t in self.tasks for step_id in t.step_ids],
            "consumed": list(self.consumed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Carryover":
        steps = [Step.from_dict(s) for s in data.get("steps") or ()]
        return cls(
            source_shift=data["source_shift"],
            created_at=parse_timestamp(data["created_at"]),
            approved=bool(data.get("approved", True)),
            tasks=[Task.from_dict(t) for t in data.get("tasks") or ()],
            steps={s.id: s for s in steps},
            consumed=list(data.get("consumed") or ()),
        )
