"""Pytest configuration and shared fixtures."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from shift_app.collaborators import (
    ApprovalChannel,
    ApprovalDecision,
    ApprovalResponse,
    Notifier,
    SignalSource,
    WorkPerformer,
    WorkResult,
)
from shift_app.engine import ShiftEngine
from shift_app.logging.config import configure_logging
from shift_app.persistence.workspace import ShiftWorkspace
from shift_app.plan.models import Plan, PriorityTier, Step, Task, TaskProposal
from shift_app.state.models import ShiftState, ShiftStatus

SHIFT_DATE = date(2024, 5, 1)
SHIFT_ID = "2024-05-01-morning"
WINDOW_START = datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2024, 5, 1, 14, 0, tzinfo=timezone.utc)


class FakeMonotonic:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class ScriptedPerformer(WorkPerformer):
    """Plays back scripted outcomes in order, then succeeds."""

    def __init__(self, clock: Optional[FakeMonotonic] = None, duration: float = 1.0) -> None:
        self.outcomes: List[Any] = []
        self.assignments = []
        self.clock = clock
        self.duration = duration

    def script(self, *outcomes: Any) -> "ScriptedPerformer":
        self.outcomes.extend(outcomes)
        return self

    @property
    def performed(self) -> List[str]:
        return [a.step_id for a in self.assignments]

    def perform(self, assignment):
        self.assignments.append(assignment)
        if self.clock is not None:
            self.clock.advance(self.duration)
        outcome = self.outcomes.pop(0) if self.outcomes else WorkResult.ok(f"did {assignment.step_id}")
        # BaseException so a scripted KeyboardInterrupt kills the invocation
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(assignment)
        return outcome


class ScriptedApprovals(ApprovalChannel):
    """In-memory approval channel."""

    def __init__(self) -> None:
        self.requests = []
        self.responses: Dict[str, ApprovalResponse] = {}

    def request(self, request) -> None:
        self.requests.append(request)

    def poll(self, shift_id: str) -> Optional[ApprovalResponse]:
        return self.responses.get(shift_id)

    def respond(self, shift_id: str, decision: str, **kwargs) -> None:
        self.responses[shift_id] = ApprovalResponse(decision=ApprovalDecision(decision), **kwargs)


class StaticSignals(SignalSource):
    """Signal source returning a fixed list of proposals."""

    def __init__(self) -> None:
        self.proposals: List[TaskProposal] = []

    def add(self, task_id: str, title: str, priority: str = "P3", actions=None) -> None:
        self.proposals.append(TaskProposal.from_dict({
            "id": task_id,
            "title": title,
            "priority": priority,
            "actions": actions or [f"{title} action"],
        }))

    def collect(self, shift_name, shift_date):
        return list(self.proposals)


class RecordingNotifier(Notifier):
    """Notifier that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent = []

    def notify(self, level, message, context=None) -> bool:
        self.sent.append((level, message, context or {}))
        return True

    @property
    def levels(self) -> List[str]:
        return [level.value for level, _, _ in self.sent]


@pytest.fixture(autouse=True)
def stderr_logging():
    """Route logs to stderr so stdout only carries command and notifier output."""
    configure_logging(level="DEBUG")


@pytest.fixture
def now() -> datetime:
    """An instant inside the 2024-05-01 morning shift."""
    return datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def workspace(tmp_path) -> ShiftWorkspace:
    """Scaffolded workspace in a temporary directory."""
    ws = ShiftWorkspace(tmp_path / "workspace")
    ws.scaffold()
    return ws


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def performer(monotonic) -> ScriptedPerformer:
    return ScriptedPerformer(clock=monotonic)


@pytest.fixture
def approvals() -> ScriptedApprovals:
    return ScriptedApprovals()


@pytest.fixture
def signals() -> StaticSignals:
    return StaticSignals()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_engine(tmp_path, workspace, performer, approvals, signals, notifier, monotonic):
    """Factory for engines wired to the scripted collaborators."""

    def make(overrides: Optional[Dict[str, Any]] = None, shift_name: Optional[str] = None) -> ShiftEngine:
        return ShiftEngine(
            workspace.root,
            config_dir=tmp_path / "config",
            shift_name=shift_name,
            overrides=overrides,
            performer=performer,
            approvals=approvals,
            signals=signals,
            notifier=notifier,
            monotonic=monotonic,
        )

    return make


@pytest.fixture
def make_plan():
    """Factory for approved plans of pending steps.

    ``tasks`` is a list of (priority, step count) pairs; tasks are named
    ``task-1``, ``task-2``... and their steps ``task-1.s1``...
    """

    def make(tasks=(("P2", 3),), approved: bool = True, shift_id: str = SHIFT_ID) -> Plan:
        plan_tasks = []
        steps = {}
        for index, (priority, count) in enumerate(tasks, start=1):
            task_id = f"task-{index}"
            step_ids = []
            for number in range(1, count + 1):
                step = Step(
                    id=f"{task_id}.s{number}",
                    task_id=task_id,
                    description=f"Task {index}: action {number}",
                    sub_actions=(f"action {number}",),
                    scope_bound=1,
                    estimated_minutes=5,
                )
                steps[step.id] = step
                step_ids.append(step.id)
            plan_tasks.append(Task(id=task_id, title=f"Task {index}",
                                   priority=PriorityTier(priority), step_ids=tuple(step_ids)))

        plan = Plan(
            shift_id=shift_id,
            shift_name="morning",
            date=SHIFT_DATE,
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            tasks=plan_tasks,
            steps=steps,
        )
        if approved:
            plan = plan.approved("alice", WINDOW_START)
        return plan

    return make


@pytest.fixture
def start_shift(workspace):
    """Write ``plan`` and an executing shift state for it."""

    def start(plan: Plan, at: datetime = WINDOW_START) -> Plan:
        workspace.plan_store().save(plan)
        state = ShiftState().begin(
            ShiftStatus.EXECUTING, at, plan.shift_name, plan.shift_id, plan.date,
            plan.window_start, plan.window_end,
            approved_at=plan.approved_at,
            approved_by=plan.approved_by,
        ).with_counts(plan)
        workspace.state_tracker().write(state)
        return plan

    return start


@pytest.fixture
def minutes():
    return lambda n: timedelta(minutes=n)
