"""
Durable workspace layout.

One directory holds every store the engine owns, so any invocation can be
started with nothing but the workspace path.
"""

from pathlib import Path

import structlog

from .context_log import ContextLog
from .handoff_store import HandoffStore
from .plan_store import CarryoverStore, PlanStore
from ..state.tracker import ShiftStateTracker

logger = structlog.get_logger(__name__)

STATE_FILE = "state.json"
PLAN_FILE = "plan.json"
CONTEXT_FILE = "context.md"
HANDOFF_JSON = "handoff.json"
HANDOFF_MARKDOWN = "handoff.md"
CARRYOVER_FILE = "carryover.json"
APPROVAL_DIR = "approval"
SIGNALS_FILE = "signals.yaml"
ALERTS_FILE = "alerts.jsonl"
HISTORY_DIR = "history"


class ShiftWorkspace:
    """File layout of one engine workspace and accessors for its stores."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILE

    @property
    def plan_path(self) -> Path:
        return self.root / PLAN_FILE

    @property
    def context_path(self) -> Path:
        return self.root / CONTEXT_FILE

    @property
    def carryover_path(self) -> Path:
        return self.root / CARRYOVER_FILE

    @property
    def approval_dir(self) -> Path:
        return self.root / APPROVAL_DIR

    @property
    def signals_path(self) -> Path:
        return self.root / SIGNALS_FILE

    @property
    def alerts_path(self) -> Path:
        return self.root / ALERTS_FILE

    @property
    def history_dir(self) -> Path:
        return self.root / HISTORY_DIR

    def history_path(self, shift_id: str) -> Path:
        """Archive directory of one shift."""
        if not shift_id or "/" in shift_id or shift_id in (".", ".."):
            raise ValueError(f"Invalid shift id for archive path: {shift_id!r}")
        return self.history_dir / shift_id

    def state_tracker(self) -> ShiftStateTracker:
        return ShiftStateTracker(self.state_path)

    def plan_store(self) -> PlanStore:
        return PlanStore(self.plan_path)

    def carryover_store(self) -> CarryoverStore:
        return CarryoverStore(self.carryover_path)

    def context_log(self) -> ContextLog:
        return ContextLog(self.context_path)

    def handoff_store(self) -> HandoffStore:
        return HandoffStore(self.root / HANDOFF_JSON, self.root / HANDOFF_MARKDOWN)

    def history_handoff_store(self, shift_id: str) -> HandoffStore:
        archive = self.history_path(shift_id)
        return HandoffStore(archive / HANDOFF_JSON, archive / HANDOFF_MARKDOWN)

    def scaffold(self) -> list[Path]:
        """
        Create the workspace directories and seed empty stores.

        Existing files are never overwritten.

        Returns:
            Paths that were created
        """
        created = []
        for directory in (self.root, self.history_dir, self.approval_dir):
            if not directory.exists():
                directory.mkdir(parents=True)
                created.append(directory)

        tracker = self.state_tracker()
        if not tracker.exists():
            tracker.write(tracker.read())
            created.append(self.state_path)

        if self.context_log().initialize():
            created.append(self.context_path)

        if created:
            logger.info("Workspace scaffolded", root=str(self.root), created=[str(p) for p in created])
        return created
