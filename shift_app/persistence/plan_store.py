"""Plan and carryover persistence."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from ..errors import PersistenceError, StoreCorruptionError
from ..plan.models import Carryover, Plan
from ..validation.store_schema import validator
from .atomic import dump_json, read_json, write_json

logger = structlog.get_logger(__name__)

ARCHIVED_PLAN_NAME = "plan.json"


class PlanStore:
    """Durable ordered record of one shift's tasks and steps."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = logger

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Plan]:
        """
        Load the current plan.

        Returns:
            The plan, or ``None`` if no plan has been written yet

        Raises:
            StoreCorruptionError: If the file exists but cannot be decoded
        """
        document = read_json(self.path, "plan")
        if document is None:
            return None

        validator.validate_plan(document, str(self.path))
        try:
            return Plan.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreCorruptionError(
                f"plan store cannot be decoded: {e}",
                store="plan",
                path=str(self.path)
            ) from e

    def require(self) -> Plan:
        """
        Load the plan where one must exist.

        A missing plan while a shift is active is treated as corruption; an
        empty plan is never fabricated in its place.
        """
        plan = self.load()
        if plan is None:
            raise StoreCorruptionError(
                f"plan store {self.path} is missing for an active shift",
                store="plan",
                path=str(self.path)
            )
        return plan

    def save(self, plan: Plan) -> None:
        """Write the full plan atomically."""
        write_json(self.path, plan.to_dict())

    def archive(self, plan: Plan, archive_dir: Path) -> Path:
        """
        Freeze a copy of ``plan`` into ``archive_dir``.

        Re-archiving identical content is a no-op; an archive with different
        content is never overwritten.

        Raises:
            PersistenceError: If a differing archive already exists
        """
        target = Path(archive_dir) / ARCHIVED_PLAN_NAME
        data = dump_json(plan.to_dict())

        if target.exists():
            if target.read_bytes() == data:
                self.logger.info("Plan already archived", shift_id=plan.shift_id, path=str(target))
                return target
            raise PersistenceError(
                f"Refusing to overwrite archived plan {target}",
                operation="archive",
                target=str(target)
            )

        write_json(target, plan.to_dict())
        target.chmod(0o444)
        self.logger.info("Plan archived", shift_id=plan.shift_id, path=str(target))
        return target


class CarryoverStore:
    """Durable draft of work forwarded to the next shift."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = logger

    def load(self) -> Optional[Carryover]:
        """Load the carryover draft, or ``None`` if there is none."""
        document = read_json(self.path, "carryover")
        if document is None:
            return None

        validator.validate_carryover(document, str(self.path))
        try:
            return Carryover.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreCorruptionError(
                f"carryover store cannot be decoded: {e}",
                store="carryover",
                path=str(self.path)
            ) from e

    def save(self, carryover: Carryover) -> None:
        write_json(self.path, carryover.to_dict())

    def take(self, task_ids: set, shift_id: str, at: datetime) -> list[str]:
        """Remove the given tasks from the draft, recording the consuming shift."""
        carryover = self.load()
        if carryover is None:
            return []

        taken = carryover.take(task_ids, shift_id, at)
        if taken:
            self.save(carryover)
            self.logger.info(
                "Carryover consumed",
                source_shift=carryover.source_shift,
                consumed_by=shift_id,
                task_ids=taken,
                remaining=len(carryover.tasks)
            )
        return taken
