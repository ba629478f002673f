"""Schema validation for plan, shift state and carryover documents."""

from datetime import date
from typing import Any, Optional

import structlog

from ..errors import StoreCorruptionError
from ..utils.time import parse_timestamp

logger = structlog.get_logger(__name__)

STEP_STATUSES = ["pending", "claimed", "done", "blocked", "skipped"]
SHIFT_STATUSES = ["awaiting_approval", "executing", "completed", "cancelled", "idle"]
PRIORITY_TIERS = ["P1", "P2", "P3"]
BLOCK_KINDS = ["transient", "dependency", "user_input", None]

STEP_SCHEMA = {
    "type": "object",
    "required": ["id", "task_id", "description", "status", "attempt_count"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "task_id": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "status": {"type": "string", "enum": STEP_STATUSES},
        "claimed_at": {"type": ["string", "null"], "format": "date-time"},
        "attempt_count": {"type": "integer", "minimum": 0},
        "scope_bound": {"type": "integer", "minimum": 1},
        "block_kind": {"type": ["string", "null"], "enum": BLOCK_KINDS},
    },
}

TASK_SCHEMA = {
    "type": "object",
    "required": ["id", "title", "priority", "step_ids"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "priority": {"type": "string", "enum": PRIORITY_TIERS},
        "step_ids": {"type": "array", "items": {"type": "string"}},
        "split_from": {"type": ["string", "null"]},
    },
}

PLAN_SCHEMA = {
    "type": "object",
    "required": ["schema_version", "shift_id", "shift_name", "date",
                 "window_start", "window_end", "tasks", "steps"],
    "properties": {
        "schema_version": {"type": "integer", "enum": [1]},
        "tasks": {"type": "array", "items": TASK_SCHEMA},
        "steps": {"type": "array", "items": STEP_SCHEMA},
    },
}

SHIFT_STATE_SCHEMA = {
    "type": "object",
    "required": ["schema_version", "status", "total_steps", "completed", "blocked",
                 "skipped", "cycles_run"],
    "properties": {
        "schema_version": {"type": "integer", "enum": [1]},
        "status": {"type": "string", "enum": SHIFT_STATUSES},
    },
}

CARRYOVER_SCHEMA = {
    "type": "object",
    "required": ["schema_version", "source_shift", "created_at", "tasks", "steps"],
    "properties": {
        "schema_version": {"type": "integer", "enum": [1]},
        "tasks": {"type": "array", "items": TASK_SCHEMA},
        "steps": {"type": "array", "items": STEP_SCHEMA},
    },
}


class StoreSchemaValidator:
    """Validates store documents before they are turned into models."""

    def __init__(self):
        self.logger = logger

    def validate_plan(self, document: Any, path: Optional[str] = None) -> None:
        """
        Validate a plan document.

        Raises:
            StoreCorruptionError: If the document does not match the schema
        """
        self._run("plan", path, self._check_plan, document)

    def validate_state(self, document: Any, path: Optional[str] = None) -> None:
        """Validate a shift state document."""
        self._run("shift_state", path, self._check_state, document)

    def validate_carryover(self, document: Any, path: Optional[str] = None) -> None:
        """Validate a carryover document."""
        self._run("carryover", path, self._check_carryover, document)

    def _run(self, store: str, path: Optional[str], check, document: Any) -> None:
        try:
            check(document)
        except (ValueError, TypeError) as e:
            self.logger.error("Store failed schema validation", store=store, path=path, error=str(e))
            raise StoreCorruptionError(
                f"{store} store failed validation: {e}",
                store=store,
                path=path
            ) from e

    def _check_required(self, document: Any, schema: dict[str, Any], label: str) -> None:
        if not isinstance(document, dict):
            raise ValueError(f"{label} must be an object")
        missing = [name for name in schema["required"] if name not in document]
        if missing:
            raise ValueError(f"{label} missing required fields: {missing}")

    def _check_version(self, document: dict[str, Any]) -> None:
        if document.get("schema_version") != 1:
            raise ValueError(f"Unsupported schema_version: {document.get('schema_version')}")

    def _check_timestamp(self, value: Any, label: str, nullable: bool = True) -> None:
        if value is None and nullable:
            return
        if not isinstance(value, str):
            raise ValueError(f"{label} must be an ISO8601 string")
        parse_timestamp(value)

    def _check_int(self, value: Any, label: str, minimum: int = 0) -> None:
        if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
            raise ValueError(f"{label} must be an integer >= {minimum}, got {value!r}")

    def _check_steps_and_tasks(self, document: dict[str, Any]) -> None:
        if not isinstance(document["tasks"], list) or not isinstance(document["steps"], list):
            raise ValueError("tasks and steps must be arrays")

        step_ids = set()
        for step in document["steps"]:
            self._check_required(step, STEP_SCHEMA, "step")
            if not isinstance(step["id"], str) or not step["id"]:
                raise ValueError("step id must be a non-empty string")
            if step["id"] in step_ids:
                raise ValueError(f"duplicate step id {step['id']}")
            step_ids.add(step["id"])
            if step["status"] not in STEP_STATUSES:
                raise ValueError(f"step {step['id']} has invalid status {step['status']!r}")
            if step.get("block_kind") not in BLOCK_KINDS:
                raise ValueError(f"step {step['id']} has invalid block_kind {step.get('block_kind')!r}")
            self._check_int(step["attempt_count"], f"step {step['id']} attempt_count")
            self._check_int(step.get("scope_bound", 1), f"step {step['id']} scope_bound", minimum=1)
            for ts_field in ("claimed_at", "blocked_at", "finished_at"):
                self._check_timestamp(step.get(ts_field), f"step {step['id']} {ts_field}")
            if step["status"] == "claimed" and not step.get("claimed_at"):
                raise ValueError(f"claimed step {step['id']} has no claimed_at")

        referenced = set()
        task_ids = set()
        for task in document["tasks"]:
            self._check_required(task, TASK_SCHEMA, "task")
            if task["id"] in task_ids:
                raise ValueError(f"duplicate task id {task['id']}")
            task_ids.add(task["id"])
            if task["priority"] not in PRIORITY_TIERS:
                raise ValueError(f"task {task['id']} has invalid priority {task['priority']!r}")
            if not isinstance(task["step_ids"], list):
                raise ValueError(f"task {task['id']} step_ids must be an array")
            for step_id in task["step_ids"]:
                if step_id not in step_ids:
                    raise ValueError(f"task {task['id']} references unknown step {step_id}")
                if step_id in referenced:
                    raise ValueError(f"step {step_id} is referenced by more than one task")
                referenced.add(step_id)

        orphans = step_ids - referenced
        if orphans:
            raise ValueError(f"steps not owned by any task: {sorted(orphans)}")

    def _check_plan(self, document: Any) -> None:
        self._check_required(document, PLAN_SCHEMA, "plan")
        self._check_version(document)
        date.fromisoformat(document["date"])
        self._check_timestamp(document["window_start"], "window_start", nullable=False)
        self._check_timestamp(document["window_end"], "window_end", nullable=False)
        self._check_timestamp(document.get("approved_at"), "approved_at")
        self._check_steps_and_tasks(document)

    def _check_state(self, document: Any) -> None:
        self._check_required(document, SHIFT_STATE_SCHEMA, "shift_state")
        self._check_version(document)
        if document["status"] not in SHIFT_STATUSES:
            raise ValueError(f"invalid status {document['status']!r}")
        for counter in ("total_steps", "completed", "blocked", "skipped", "cycles_run"):
            self._check_int(document[counter], counter)
        for ts_field in ("window_start", "window_end", "approval_requested_at",
                         "approved_at", "last_cycle_at", "updated_at"):
            self._check_timestamp(document.get(ts_field), ts_field)
        if document["status"] in ("awaiting_approval", "executing") and not document.get("shift_id"):
            raise ValueError(f"{document['status']} state has no shift_id")

    def _check_carryover(self, document: Any) -> None:
        self._check_required(document, CARRYOVER_SCHEMA, "carryover")
        self._check_version(document)
        self._check_timestamp(document["created_at"], "created_at", nullable=False)
        self._check_steps_and_tasks(document)


# Global validator instance
validator = StoreSchemaValidator()
