"""
Shift state tracker.

The only accessor for the shift state record. Callers read the full record,
derive a new full record, and write it back atomically; there is no way to
update a single field in place.
"""

from pathlib import Path
from typing import Callable

import structlog

from ..errors import StoreCorruptionError
from ..logging.config import get_state_logger, log_shift_transition
from ..persistence.atomic import read_json, write_json
from ..validation.store_schema import validator
from .models import ShiftState

logger = structlog.get_logger(__name__)
state_logger = get_state_logger(__name__)


class ShiftStateTracker:
    """Atomic whole-record read/modify/write of the shift state."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = logger

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> ShiftState:
        """
        Read the full record; a missing file is an idle engine.

        Raises:
            StoreCorruptionError: If the record exists but is unreadable
        """
        document = read_json(self.path, "shift_state")
        if document is None:
            return ShiftState()

        validator.validate_state(document, str(self.path))
        try:
            return ShiftState.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreCorruptionError(
                f"shift_state store cannot be decoded: {e}",
                store="shift_state",
                path=str(self.path)
            ) from e

    def write(self, state: ShiftState) -> None:
        """Write the full record atomically."""
        write_json(self.path, state.to_dict())

    def update(self, mutator: Callable[[ShiftState], ShiftState], trigger: str = "update") -> ShiftState:
        """
        Read the record, apply ``mutator`` to it, and write the result.

        Args:
            mutator: Pure function from the current record to the new record
            trigger: What caused the change, for the transition log

        Returns:
            The record as written
        """
        current = self.read()
        new_state = mutator(current)
        self.write(new_state)

        if new_state.status != current.status or new_state.shift_id != current.shift_id:
            log_shift_transition(
                state_logger,
                shift_id=new_state.shift_id,
                from_state=current.status.value,
                to_state=new_state.status.value,
                trigger=trigger,
                context={"previous_shift_id": current.shift_id}
                if new_state.shift_id != current.shift_id else None
            )
        return new_state
