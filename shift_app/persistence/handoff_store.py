"""Handoff document persistence (structured JSON plus a markdown rendering)."""

from pathlib import Path
from typing import Optional

import structlog

from ..errors import StoreCorruptionError
from ..models.handoff import HandoffDocument
from .atomic import atomic_write_text, read_json, write_json

logger = structlog.get_logger(__name__)


class HandoffStore:
    """Reads and writes one handoff location (``handoff.json`` + ``handoff.md``)."""

    def __init__(self, json_path: Path, markdown_path: Path):
        self.json_path = Path(json_path)
        self.markdown_path = Path(markdown_path)

    def load(self) -> Optional[HandoffDocument]:
        document = read_json(self.json_path, "handoff")
        if document is None:
            return None
        try:
            return HandoffDocument.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreCorruptionError(
                f"handoff store cannot be decoded: {e}",
                store="handoff",
                path=str(self.json_path)
            ) from e

    def save(self, handoff: HandoffDocument) -> None:
        """Write the structured document first, then the rendering."""
        write_json(self.json_path, handoff.to_dict())
        atomic_write_text(self.markdown_path, handoff.to_markdown())
        logger.info("Handoff written", shift_id=handoff.shift_id, path=str(self.json_path))
