"""
Context log store.

An append-only markdown list of timestamped operational facts. Each entry is
one line of the form ``- <iso timestamp> | <text>``. Entries are never
edited; the only removal is explicit pruning of the oldest entries.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from ..errors import PersistenceError, StoreCorruptionError
from ..utils.time import format_timestamp, parse_timestamp
from .atomic import atomic_write_text

logger = structlog.get_logger(__name__)

HEADER = "# Context Log"
ENTRY_PREFIX = "- "
SEPARATOR = " | "


@dataclass(frozen=True)
class ContextEntry:
    """One timestamped lesson or constraint."""
    timestamp: datetime
    text: str

    def render(self) -> str:
        return f"{ENTRY_PREFIX}{format_timestamp(self.timestamp)}{SEPARATOR}{self.text}"


def _normalize(text: str) -> str:
    return " ".join(str(text).split())


class ContextLog:
    """Durable, ordered, append-only log of operational facts."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = logger

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> list[ContextEntry]:
        """
        Read every entry in order.

        Raises:
            StoreCorruptionError: If a line is not a well-formed entry
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}",
                                   operation="read", target=str(self.path)) from e

        entries = []
        for line_number, line in enumerate(content.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            entries.append(self._parse_line(stripped, line_number))
        return entries

    def _parse_line(self, line: str, line_number: int) -> ContextEntry:
        if not line.startswith(ENTRY_PREFIX) or SEPARATOR not in line:
            raise StoreCorruptionError(
                f"context log line {line_number} is malformed: {line!r}",
                store="context_log",
                path=str(self.path)
            )
        raw_timestamp, text = line[len(ENTRY_PREFIX):].split(SEPARATOR, 1)
        try:
            timestamp = parse_timestamp(raw_timestamp.strip())
        except ValueError as e:
            raise StoreCorruptionError(
                f"context log line {line_number} has a bad timestamp: {raw_timestamp!r}",
                store="context_log",
                path=str(self.path)
            ) from e
        return ContextEntry(timestamp=timestamp, text=text.strip())

    def _write(self, entries: list[ContextEntry]) -> None:
        lines = [HEADER, ""] + [entry.render() for entry in entries]
        atomic_write_text(self.path, "\n".join(lines) + "\n")

    def initialize(self) -> bool:
        """Create an empty log if none exists. Returns True if created."""
        if self.path.exists():
            return False
        self._write([])
        return True

    def append(self, text: str, now: datetime) -> Optional[ContextEntry]:
        """
        Append one entry.

        Multi-line text is collapsed onto one line; blank text is ignored.
        """
        return (self.extend([text], now) or [None])[0]

    def extend(self, texts: list[str], now: datetime) -> list[ContextEntry]:
        """Append several entries in one atomic rewrite."""
        new_entries = [ContextEntry(timestamp=now, text=_normalize(t)) for t in texts if _normalize(t)]
        if not new_entries:
            return []

        entries = self.read()
        entries.extend(new_entries)
        self._write(entries)
        self.logger.info("Context log appended", count=len(new_entries), total=len(entries))
        return new_entries

    def entries_since(self, since: Optional[datetime]) -> list[ContextEntry]:
        """Entries recorded at or after ``since`` (all entries if ``None``)."""
        entries = self.read()
        if since is None:
            return entries
        return [e for e in entries if e.timestamp >= since]

    def prune(self, max_entries: int) -> int:
        """
        Drop the oldest entries beyond ``max_entries``.

        Args:
            max_entries: Entries to keep; 0 disables pruning

        Returns:
            Number of entries removed
        """
        if max_entries <= 0:
            return 0
        entries = self.read()
        excess = len(entries) - max_entries
        if excess <= 0:
            return 0
        self._write(entries[excess:])
        self.logger.info("Context log pruned", removed=excess, kept=max_entries)
        return excess
