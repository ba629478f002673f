"""
Whole-file persistence primitives.

Every durable store is read in full and written in full. Writes go to a
temporary file in the target directory, are fsynced, and then renamed over
the target, so a reader sees either the old or the new file, never a mix.
"""

import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional

import orjson
import structlog

from ..errors import PersistenceError, StoreCorruptionError

logger = structlog.get_logger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Atomically replace ``path`` with ``data``.

    Raises:
        PersistenceError: If the temporary file cannot be written or renamed
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise PersistenceError(f"Cannot prepare write of {path}: {e}",
                               operation="write", target=str(path)) from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        with suppress(OSError):
            os.unlink(tmp_name)
        raise PersistenceError(f"Atomic write of {path} failed: {e}",
                               operation="write", target=str(path)) from e


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically replace ``path`` with UTF-8 ``text``."""
    atomic_write_bytes(path, text.encode("utf-8"))


def dump_json(document: Any) -> bytes:
    """Serialize a document the way every JSON store is written."""
    return orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE)


def write_json(path: Path, document: Any) -> None:
    atomic_write_bytes(path, dump_json(document))


def read_json(path: Path, store: str) -> Optional[Any]:
    """
    Read a JSON store in full.

    Returns:
        Parsed document, or ``None`` if the file does not exist

    Raises:
        StoreCorruptionError: If the file exists but is not valid JSON
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise PersistenceError(f"Cannot read {path}: {e}", operation="read", target=str(path)) from e

    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise StoreCorruptionError(
            f"{store} store at {path} is not valid JSON: {e}",
            store=store,
            path=str(path)
        ) from e
