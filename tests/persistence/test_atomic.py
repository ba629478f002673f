"""Tests for whole-file persistence primitives."""

from unittest.mock import patch

import pytest

from shift_app.errors import PersistenceError, StoreCorruptionError
from shift_app.persistence.atomic import atomic_write_text, dump_json, read_json, write_json


class TestAtomicWrite:
    """Test atomic replacement."""

    def test_write_creates_parent_dirs(self, tmp_path):
        """Missing parent directories are created."""
        target = tmp_path / "a" / "b" / "doc.json"
        write_json(target, {"x": 1})
        assert read_json(target, "doc") == {"x": 1}

    def test_no_temp_files_left(self, tmp_path):
        """A successful write leaves only the target behind."""
        target = tmp_path / "doc.txt"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")
        assert target.read_text() == "two"
        assert [p.name for p in tmp_path.iterdir()] == ["doc.txt"]

    def test_failed_rename_keeps_old_content(self, tmp_path):
        """If the rename fails the previous file is untouched and the temp file removed."""
        target = tmp_path / "doc.txt"
        atomic_write_text(target, "original")

        with patch("shift_app.persistence.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError) as exc_info:
                atomic_write_text(target, "replacement")

        assert exc_info.value.operation == "write"
        assert target.read_text() == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["doc.txt"]

    def test_dump_json_format(self):
        """JSON stores are indented and end with a newline."""
        data = dump_json({"a": [1]})
        assert data.endswith(b"\n")
        assert b'\n  "a"' in data


class TestReadJson:
    """Test whole-file reads."""

    def test_missing_file_returns_none(self, tmp_path):
        assert read_json(tmp_path / "absent.json", "plan") is None

    def test_invalid_json_is_corruption(self, tmp_path):
        """A truncated document raises StoreCorruptionError naming the store."""
        target = tmp_path / "plan.json"
        target.write_text('{"shift_id": ')
        with pytest.raises(StoreCorruptionError) as exc_info:
            read_json(target, "plan")
        assert exc_info.value.store == "plan"
        assert exc_info.value.path == str(target)
