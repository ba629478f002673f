"""Tests for the workspace layout."""

import pytest

from shift_app.persistence.workspace import ShiftWorkspace
from shift_app.state.models import ShiftState


class TestShiftWorkspace:
    """Test ShiftWorkspace."""

    def test_scaffold_creates_layout(self, tmp_path):
        """Scaffolding creates directories, an idle state and an empty log."""
        workspace = ShiftWorkspace(tmp_path / "ws")

        created = workspace.scaffold()

        assert workspace.history_dir.is_dir()
        assert workspace.approval_dir.is_dir()
        assert workspace.state_path in created
        assert workspace.state_tracker().read() == ShiftState()
        assert workspace.context_log().read() == []

    def test_scaffold_is_idempotent(self, tmp_path):
        """A second scaffold creates nothing and keeps existing content."""
        workspace = ShiftWorkspace(tmp_path / "ws")
        workspace.scaffold()
        state_bytes = workspace.state_path.read_bytes()

        assert workspace.scaffold() == []
        assert workspace.state_path.read_bytes() == state_bytes

    @pytest.mark.parametrize("shift_id", ["", "..", ".", "a/b"])
    def test_history_path_rejects_unsafe_ids(self, tmp_path, shift_id):
        with pytest.raises(ValueError):
            ShiftWorkspace(tmp_path).history_path(shift_id)

    def test_history_path(self, tmp_path):
        workspace = ShiftWorkspace(tmp_path)
        assert workspace.history_path("2024-05-01-morning") == tmp_path / "history" / "2024-05-01-morning"
