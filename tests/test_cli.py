"""Tests for the offline CLI commands."""

import pytest

from promptbank.cli_commands import prompts as prompts_cli
from promptbank.cli_commands import sync as sync_cli
from promptbank.config import workspace_storage_dir
from promptbank.models import DeviceInfo, utcnow
from promptbank.storage.prompt_store import FilePromptStore
from promptbank.sync.state import PromptSyncInfo
from promptbank.sync.state_store import SyncStateStore


@pytest.fixture
def workspace(temp_dir, monkeypatch):
    """Workspace directory with no global config or sync credentials."""
    monkeypatch.setenv("HOME", str(temp_dir / "home"))
    for name in ("PROMPTBANK_API_URL", "PROMPTBANK_TOKEN", "PROMPTBANK_USER"):
        monkeypatch.delenv(name, raising=False)
    return temp_dir / "project"


def stored(workspace):
    return FilePromptStore(workspace_storage_dir(workspace)).list()


class TestPromptCommands:
    """Tests for the prompts command group."""

    def test_add_and_list(self, workspace, capsys):
        """Test add stores a prompt and list shows it."""
        prompts_cli.add("Review", "Check {{filename}}", category="Code", workspace=workspace)
        prompts_cli.list_prompts(workspace=workspace)

        (prompt,) = stored(workspace)
        assert prompt.category == "Code"
        assert "Review" in capsys.readouterr().out

    def test_edit_records_history(self, workspace):
        """Test edit keeps the previous content in the history."""
        prompts_cli.add("Review", "v1", workspace=workspace)
        prompt_id = stored(workspace)[0].id

        prompts_cli.edit(prompt_id, content="v2", reason="tweak", workspace=workspace)

        (prompt,) = stored(workspace)
        assert prompt.content == "v2"
        assert prompt.versions[0].content == "v1"
        assert prompt.versions[0].change_reason == "tweak"

    def test_edit_unknown(self, workspace):
        """Test editing a missing prompt exits with an error."""
        with pytest.raises(SystemExit):
            prompts_cli.edit("missing", title="x", workspace=workspace)

    def test_remove(self, workspace):
        """Test remove deletes the prompt."""
        prompts_cli.add("Review", "v1", workspace=workspace)
        prompts_cli.remove(stored(workspace)[0].id, workspace=workspace)
        assert stored(workspace) == []


class TestSyncCommands:
    """Tests for sync commands that need no backend."""

    def test_run_requires_config(self, workspace, capsys):
        """Test sync refuses to run without credentials."""
        with pytest.raises(SystemExit):
            sync_cli.run(workspace=workspace)
        assert "not configured" in capsys.readouterr().out

    def test_deleted_lists_tombstones(self, workspace, capsys):
        """Test deleted shows tombstoned entries."""
        state_store = SyncStateStore(workspace_storage_dir(workspace))
        state = state_store.initialize("u", DeviceInfo("d", "D"), "ws")
        state.prompt_sync_map["prompt_gone"] = PromptSyncInfo(
            "c1", "h", 1, is_deleted=True, deleted_at=utcnow()
        )
        state_store.save(state)

        sync_cli.deleted(workspace=workspace)

        assert "prompt_gone" in capsys.readouterr().out

    def test_reset_needs_confirmation(self, workspace):
        """Test reset only clears state with --yes."""
        state_store = SyncStateStore(workspace_storage_dir(workspace))
        state_store.initialize("u", DeviceInfo("d", "D"), "ws")

        sync_cli.reset(workspace=workspace)
        assert state_store.load() is not None

        sync_cli.reset(workspace=workspace, yes=True)
        assert state_store.load() is None
