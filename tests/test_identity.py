"""Tests for device and workspace identity."""

import json
from unittest.mock import patch

from promptbank.identity import (
    WorkspaceIdentity,
    default_device_name,
    detect_device,
    generate_device_id,
)
from promptbank.models import DeviceInfo


class TestDeviceIdentity:
    """Tests for device id and name detection."""

    def test_device_id_stable(self):
        """Test the device id is deterministic and 16 hex chars."""
        first = generate_device_id()
        assert first == generate_device_id()
        assert len(first) == 16
        int(first, 16)

    def test_device_id_depends_on_app(self):
        """Test different application names give different ids."""
        assert generate_device_id("a") != generate_device_id("b")

    def test_default_name_labels_platform(self):
        """Test the default name appends a platform label."""
        with patch("promptbank.identity.socket.gethostname", return_value="box"), patch(
            "promptbank.identity.platform.system", return_value="Darwin"
        ):
            assert default_device_name() == "box (Mac)"

    def test_default_name_unknown_platform(self):
        """Test unknown platforms use the bare hostname."""
        with patch("promptbank.identity.socket.gethostname", return_value="box"), patch(
            "promptbank.identity.platform.system", return_value="Plan9"
        ):
            assert default_device_name() == "box"

    def test_name_override(self):
        """Test a configured name replaces the detected one."""
        assert detect_device("Work laptop").device_name == "Work laptop"


class TestWorkspaceIdentity:
    """Tests for WorkspaceIdentity."""

    def test_created_once(self, temp_dir):
        """Test the workspace id is created on first use and then reused."""
        identity = WorkspaceIdentity(temp_dir)
        device = DeviceInfo("d1", "Laptop")

        first = identity.get_or_create(device)
        second = identity.get_or_create(device)

        assert first.workspace_id == second.workspace_id
        assert json.loads(identity.meta_file.read_text())["workspaceId"] == first.workspace_id

    def test_read_missing(self, temp_dir):
        """Test reading a workspace without metadata returns None."""
        assert WorkspaceIdentity(temp_dir).read() is None

    def test_last_device_refreshed(self, temp_dir):
        """Test another device opening the workspace updates lastDevice."""
        identity = WorkspaceIdentity(temp_dir)
        created = identity.get_or_create(DeviceInfo("d1", "Laptop"))
        reopened = identity.get_or_create(DeviceInfo("d2", "Desktop"))

        assert reopened.workspace_id == created.workspace_id
        assert identity.read().last_device == "Desktop"

    def test_unreadable_metadata_ignored(self, temp_dir):
        """Test corrupt metadata reads as absent."""
        (temp_dir / "workspace-meta.json").write_text("nope")
        assert WorkspaceIdentity(temp_dir).read() is None
