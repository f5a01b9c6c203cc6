"""Device and workspace identity.

The device id is derived from host, user and application name so it is stable
across sessions without any stored state. The workspace id lives in
workspace-meta.json inside the workspace, so it travels with the folder when it
is moved or copied to another machine.
"""

import getpass
import hashlib
import json
import logging
import platform
import socket
import uuid
from dataclasses import dataclass
from pathlib import Path

from promptbank.models import DeviceInfo, format_timestamp, utcnow
from promptbank.storage.atomic import atomic_write_json, read_json

logger = logging.getLogger(__name__)

WORKSPACE_METADATA_FILENAME = "workspace-meta.json"
WORKSPACE_METADATA_SCHEMA_VERSION = 1

_PLATFORM_LABELS = {"Darwin": "Mac", "Windows": "Windows", "Linux": "Linux"}


def generate_device_id(app_name: str = "promptbank") -> str:
    """Stable 16-character device id for this host, user and application."""
    seed = f"{socket.gethostname()}:{getpass.getuser()}:{app_name}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:16]


def default_device_name() -> str:
    """Human-readable device name, e.g. ``"build-box (Linux)"``."""
    hostname = socket.gethostname()
    label = _PLATFORM_LABELS.get(platform.system())
    return f"{hostname} ({label})" if label else hostname


def detect_device(name_override: str | None = None, app_name: str = "promptbank") -> DeviceInfo:
    return DeviceInfo(
        device_id=generate_device_id(app_name),
        device_name=name_override or default_device_name(),
    )


@dataclass
class WorkspaceMetadata:
    """Contents of workspace-meta.json."""

    workspace_id: str
    created_at: str
    last_device: str
    schema_version: int = WORKSPACE_METADATA_SCHEMA_VERSION

    def to_dict(self) -> dict:
        return {
            "workspaceId": self.workspace_id,
            "createdAt": self.created_at,
            "lastDevice": self.last_device,
            "schemaVersion": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkspaceMetadata":
        return cls(
            workspace_id=data["workspaceId"],
            created_at=data.get("createdAt", ""),
            last_device=data.get("lastDevice", ""),
            schema_version=int(data.get("schemaVersion", WORKSPACE_METADATA_SCHEMA_VERSION)),
        )


class WorkspaceIdentity:
    """Read or create the workspace identity record in a storage directory."""

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.meta_file = self.storage_dir / WORKSPACE_METADATA_FILENAME

    def read(self) -> WorkspaceMetadata | None:
        try:
            data = read_json(self.meta_file)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable {self.meta_file}: {e}")
            return None
        if not isinstance(data, dict) or not data.get("workspaceId"):
            return None
        return WorkspaceMetadata.from_dict(data)

    def get_or_create(self, device: DeviceInfo) -> WorkspaceMetadata:
        """Return the workspace record, creating it on first use.

        The ``lastDevice`` field is refreshed when a different device opens
        the workspace.
        """
        metadata = self.read()
        if metadata is None:
            metadata = WorkspaceMetadata(
                workspace_id=str(uuid.uuid4()),
                created_at=format_timestamp(utcnow()),
                last_device=device.device_name,
            )
            atomic_write_json(self.meta_file, metadata.to_dict())
            logger.info(f"Created workspace identity {metadata.workspace_id[:8]}...")
        elif metadata.last_device != device.device_name:
            metadata.last_device = device.device_name
            atomic_write_json(self.meta_file, metadata.to_dict())
        return metadata
