"""Sync state records.

SyncState is the last-synchronized baseline for one (user, device, workspace)
or team scope. It is stored apart from the prompts themselves so that
bookkeeping never touches a prompt's ``modified`` timestamp.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from promptbank.models import format_timestamp, parse_timestamp, utcnow

CURRENT_SCHEMA_VERSION = 3

# Documents written before the version field existed were v2
LEGACY_SCHEMA_VERSION = 2


@dataclass
class PromptSyncInfo:
    """What was last synchronized for one local prompt."""

    cloud_id: str | None
    last_synced_content_hash: str
    version: int
    last_synced_at: datetime = field(default_factory=utcnow)
    is_deleted: bool = False
    deleted_at: datetime | None = None

    @property
    def is_synced(self) -> bool:
        """Whether this entry points at a cloud entity at all."""
        return bool(self.cloud_id)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "lastSyncedContentHash": self.last_synced_content_hash,
            "version": self.version,
            "lastSyncedAt": format_timestamp(self.last_synced_at),
            "isDeleted": self.is_deleted,
        }
        if self.cloud_id is not None:
            data["cloudId"] = self.cloud_id
        if self.deleted_at is not None:
            data["deletedAt"] = format_timestamp(self.deleted_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PromptSyncInfo":
        return cls(
            # Older files stored "" for an entry that never synced
            cloud_id=data.get("cloudId") or None,
            last_synced_content_hash=data.get("lastSyncedContentHash", ""),
            version=int(data.get("version") or 0),
            last_synced_at=parse_timestamp(data.get("lastSyncedAt")) or utcnow(),
            is_deleted=bool(data.get("isDeleted", False)),
            deleted_at=parse_timestamp(data.get("deletedAt")),
        )


@dataclass
class SyncState:
    """Synchronized baseline for one sync scope."""

    user_id: str
    device_id: str
    device_name: str
    workspace_id: str | None = None
    schema_version: int = CURRENT_SCHEMA_VERSION
    last_synced_at: datetime | None = None
    prompt_sync_map: dict[str, PromptSyncInfo] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "schemaVersion": self.schema_version,
            "promptSyncMap": {
                local_id: info.to_dict()
                for local_id, info in self.prompt_sync_map.items()
            },
        }
        if self.workspace_id is not None:
            data["workspaceId"] = self.workspace_id
        if self.last_synced_at is not None:
            data["lastSyncedAt"] = format_timestamp(self.last_synced_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncState":
        return cls(
            user_id=data.get("userId", ""),
            device_id=data.get("deviceId", ""),
            device_name=data.get("deviceName", ""),
            workspace_id=data.get("workspaceId") or None,
            schema_version=int(data.get("schemaVersion") or LEGACY_SCHEMA_VERSION),
            last_synced_at=parse_timestamp(data.get("lastSyncedAt")),
            prompt_sync_map={
                local_id: PromptSyncInfo.from_dict(info)
                for local_id, info in (data.get("promptSyncMap") or {}).items()
            },
        )
