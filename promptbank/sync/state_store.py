"""Durable storage for sync state.

Stored as: <storage_dir>/sync-state.json, next to the companion
<storage_dir>/workspace-meta.json identity record.
"""

import json
import logging
import os
from pathlib import Path

from promptbank.errors import StorageError
from promptbank.models import DeviceInfo
from promptbank.storage.atomic import atomic_write_json, read_json
from promptbank.sync.migrations import MigrationContext, migrate, schema_version_of
from promptbank.sync.state import CURRENT_SCHEMA_VERSION, PromptSyncInfo, SyncState

logger = logging.getLogger(__name__)

SYNC_STATE_FILENAME = "sync-state.json"
WORKSPACE_META_FILENAME = "workspace-meta.json"


class SyncStateStore:
    """Load, migrate and atomically persist the sync baseline for one scope.

    Reads return a fresh SyncState each time; callers mutate it and hand it
    back to ``save``.
    """

    def __init__(self, storage_dir: Path):
        """Initialize store.

        Args:
            storage_dir: Directory holding sync-state.json
        """
        self.storage_dir = Path(storage_dir)
        self.state_file = self.storage_dir / SYNC_STATE_FILENAME
        self.workspace_meta_file = self.storage_dir / WORKSPACE_META_FILENAME

    def load(self) -> SyncState | None:
        """Load sync state, migrating it forward if needed.

        Returns:
            The current state, or None if this scope has never synced or the
            file could not be parsed (it is then moved aside).
        """
        try:
            document = read_json(self.state_file)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._quarantine(e)
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {self.state_file}: {e}") from e

        if document is None:
            return None
        if not isinstance(document, dict):
            self._quarantine(ValueError("sync state is not a JSON object"))
            return None

        # Structurally broken documents fail here, in migration or in parsing
        try:
            original_version = schema_version_of(document)
            migrated = document
            if original_version < CURRENT_SCHEMA_VERSION:
                migrated = migrate(document, self._migration_context())
            state = SyncState.from_dict(migrated)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self._quarantine(e)
            return None

        if migrated is not document:
            atomic_write_json(self.state_file, migrated)
            logger.info(
                f"Sync state migrated from v{original_version} "
                f"to v{state.schema_version}"
            )
        return state

    def save(self, state: SyncState) -> None:
        """Persist state with an atomic temp-file replace."""
        atomic_write_json(self.state_file, state.to_dict())

    def initialize(
        self, user_id: str, device: DeviceInfo, workspace_id: str | None
    ) -> SyncState:
        """Create and persist an empty state for a first sync."""
        state = SyncState(
            user_id=user_id,
            device_id=device.device_id,
            device_name=device.device_name,
            workspace_id=workspace_id,
        )
        self.save(state)
        logger.info(f"Initialized sync state for device {device.device_name}")
        return state

    def get_or_create(
        self, user_id: str, device: DeviceInfo, workspace_id: str | None
    ) -> SyncState:
        """Load existing state or initialize a new one.

        Existing state is rebound to the current workspace when it has none,
        which completes a v2 -> v3 migration that lacked a workspace record.
        """
        state = self.load()
        if state is None:
            return self.initialize(user_id, device, workspace_id)
        if state.workspace_id is None and workspace_id is not None:
            state.workspace_id = workspace_id
            state.schema_version = CURRENT_SCHEMA_VERSION
            self.save(state)
        return state

    def deleted_prompts(self) -> dict[str, PromptSyncInfo]:
        """Sync entries for prompts deleted on this device or remotely."""
        state = self.load()
        if state is None:
            return {}
        return {
            local_id: info
            for local_id, info in state.prompt_sync_map.items()
            if info.is_deleted
        }

    def clear(self) -> None:
        """Delete the persisted state. Used only for explicit user reset."""
        if self.state_file.exists():
            self.state_file.unlink()
            logger.info(f"Cleared sync state at {self.state_file}")

    def _migration_context(self) -> MigrationContext:
        try:
            meta = read_json(self.workspace_meta_file)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {self.workspace_meta_file}: {e}")
            meta = None
        workspace_id = meta.get("workspaceId") if isinstance(meta, dict) else None
        return MigrationContext(workspace_id=workspace_id)

    def _quarantine(self, error: Exception) -> None:
        corrupt = self.state_file.with_name(self.state_file.name + ".corrupt")
        logger.warning(
            f"Sync state at {self.state_file} is unreadable ({error}); "
            f"moving it to {corrupt.name} and starting from an empty baseline"
        )
        try:
            os.replace(self.state_file, corrupt)
        except OSError as e:
            raise StorageError(f"Failed to move aside {self.state_file}: {e}") from e
