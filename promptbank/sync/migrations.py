"""Schema migrations for persisted sync state.

Each migration is a pure function from the raw JSON document at version N to
the document at version N+1. Migrations never mutate their input and are
no-ops on documents that already have the shape they produce.

A migration that cannot find the data it needs returns the document
unchanged, still at version N. The chain stops there and is retried on the
next load.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Callable

from promptbank.sync.state import CURRENT_SCHEMA_VERSION, LEGACY_SCHEMA_VERSION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationContext:
    """External facts a migration may consult."""

    workspace_id: str | None = None


MigrationFn = Callable[[dict, MigrationContext], dict]


def _v1_to_v2(document: dict, context: MigrationContext) -> dict:
    """Backfill the tombstone flag on every sync entry."""
    migrated = copy.deepcopy(document)
    for info in (migrated.get("promptSyncMap") or {}).values():
        info.setdefault("isDeleted", False)
        if not info["isDeleted"]:
            info.pop("deletedAt", None)
    migrated["schemaVersion"] = 2
    return migrated


def _v2_to_v3(document: dict, context: MigrationContext) -> dict:
    """Bind the state to its workspace identity."""
    if document.get("workspaceId"):
        migrated = copy.deepcopy(document)
        migrated["schemaVersion"] = 3
        return migrated
    if not context.workspace_id:
        logger.info("No workspace metadata found, skipping workspaceId migration")
        return document
    migrated = copy.deepcopy(document)
    migrated["workspaceId"] = context.workspace_id
    migrated["schemaVersion"] = 3
    logger.info(
        f"Migrated sync state to v3 with workspaceId {context.workspace_id[:8]}..."
    )
    return migrated


# Ordered by source version
MIGRATIONS: dict[int, MigrationFn] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def schema_version_of(document: dict) -> int:
    return int(document.get("schemaVersion") or LEGACY_SCHEMA_VERSION)


def migrate(document: dict, context: MigrationContext) -> dict:
    """Apply migrations in order until the document is current.

    Args:
        document: Raw sync state JSON
        context: Facts available to migrations

    Returns:
        The migrated document. It may still be behind the current version
        if a migration lacked the data it needed.
    """
    version = schema_version_of(document)
    while version < CURRENT_SCHEMA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            raise ValueError(f"No migration from sync state schema v{version}")
        migrated = step(document, context)
        new_version = schema_version_of(migrated)
        if new_version == version:
            break
        document, version = migrated, new_version
    return document
