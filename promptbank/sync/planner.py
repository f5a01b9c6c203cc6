"""Three-way merge planning.

The planner compares local prompts, remote prompts (tombstones included) and
the last-synced baseline, and classifies every prompt into one action. It
performs no I/O; the executor applies the resulting plan.

Matching is by local id -> PromptSyncInfo.cloud_id -> remote cloud id. On a
first sync, where no baseline exists, a local prompt is matched to the remote
row that was created from it (remote.local_id).
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Sequence, Union

from promptbank.models import Prompt, new_prompt_id
from promptbank.sync.content_hash import compute_content_hash
from promptbank.sync.protocol import RemotePrompt
from promptbank.sync.state import PromptSyncInfo, SyncState
from promptbank.sync.team import FULL_ACCESS, WritePermission

logger = logging.getLogger(__name__)


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class NoOp:
    """Nothing changed since the last sync."""

    local_id: str


@dataclass(frozen=True)
class Upload:
    """Create (no cloud id) or update a remote prompt from local content."""

    prompt: Prompt
    cloud_id: str | None = None
    expected_version: int | None = None
    reason: str = ""

    @property
    def is_create(self) -> bool:
        return self.cloud_id is None


@dataclass(frozen=True)
class Download:
    """Overwrite or create a local prompt from remote content."""

    remote: RemotePrompt
    local_id: str
    reason: str = ""


@dataclass(frozen=True)
class DeleteLocal:
    """Remove a local prompt whose remote counterpart was tombstoned."""

    local_id: str
    cloud_id: str
    deleted_at: datetime


@dataclass(frozen=True)
class DeleteRemote:
    """Tombstone a remote prompt that was deleted on this device."""

    local_id: str
    cloud_id: str


@dataclass(frozen=True)
class Fork:
    """Both sides changed to different content. Keep both as new prompts."""

    local: Prompt
    remote: RemotePrompt


@dataclass(frozen=True)
class Adopt:
    """Both sides already agree. Record the remote as the new baseline."""

    local_id: str
    remote: RemotePrompt


@dataclass(frozen=True)
class ForgetSyncInfo:
    """Drop or tombstone a baseline entry whose prompt is gone on both sides."""

    local_id: str
    deleted_at: datetime | None = None  # None removes the entry entirely


SyncAction = Union[NoOp, Upload, Download, DeleteLocal, DeleteRemote, Fork, Adopt, ForgetSyncInfo]


# =============================================================================
# Plan
# =============================================================================


@dataclass
class SyncPlan:
    """Plan for one sync pass."""

    to_upload: list[Upload] = field(default_factory=list)
    to_download: list[Download] = field(default_factory=list)
    to_delete_local: list[DeleteLocal] = field(default_factory=list)
    to_delete_remote: list[DeleteRemote] = field(default_factory=list)
    conflicts: list[Fork] = field(default_factory=list)
    bookkeeping: list[Union[Adopt, ForgetSyncInfo]] = field(default_factory=list)
    unchanged: list[NoOp] = field(default_factory=list)
    # Dropped because the caller's role lacks the write permission
    skipped: list[Union[Upload, DeleteRemote]] = field(default_factory=list)
    # Inconsistent baseline entries that were reclassified
    anomalies: list[str] = field(default_factory=list)

    def add(self, action: SyncAction) -> None:
        """Append an action to the bucket for its type."""
        bucket = {
            NoOp: self.unchanged,
            Upload: self.to_upload,
            Download: self.to_download,
            DeleteLocal: self.to_delete_local,
            DeleteRemote: self.to_delete_remote,
            Fork: self.conflicts,
            Adopt: self.bookkeeping,
            ForgetSyncInfo: self.bookkeeping,
        }.get(type(action))
        if bucket is None:
            raise TypeError(f"Unknown sync action: {action!r}")
        bucket.append(action)

    @property
    def creates(self) -> list[Upload]:
        return [upload for upload in self.to_upload if upload.is_create]

    @property
    def total_operations(self) -> int:
        """Get total number of network or local-store operations in plan."""
        return (
            len(self.to_upload)
            + len(self.to_download)
            + len(self.to_delete_local)
            + len(self.to_delete_remote)
            + len(self.conflicts)
        )

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def is_empty(self) -> bool:
        """True when applying the plan would change nothing."""
        return self.total_operations == 0 and not self.bookkeeping


# =============================================================================
# Planner
# =============================================================================


class MergePlanner:
    """Compute a SyncPlan from local prompts, remote prompts and the baseline."""

    def __init__(self, permission: WritePermission = FULL_ACCESS):
        """Initialize planner.

        Args:
            permission: Write rights of the caller. Uploads and remote deletes
                the caller may not perform are moved to ``plan.skipped``.
        """
        self.permission = permission

    def plan(
        self,
        local: Sequence[Prompt],
        remote: Sequence[RemotePrompt],
        state: SyncState | None,
    ) -> SyncPlan:
        """Classify every local, remote and baseline entry.

        Args:
            local: All local prompts
            remote: All remote prompts, tombstones included
            state: Last-synced baseline, or None on a first sync

        Returns:
            The plan
        """
        plan = SyncPlan()
        sync_map: dict[str, PromptSyncInfo] = dict(state.prompt_sync_map) if state else {}
        relinked = self._repair_shared_links(sync_map, remote, plan)
        local_by_id = {prompt.id: prompt for prompt in local}
        remote_by_cloud_id = {row.cloud_id: row for row in remote}

        linked_cloud_ids = {info.cloud_id for info in sync_map.values() if info.is_synced}
        claimed: set[str] = set()

        for prompt in local:
            info = sync_map.get(prompt.id)
            if info is not None and info.is_synced:
                claimed.add(info.cloud_id)
                row = remote_by_cloud_id.get(info.cloud_id)
                action = self._classify_linked(prompt, info, row, plan)
                if isinstance(action, NoOp) and prompt.id in relinked:
                    # Persist the repaired link
                    action = Adopt(prompt.id, row)
                plan.add(action)
            else:
                match = self._match_first_sync(prompt, remote, linked_cloud_ids | claimed)
                if match is not None:
                    claimed.add(match.cloud_id)
                plan.add(self._classify_unlinked(prompt, match))

        for local_id, info in sync_map.items():
            if local_id in local_by_id:
                continue
            if not info.is_synced:
                plan.add(ForgetSyncInfo(local_id))
                continue
            claimed.add(info.cloud_id)
            action = self._classify_locally_absent(
                local_id, info, remote_by_cloud_id.get(info.cloud_id)
            )
            if action is not None:
                plan.add(action)

        used_ids = set(local_by_id) | set(sync_map)
        for row in remote:
            if row.is_deleted or row.cloud_id in claimed:
                continue
            claimed.add(row.cloud_id)
            local_id = row.local_id
            if not local_id or local_id in used_ids:
                # Created on the web, or the id is taken on this device
                local_id = new_prompt_id()
            used_ids.add(local_id)
            plan.add(Download(row, local_id, reason="new remote prompt"))

        self._apply_permission(plan)

        logger.info(
            f"Sync plan: {len(plan.to_upload)} upload, {len(plan.to_download)} download, "
            f"{len(plan.to_delete_local)} delete local, "
            f"{len(plan.to_delete_remote)} delete remote, {len(plan.conflicts)} conflicts"
        )
        return plan

    @staticmethod
    def _repair_shared_links(
        sync_map: dict[str, PromptSyncInfo],
        remote: Sequence[RemotePrompt],
        plan: SyncPlan,
    ) -> set[str]:
        """Give every cloud id at most one local owner.

        The owner is the entry the remote row was created from, otherwise the
        first claimant. Other claimants are relinked to an unclaimed row created
        from their own local id, or unlinked.

        Returns:
            Local ids that were relinked to a different cloud id
        """
        owners: dict[str, list[str]] = {}
        for local_id, info in sync_map.items():
            if info.is_synced:
                owners.setdefault(info.cloud_id, []).append(local_id)

        taken = set(owners)
        relinked: set[str] = set()
        remote_by_cloud_id = {row.cloud_id: row for row in remote}
        for cloud_id, local_ids in owners.items():
            if len(local_ids) < 2:
                continue
            row = remote_by_cloud_id.get(cloud_id)
            keeper = row.local_id if row is not None and row.local_id in local_ids else local_ids[0]
            for local_id in local_ids:
                if local_id == keeper:
                    continue
                own_row = next(
                    (r for r in remote if r.local_id == local_id and r.cloud_id not in taken),
                    None,
                )
                if own_row is not None:
                    taken.add(own_row.cloud_id)
                    relinked.add(local_id)
                    sync_map[local_id] = replace(
                        sync_map[local_id], cloud_id=own_row.cloud_id, version=own_row.version
                    )
                    outcome = f"relinked to {own_row.cloud_id}"
                else:
                    sync_map[local_id] = replace(sync_map[local_id], cloud_id=None)
                    outcome = "unlinked"
                plan.anomalies.append(
                    f"{local_id}: cloud id {cloud_id} also linked to {keeper}, {outcome}"
                )
                logger.warning(plan.anomalies[-1])
        return relinked

    def _classify_linked(
        self,
        prompt: Prompt,
        info: PromptSyncInfo,
        row: RemotePrompt | None,
        plan: SyncPlan,
    ) -> SyncAction:
        """Classify a local prompt that has a baseline entry."""
        local_hash = compute_content_hash(prompt)
        local_changed = local_hash != info.last_synced_content_hash

        if row is None:
            plan.anomalies.append(
                f"{prompt.id}: cloud id {info.cloud_id} unknown to backend, re-uploading"
            )
            logger.warning(plan.anomalies[-1])
            return Upload(prompt, reason="cloud copy missing")

        if info.is_deleted and row.is_deleted:
            plan.anomalies.append(
                f"{prompt.id}: marked deleted but still present locally, re-uploading"
            )
            logger.warning(plan.anomalies[-1])
            return Upload(prompt, reason="resurrected after deletion")

        if info.is_deleted:
            plan.anomalies.append(
                f"{prompt.id}: marked deleted but still present locally, relinking"
            )
            logger.warning(plan.anomalies[-1])

        if row.is_deleted:
            if not local_changed:
                return DeleteLocal(prompt.id, row.cloud_id, row.deleted_at)
            # A modification outlives a concurrent deletion. Never reuse the
            # tombstoned cloud id.
            return Upload(prompt, reason="edited after remote deletion")

        remote_changed = row.content_hash != info.last_synced_content_hash

        if not local_changed and not remote_changed:
            if info.is_deleted:
                return Adopt(prompt.id, row)
            return NoOp(prompt.id)
        if local_changed and not remote_changed:
            return Upload(
                prompt,
                cloud_id=row.cloud_id,
                expected_version=info.version,
                reason="local edit",
            )
        if remote_changed and not local_changed:
            return Download(row, prompt.id, reason="remote edit")
        if local_hash == row.content_hash:
            return Adopt(prompt.id, row)
        return Fork(prompt, row)

    @staticmethod
    def _match_first_sync(
        prompt: Prompt, remote: Sequence[RemotePrompt], taken: set[str]
    ) -> RemotePrompt | None:
        for row in remote:
            if row.local_id == prompt.id and not row.is_deleted and row.cloud_id not in taken:
                return row
        return None

    @staticmethod
    def _classify_unlinked(prompt: Prompt, match: RemotePrompt | None) -> SyncAction:
        """Classify a local prompt with no baseline entry."""
        if match is None:
            return Upload(prompt, reason="new local prompt")
        if compute_content_hash(prompt) == match.content_hash:
            return Adopt(prompt.id, match)
        # First-sync collisions are conflicts, not overwrites
        return Fork(prompt, match)

    @staticmethod
    def _classify_locally_absent(
        local_id: str, info: PromptSyncInfo, row: RemotePrompt | None
    ) -> SyncAction | None:
        """Classify a baseline entry whose local prompt no longer exists."""
        if row is None:
            return ForgetSyncInfo(local_id)

        if info.is_deleted:
            if row.is_deleted:
                return None
            # Restored or recreated remotely after we deleted it
            return Download(row, local_id, reason="restored remotely")

        if row.is_deleted:
            return ForgetSyncInfo(local_id, deleted_at=row.deleted_at)
        if row.content_hash == info.last_synced_content_hash:
            return DeleteRemote(local_id, row.cloud_id)
        # Edited remotely after we deleted it locally
        return Download(row, local_id, reason="edited remotely after local deletion")

    def _apply_permission(self, plan: SyncPlan) -> None:
        if not self.permission.can_upload and plan.to_upload:
            plan.skipped.extend(plan.to_upload)
            logger.info(f"Skipping {len(plan.to_upload)} uploads: role cannot edit")
            plan.to_upload = []
        if not self.permission.can_delete and plan.to_delete_remote:
            plan.skipped.extend(plan.to_delete_remote)
            logger.info(
                f"Skipping {len(plan.to_delete_remote)} remote deletes: role cannot delete"
            )
            plan.to_delete_remote = []
