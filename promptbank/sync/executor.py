"""Plan execution.

Applies a SyncPlan against a Transport and the local prompt store. Order:
forks, local deletions, remote deletions, uploads, downloads, bookkeeping.

Each step is durable as soon as it succeeds. An error mid-execution leaves
earlier steps applied and propagates; running sync again is safe because a
fresh plan only contains what is still outstanding.

Network calls for independent uploads may run concurrently. All local store
writes and sync state changes happen on the calling thread.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Protocol, Sequence

from promptbank.errors import ConflictError, SyncConflictType, SyncRetryRequired
from promptbank.models import DEFAULT_MAX_VERSIONS, Prompt, merge_versions, utcnow
from promptbank.sync.conflicts import fork_conflict
from promptbank.sync.content_hash import compute_content_hash
from promptbank.sync.planner import (
    Adopt,
    DeleteLocal,
    DeleteRemote,
    Download,
    ForgetSyncInfo,
    Fork,
    SyncPlan,
    Upload,
)
from promptbank.sync.protocol import UploadResult
from promptbank.sync.state import PromptSyncInfo, SyncState
from promptbank.sync.transport import Transport

logger = logging.getLogger(__name__)


class LocalPromptStore(Protocol):
    """Local prompt collection the executor writes to."""

    def list(self) -> list[Prompt]: ...

    def get(self, prompt_id: str) -> Prompt | None: ...

    def save(self, prompt: Prompt) -> Prompt: ...

    def delete(self, prompt_id: str) -> bool: ...


@dataclass
class SyncResult:
    """Result of plan execution."""

    uploaded: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    deleted_local: list[str] = field(default_factory=list)
    deleted_remote: list[str] = field(default_factory=list)
    forked: list[tuple[str, str, str]] = field(default_factory=list)  # original, local, remote
    adopted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    quota_warning: float | None = None
    duration: float = 0.0

    @property
    def conflicts(self) -> int:
        return len(self.forked)

    @property
    def total(self) -> int:
        """Get total number of operations applied."""
        return (
            len(self.uploaded)
            + len(self.downloaded)
            + len(self.deleted_local)
            + len(self.deleted_remote)
            + len(self.forked)
        )

    def merge(self, other: "SyncResult") -> None:
        """Fold a follow-up round into this result."""
        self.uploaded.extend(other.uploaded)
        self.created.extend(other.created)
        self.downloaded.extend(other.downloaded)
        self.deleted_local.extend(other.deleted_local)
        self.deleted_remote.extend(other.deleted_remote)
        self.forked.extend(other.forked)
        self.adopted.extend(other.adopted)
        self.skipped = other.skipped
        if other.quota_warning is not None:
            self.quota_warning = other.quota_warning
        self.duration += other.duration


class SyncExecutor:
    """Apply a SyncPlan."""

    def __init__(
        self,
        transport: Transport,
        local_store: LocalPromptStore,
        device_name: str,
        upload_concurrency: int = 1,
        max_versions: int = DEFAULT_MAX_VERSIONS,
    ):
        """Initialize executor.

        Args:
            transport: Backend transport
            local_store: Local prompt store
            device_name: Name of this device, used in fork titles
            upload_concurrency: Maximum concurrent upload requests
            max_versions: History length cap applied to downloads
        """
        self.transport = transport
        self.local_store = local_store
        self.device_name = device_name
        self.upload_concurrency = max(1, upload_concurrency)
        self.max_versions = max_versions

    def execute(self, plan: SyncPlan, state: SyncState) -> SyncResult:
        """Apply ``plan``, updating ``state`` in place.

        The caller persists ``state`` afterwards, including when this raises,
        so that the steps that did succeed are recorded.

        Raises:
            SyncRetryRequired: A version conflict made the plan stale
            SyncError: Any transport failure
        """
        start = time.monotonic()
        result = SyncResult(
            skipped=[_action_id(action) for action in plan.skipped]
        )
        try:
            for fork in plan.conflicts:
                self._fork(fork, state, result)
            for deletion in plan.to_delete_local:
                self._delete_local(deletion, state, result)
            for deletion in plan.to_delete_remote:
                self._delete_remote(deletion, state, result)
            self._upload_all(plan.to_upload, state, result)
            for download in plan.to_download:
                self._download(download, state, result)
            for entry in plan.bookkeeping:
                self._bookkeep(entry, state, result)
        finally:
            result.duration = time.monotonic() - start

        logger.info(
            f"Sync applied: {len(result.uploaded)} uploaded, "
            f"{len(result.downloaded)} downloaded, "
            f"{len(result.deleted_local)} deleted locally, "
            f"{len(result.deleted_remote)} deleted remotely, "
            f"{len(result.forked)} conflicts in {result.duration:.2f}s"
        )
        return result

    def _fork(self, fork: Fork, state: SyncState, result: SyncResult) -> None:
        """Replace a conflicting prompt with two fork copies. No network I/O.

        The local copy has no baseline and uploads as a new remote prompt on
        the next plan. The remote copy is linked to the existing cloud prompt
        at its current version, so its new title uploads as an update.
        """
        local_copy, remote_copy = fork_conflict(fork.local, fork.remote, self.device_name)

        self.local_store.save(local_copy)
        self.local_store.save(remote_copy)
        self.local_store.delete(fork.local.id)

        state.prompt_sync_map.pop(fork.local.id, None)
        state.prompt_sync_map[remote_copy.id] = PromptSyncInfo(
            cloud_id=fork.remote.cloud_id,
            last_synced_content_hash=fork.remote.content_hash,
            version=fork.remote.version,
        )

        result.forked.append((fork.local.id, local_copy.id, remote_copy.id))
        logger.info(
            f"Conflict on {fork.local.id}: forked into {local_copy.id} and {remote_copy.id}"
        )

    def _delete_local(self, deletion: DeleteLocal, state: SyncState, result: SyncResult) -> None:
        self.local_store.delete(deletion.local_id)
        info = state.prompt_sync_map.get(deletion.local_id)
        if info is not None:
            info.cloud_id = deletion.cloud_id
            info.is_deleted = True
            info.deleted_at = deletion.deleted_at
        result.deleted_local.append(deletion.local_id)
        logger.info(f"Deleted {deletion.local_id} locally (tombstoned remotely)")

    def _delete_remote(self, deletion: DeleteRemote, state: SyncState, result: SyncResult) -> None:
        self.transport.delete(deletion.cloud_id)
        info = state.prompt_sync_map.get(deletion.local_id)
        if info is not None:
            info.cloud_id = deletion.cloud_id
            info.is_deleted = True
            info.deleted_at = utcnow()
        result.deleted_remote.append(deletion.local_id)
        logger.info(f"Deleted {deletion.cloud_id} remotely")

    def _upload_all(self, uploads: Sequence[Upload], state: SyncState, result: SyncResult) -> None:
        if not uploads:
            return
        if self.upload_concurrency == 1 or len(uploads) == 1:
            for upload in uploads:
                self._record_upload(upload, self._upload(upload), state, result)
            return

        with ThreadPoolExecutor(max_workers=self.upload_concurrency) as pool:
            futures = [(upload, pool.submit(self._upload, upload)) for upload in uploads]
            errors: list[Exception] = []
            for upload, future in futures:
                try:
                    self._record_upload(upload, future.result(), state, result)
                except Exception as e:
                    logger.error(f"Upload of {upload.prompt.id} failed: {e}")
                    errors.append(e)
        if errors:
            retry = next((e for e in errors if isinstance(e, SyncRetryRequired)), None)
            raise retry or errors[0]

    def _upload(self, upload: Upload) -> UploadResult:
        """Upload one prompt, recovering from a concurrent remote deletion.

        Raises:
            SyncRetryRequired: Version or optimistic lock conflict
        """
        try:
            return self.transport.upload(upload.prompt, upload.cloud_id, upload.expected_version)
        except ConflictError as e:
            if e.code == SyncConflictType.PROMPT_DELETED:
                logger.info(
                    f"Prompt {upload.prompt.id} was deleted remotely "
                    f"(cloud id {upload.cloud_id}), creating a new remote prompt"
                )
                return self.transport.upload(upload.prompt)
            logger.warning(
                f"{e.code.value} for prompt {upload.prompt.id}: expected "
                f"v{e.expected_version}, actual v{e.actual_version}"
            )
            raise SyncRetryRequired(
                upload.prompt.id, e.code, e.expected_version, e.actual_version
            ) from e

    def _record_upload(
        self, upload: Upload, uploaded: UploadResult, state: SyncState, result: SyncResult
    ) -> None:
        state.prompt_sync_map[upload.prompt.id] = PromptSyncInfo(
            cloud_id=uploaded.cloud_id,
            last_synced_content_hash=compute_content_hash(upload.prompt),
            version=uploaded.version,
        )
        result.uploaded.append(upload.prompt.id)
        if upload.cloud_id is None or uploaded.cloud_id != upload.cloud_id:
            result.created.append(upload.prompt.id)

    def _download(self, download: Download, state: SyncState, result: SyncResult) -> None:
        remote = download.remote
        prompt = remote.to_prompt(download.local_id)
        existing = self.local_store.get(download.local_id)
        if existing is not None:
            prompt = replace(
                prompt,
                versions=merge_versions(existing.versions, prompt.versions, self.max_versions),
            )
            if prompt.order is None:
                prompt.order = existing.order
            if prompt.category_order is None:
                prompt.category_order = existing.category_order
        self.local_store.save(prompt)

        state.prompt_sync_map[download.local_id] = PromptSyncInfo(
            cloud_id=remote.cloud_id,
            last_synced_content_hash=remote.content_hash,
            version=remote.version,
        )
        result.downloaded.append(download.local_id)

    def _bookkeep(self, entry, state: SyncState, result: SyncResult) -> None:
        if isinstance(entry, Adopt):
            state.prompt_sync_map[entry.local_id] = PromptSyncInfo(
                cloud_id=entry.remote.cloud_id,
                last_synced_content_hash=entry.remote.content_hash,
                version=entry.remote.version,
            )
            result.adopted.append(entry.local_id)
        elif isinstance(entry, ForgetSyncInfo):
            if entry.deleted_at is None:
                state.prompt_sync_map.pop(entry.local_id, None)
            else:
                info = state.prompt_sync_map.get(entry.local_id)
                if info is not None:
                    info.is_deleted = True
                    info.deleted_at = entry.deleted_at
        else:
            raise TypeError(f"Unknown bookkeeping entry: {entry!r}")


def _action_id(action) -> str:
    if isinstance(action, Upload):
        return action.prompt.id
    return action.local_id
