"""Sync orchestration.

One pass: register workspace -> load baseline -> fetch remote -> plan ->
quota pre-flight -> execute -> persist baseline. When the pass materialized
conflict forks, one follow-up round uploads them, so a sync that returns
leaves nothing outstanding.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from promptbank.errors import PromptBankError, SyncInProgressError
from promptbank.models import DEFAULT_MAX_VERSIONS, DeviceInfo, utcnow
from promptbank.sync.content_hash import matches_hash
from promptbank.sync.executor import LocalPromptStore, SyncExecutor, SyncResult
from promptbank.sync.planner import MergePlanner, SyncPlan
from promptbank.sync.quota import measure_uploads
from promptbank.sync.state import PromptSyncInfo, SyncState
from promptbank.sync.state_store import SyncStateStore
from promptbank.sync.team import Team
from promptbank.sync.transport import Transport

logger = logging.getLogger(__name__)


class SyncGuard:
    """In-flight latch keyed by sync scope.

    A second pass for a scope that is already syncing is rejected rather than
    allowed to race against the same baseline.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: set[str] = set()

    def is_active(self, scope: str) -> bool:
        with self._lock:
            return scope in self._active

    @contextmanager
    def hold(self, scope: str) -> Iterator[None]:
        with self._lock:
            if scope in self._active:
                raise SyncInProgressError(scope)
            self._active.add(scope)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(scope)


@dataclass
class SyncStatusReport:
    """Offline summary of local prompts against the baseline."""

    synced: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    never_synced: list[str] = field(default_factory=list)
    deleted_locally: list[str] = field(default_factory=list)
    last_synced_at: datetime | None = None

    @property
    def needs_sync(self) -> bool:
        return bool(self.modified or self.never_synced or self.deleted_locally)


class SyncEngine:
    """Run sync passes for one scope."""

    def __init__(
        self,
        transport: Transport,
        state_store: SyncStateStore,
        local_store: LocalPromptStore,
        device: DeviceInfo,
        user_id: str,
        workspace_id: str | None = None,
        guard: SyncGuard | None = None,
        upload_concurrency: int = 1,
        max_versions: int = DEFAULT_MAX_VERSIONS,
    ):
        """Initialize engine.

        Args:
            transport: Backend transport for this scope
            state_store: Baseline storage for this scope
            local_store: Local prompt store for this scope
            device: This device
            user_id: Signed-in user
            workspace_id: Workspace the baseline is bound to (None for teams)
            guard: Shared in-flight guard. Pass the same guard to every engine
                that may run concurrently.
            upload_concurrency: Maximum concurrent upload requests
            max_versions: History length cap applied to downloads
        """
        self.transport = transport
        self.state_store = state_store
        self.local_store = local_store
        self.device = device
        self.user_id = user_id
        self.workspace_id = workspace_id
        self.guard = guard or SyncGuard()
        self.planner = MergePlanner(transport.write_permission())
        self.executor = SyncExecutor(
            transport,
            local_store,
            device.device_name,
            upload_concurrency=upload_concurrency,
            max_versions=max_versions,
        )

    def sync(self) -> SyncResult:
        """Run one sync pass.

        Raises:
            SyncInProgressError: A pass for this scope is already running
            QuotaExceededError: Uploads would exceed the quota; nothing changed
            SyncRetryRequired: The plan went stale; call sync again
            AuthError, NetworkError, PermissionDeniedError: Surfaced as-is
        """
        with self.guard.hold(self.transport.scope_key):
            logger.info(f"Starting sync for {self.transport.scope_key}")
            self.transport.register_workspace()
            state = self.state_store.get_or_create(
                self.user_id, self.device, self.workspace_id
            )

            result = self._round(state)
            if result.forked:
                logger.info(f"Uploading {len(result.forked)} conflict forks")
                result.merge(self._round(state))
            return result

    def preview(self) -> SyncPlan:
        """Compute the plan a sync would apply, without applying it."""
        state = self.state_store.load()
        remote = self.transport.fetch_remote_prompts(include_deleted=True)
        return self.planner.plan(self.local_store.list(), remote, state)

    def _round(self, state: SyncState) -> SyncResult:
        remote = self.transport.fetch_remote_prompts(include_deleted=True)
        plan = self.planner.plan(self.local_store.list(), remote, state)

        quota_check = None
        if plan.to_upload:
            quota_check = self.transport.check_quota(
                len(plan.creates), measure_uploads(u.prompt for u in plan.to_upload)
            )

        try:
            result = self.executor.execute(plan, state)
        except PromptBankError:
            # Keep the steps that succeeded before the failure
            self.state_store.save(state)
            raise

        state.last_synced_at = utcnow()
        self.state_store.save(state)
        if quota_check is not None:
            result.quota_warning = quota_check.warning_percentage
        return result

    def status(self) -> SyncStatusReport:
        """Compare local prompts with the baseline. No network access."""
        state = self.state_store.load()
        sync_map: dict[str, PromptSyncInfo] = state.prompt_sync_map if state else {}
        report = SyncStatusReport(last_synced_at=state.last_synced_at if state else None)

        local_ids = set()
        for prompt in self.local_store.list():
            local_ids.add(prompt.id)
            info = sync_map.get(prompt.id)
            if info is None or not info.is_synced:
                report.never_synced.append(prompt.id)
            elif matches_hash(prompt, info.last_synced_content_hash):
                report.synced.append(prompt.id)
            else:
                report.modified.append(prompt.id)

        for local_id, info in sync_map.items():
            if local_id not in local_ids and info.is_synced and not info.is_deleted:
                report.deleted_locally.append(local_id)
        return report

    def deleted_prompts(self) -> dict[str, PromptSyncInfo]:
        return self.state_store.deleted_prompts()

    def restore(self, local_id: str) -> SyncResult:
        """Restore a deleted prompt from its remote tombstone, then sync.

        Raises:
            KeyError: No deleted prompt with that id is known
        """
        info = self.state_store.deleted_prompts().get(local_id)
        if info is None or not info.cloud_id:
            raise KeyError(f"No deleted prompt {local_id}")
        self.transport.restore(info.cloud_id)
        logger.info(f"Restored {local_id} (cloud id {info.cloud_id})")
        return self.sync()

    def reset(self) -> None:
        """Forget the baseline. The next sync re-matches every prompt."""
        with self.guard.hold(self.transport.scope_key):
            self.state_store.clear()


@dataclass
class TeamSyncReport:
    """Outcome of syncing one team."""

    team: Team
    result: SyncResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TeamSyncService:
    """Sync every team library the user belongs to.

    Each team has its own prompt store and baseline under
    ``<teams_dir>/<team_id>/``. Team baselines are not bound to a workspace.
    """

    def __init__(
        self,
        teams_dir: Path,
        user_id: str,
        device: DeviceInfo,
        transport_factory: Callable[[Team], Transport],
        local_store_factory: Callable[[Path], LocalPromptStore],
        guard: SyncGuard | None = None,
        upload_concurrency: int = 1,
    ):
        self.teams_dir = Path(teams_dir)
        self.user_id = user_id
        self.device = device
        self.transport_factory = transport_factory
        self.local_store_factory = local_store_factory
        self.guard = guard or SyncGuard()
        self.upload_concurrency = upload_concurrency

    def engine_for(self, team: Team) -> SyncEngine:
        team_dir = self.teams_dir / team.id
        return SyncEngine(
            transport=self.transport_factory(team),
            state_store=SyncStateStore(team_dir),
            local_store=self.local_store_factory(team_dir),
            device=self.device,
            user_id=self.user_id,
            workspace_id=None,
            guard=self.guard,
            upload_concurrency=self.upload_concurrency,
        )

    def sync_team(self, team: Team) -> SyncResult:
        return self.engine_for(team).sync()

    def sync_all(self, teams: list[Team]) -> list[TeamSyncReport]:
        """Sync each team in turn. A failing team does not stop the others."""
        reports = []
        for team in teams:
            try:
                reports.append(TeamSyncReport(team, result=self.sync_team(team)))
            except PromptBankError as e:
                logger.error(f"Team sync failed for {team.name}: {e}")
                reports.append(TeamSyncReport(team, error=e))
        return reports
