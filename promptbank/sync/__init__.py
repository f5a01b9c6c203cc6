"""Prompt synchronization.

This module provides three-way sync between the local prompt library and the
cloud backend:
- MergePlanner: classify every prompt into a sync action
- SyncExecutor: apply a plan through a Transport
- SyncStateStore: durable, migrated last-synced baseline
- SyncEngine: orchestrate a full pass for one scope
"""

from promptbank.sync.content_hash import (
    compute_content_hash,
    matches_hash,
)
from promptbank.sync.engine import (
    SyncEngine,
    SyncGuard,
    SyncStatusReport,
    TeamSyncReport,
    TeamSyncService,
)
from promptbank.sync.executor import SyncExecutor, SyncResult
from promptbank.sync.planner import (
    Adopt,
    DeleteLocal,
    DeleteRemote,
    Download,
    ForgetSyncInfo,
    Fork,
    MergePlanner,
    NoOp,
    SyncAction,
    SyncPlan,
    Upload,
)
from promptbank.sync.protocol import RemotePrompt, UploadResult, UserQuota
from promptbank.sync.quota import QuotaCheck, QuotaGuard
from promptbank.sync.state import CURRENT_SCHEMA_VERSION, PromptSyncInfo, SyncState
from promptbank.sync.state_store import SyncStateStore
from promptbank.sync.team import Team, TeamRole, WritePermission
from promptbank.sync.transport import Transport

__all__ = [
    # Content hashing
    "compute_content_hash",
    "matches_hash",
    # Planning
    "MergePlanner",
    "SyncPlan",
    "SyncAction",
    "NoOp",
    "Upload",
    "Download",
    "DeleteLocal",
    "DeleteRemote",
    "Fork",
    "Adopt",
    "ForgetSyncInfo",
    # Execution
    "SyncExecutor",
    "SyncResult",
    "SyncEngine",
    "SyncGuard",
    "SyncStatusReport",
    "TeamSyncService",
    "TeamSyncReport",
    # State
    "SyncState",
    "PromptSyncInfo",
    "SyncStateStore",
    "CURRENT_SCHEMA_VERSION",
    # Quota
    "QuotaGuard",
    "QuotaCheck",
    # Transport
    "Transport",
    "RemotePrompt",
    "UploadResult",
    "UserQuota",
    # Teams
    "Team",
    "TeamRole",
    "WritePermission",
]
