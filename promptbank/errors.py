"""Error taxonomy for prompt synchronization."""

from enum import Enum
from typing import Any


class SyncConflictType(str, Enum):
    """Conflict codes reported by the backend on a rejected upload."""

    PROMPT_DELETED = "PROMPT_DELETED"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    OPTIMISTIC_LOCK_CONFLICT = "OPTIMISTIC_LOCK_CONFLICT"


class PromptBankError(Exception):
    """Base class for all promptbank errors."""


class StorageError(PromptBankError):
    """Local storage could not be read or written."""


class SyncError(PromptBankError):
    """Base class for sync failures."""


class ConflictError(SyncError):
    """The backend rejected an upload with a conflict code."""

    def __init__(self, code: SyncConflictType, message: str = "", details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message or f"Sync conflict: {code.value}")

    @property
    def expected_version(self) -> int | None:
        return self.details.get("expectedVersion")

    @property
    def actual_version(self) -> int | None:
        return self.details.get("actualVersion")


class SyncRetryRequired(SyncError):
    """Another device updated a prompt after the plan was computed.

    The plan is stale. Run sync again to re-fetch and recompute.
    """

    def __init__(
        self,
        prompt_id: str,
        code: SyncConflictType,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.prompt_id = prompt_id
        self.code = code
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{code.value} for prompt {prompt_id} "
            f"(expected v{expected_version}, actual v{actual_version}); "
            "sync again to retry"
        )


class QuotaExceededError(SyncError):
    """Applying the plan would exceed a remote limit. Nothing was uploaded."""

    def __init__(self, kind: str, limit: int, current: int, requested: int):
        self.kind = kind  # "promptLimit" or "storageLimit"
        self.limit = limit
        self.current = current
        self.requested = requested
        super().__init__(
            f"Quota exceeded ({kind}): {current} in use + {requested} requested "
            f"> limit {limit}"
        )

    @property
    def overage(self) -> int:
        return self.current + self.requested - self.limit


class AuthError(SyncError):
    """Credentials are missing, invalid or expired."""


class PermissionDeniedError(SyncError):
    """The caller's team role does not allow the operation."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)


class NetworkError(SyncError):
    """The backend could not be reached or returned an unexpected error."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class SyncInProgressError(SyncError):
    """A sync pass for the same scope is already running."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(f"Sync already in progress for {scope}")
