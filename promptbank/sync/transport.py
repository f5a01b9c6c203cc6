"""Transport boundary between the sync engine and the backend.

The engine owns the merge algorithm; transports own I/O. Personal and team
transports differ in endpoints, scoping, quota and role checks.
"""

from abc import ABC, abstractmethod

from promptbank.errors import SyncError
from promptbank.models import Prompt
from promptbank.sync.protocol import RemotePrompt, UploadResult
from promptbank.sync.quota import QuotaCheck
from promptbank.sync.team import FULL_ACCESS, WritePermission


class Transport(ABC):
    """Abstract backend transport."""

    @property
    @abstractmethod
    def scope_key(self) -> str:
        """Identity of the sync scope, used to guard against concurrent passes."""

    @abstractmethod
    def fetch_remote_prompts(self, include_deleted: bool = True) -> list[RemotePrompt]:
        """Fetch remote prompts, optionally including tombstones."""

    @abstractmethod
    def upload(
        self,
        prompt: Prompt,
        cloud_id: str | None = None,
        expected_version: int | None = None,
    ) -> UploadResult:
        """Create (no cloud id) or update a remote prompt.

        Raises:
            ConflictError: The backend rejected the write
        """

    @abstractmethod
    def delete(self, cloud_id: str) -> None:
        """Tombstone a remote prompt. Missing prompts count as deleted."""

    def check_quota(self, create_count: int, upload_bytes: int) -> QuotaCheck | None:
        """Pre-flight quota check. Transports without quotas return None.

        Raises:
            QuotaExceededError: The uploads would not fit
        """
        return None

    def register_workspace(self) -> None:
        """Announce the workspace to the backend. No-op by default."""

    def restore(self, cloud_id: str) -> UploadResult:
        """Clear a remote tombstone.

        Raises:
            SyncError: The backend offers no restore for this scope
        """
        raise SyncError(f"{type(self).__name__} does not support restore")

    def write_permission(self) -> WritePermission:
        return FULL_ACCESS

