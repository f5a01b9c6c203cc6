"""HTTP transports for personal and team sync."""

import logging
from typing import Any

from pydantic import ValidationError

from promptbank.errors import NetworkError, PermissionDeniedError
from promptbank.models import DeviceInfo, Prompt, format_timestamp
from promptbank.sync.client import PromptBankClient
from promptbank.sync.content_hash import compute_content_hash
from promptbank.sync.protocol import RemotePrompt, UploadResult, UserQuota
from promptbank.sync.quota import QuotaCheck, QuotaGuard
from promptbank.sync.team import Team, WritePermission
from promptbank.sync.transport import Transport

logger = logging.getLogger(__name__)


def build_upload_body(
    prompt: Prompt,
    device: DeviceInfo,
    cloud_id: str | None,
    expected_version: int | None,
) -> dict[str, Any]:
    """Build the JSON body shared by personal and team upload functions."""
    metadata = prompt.metadata.to_dict()
    metadata["versions"] = [version.to_dict() for version in prompt.versions]
    return {
        "cloudId": cloud_id,
        "expectedVersion": expected_version,
        "contentHash": compute_content_hash(prompt),
        "local_id": prompt.id,
        "title": prompt.title,
        "content": prompt.content,
        "description": prompt.description,
        "category": prompt.category,
        "prompt_order": prompt.order,
        "category_order": prompt.category_order,
        "variables": [variable.to_dict() for variable in prompt.variables],
        "metadata": metadata,
        "sync_metadata": {
            "lastModifiedDeviceId": device.device_id,
            "lastModifiedDeviceName": device.device_name,
            "lastModifiedAt": format_timestamp(prompt.metadata.modified),
        },
    }


def parse_remote_prompts(data: Any) -> list[RemotePrompt]:
    """Parse a ``{"prompts": [...]}`` response.

    Raises:
        NetworkError: The response did not have the expected shape
    """
    rows = (data or {}).get("prompts") or []
    try:
        return [RemotePrompt.model_validate(row) for row in rows]
    except ValidationError as e:
        raise NetworkError(f"Malformed prompt list from backend: {e}") from e


def _parse_upload(data: Any) -> UploadResult:
    try:
        return UploadResult.model_validate(data)
    except ValidationError as e:
        raise NetworkError(f"Malformed upload response from backend: {e}") from e


class PersonalTransport(Transport):
    """Sync a user's own prompts, scoped to one workspace."""

    def __init__(
        self,
        client: PromptBankClient,
        user_id: str,
        device: DeviceInfo,
        workspace_id: str,
        workspace_name: str = "Unnamed Workspace",
        quota_guard: QuotaGuard | None = None,
    ):
        self.client = client
        self.user_id = user_id
        self.device = device
        self.workspace_id = workspace_id
        self.workspace_name = workspace_name
        self.quota_guard = quota_guard or QuotaGuard()

    @property
    def scope_key(self) -> str:
        return f"personal:{self.user_id}:{self.device.device_id}:{self.workspace_id}"

    def fetch_remote_prompts(self, include_deleted: bool = True) -> list[RemotePrompt]:
        data = self.client.invoke(
            "get-user-prompts",
            {"workspaceId": self.workspace_id, "includeDeleted": include_deleted},
        )
        return parse_remote_prompts(data)

    def upload(
        self,
        prompt: Prompt,
        cloud_id: str | None = None,
        expected_version: int | None = None,
    ) -> UploadResult:
        body = build_upload_body(prompt, self.device, cloud_id, expected_version)
        body["workspaceId"] = self.workspace_id
        return _parse_upload(self.client.invoke("sync-prompt", body))

    def delete(self, cloud_id: str) -> None:
        try:
            self.client.invoke(
                "delete-prompt",
                {
                    "workspaceId": self.workspace_id,
                    "cloudId": cloud_id,
                    "deviceId": self.device.device_id,
                },
            )
        except NetworkError as e:
            if e.status_code == 404:
                logger.info(f"Prompt {cloud_id} already deleted remotely")
                return
            raise

    def restore(self, cloud_id: str) -> UploadResult:
        data = self.client.invoke(
            "restore-prompt", {"workspaceId": self.workspace_id, "cloudId": cloud_id}
        )
        return _parse_upload(data)

    def fetch_quota(self) -> UserQuota:
        data = self.client.invoke("get-user-quota", {})
        try:
            return UserQuota.model_validate(data)
        except ValidationError as e:
            raise NetworkError(f"Malformed quota response from backend: {e}") from e

    def check_quota(self, create_count: int, upload_bytes: int) -> QuotaCheck:
        return self.quota_guard.check(self.fetch_quota(), create_count, upload_bytes)

    def register_workspace(self) -> None:
        """Register the workspace. Failures are logged and do not block sync."""
        try:
            self.client.invoke(
                "register-workspace",
                {
                    "workspaceId": self.workspace_id,
                    "workspaceName": self.workspace_name,
                    "deviceName": self.device.device_name,
                },
            )
        except NetworkError as e:
            logger.warning(f"Failed to register workspace: {e}")


class TeamTransport(Transport):
    """Sync a team's shared library. Writes are gated by the caller's role."""

    def __init__(self, client: PromptBankClient, device: DeviceInfo, team: Team):
        self.client = client
        self.device = device
        self.team = team

    @property
    def scope_key(self) -> str:
        return f"team:{self.team.id}"

    def write_permission(self) -> WritePermission:
        return WritePermission.for_role(self.team.role)

    def fetch_remote_prompts(self, include_deleted: bool = True) -> list[RemotePrompt]:
        try:
            data = self.client.invoke(
                "get-team-prompts",
                {"teamId": self.team.id, "includeDeleted": include_deleted},
            )
        except PermissionDeniedError as e:
            raise PermissionDeniedError(
                f"You are not a member of team {self.team.name}", code=e.code
            ) from e
        return parse_remote_prompts(data)

    def upload(
        self,
        prompt: Prompt,
        cloud_id: str | None = None,
        expected_version: int | None = None,
    ) -> UploadResult:
        body = build_upload_body(prompt, self.device, cloud_id, expected_version)
        body["teamId"] = self.team.id
        try:
            data = self.client.invoke("sync-team-prompt", body)
        except PermissionDeniedError as e:
            raise PermissionDeniedError(
                f"Insufficient permissions to edit prompts in team {self.team.name} "
                f"(role: {self.team.role.value})",
                code=e.code or "INSUFFICIENT_ROLE",
            ) from e
        return _parse_upload(data)

    def delete(self, cloud_id: str) -> None:
        try:
            self.client.invoke(
                "delete-team-prompt",
                {
                    "teamId": self.team.id,
                    "cloudId": cloud_id,
                    "deviceId": self.device.device_id,
                },
            )
        except NetworkError as e:
            if e.status_code == 404:
                logger.info(f"Team prompt {cloud_id} already deleted remotely")
                return
            raise
