"""Wire models for the prompt sync backend.

These mirror the JSON rows and responses returned by the backend functions.
Unknown fields are ignored so that newer servers stay readable.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from promptbank.models import (
    DEFAULT_CATEGORY,
    Prompt,
    PromptMetadata,
    PromptVersion,
    TemplateVariable,
)

UNKNOWN_DEVICE = "Unknown Device"


# =============================================================================
# Prompt rows
# =============================================================================


class RemotePrompt(BaseModel):
    """A prompt row as stored by the backend."""

    model_config = ConfigDict(extra="ignore")

    cloud_id: str = Field(..., description="Server-assigned id")
    local_id: Optional[str] = Field(None, description="Id on the creating device")
    content_hash: str
    version: int = Field(1, description="Optimistic lock counter")
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = Field(None, description="Tombstone timestamp")
    title: str
    content: str
    description: Optional[str] = None
    category: Optional[str] = None
    prompt_order: Optional[int] = None
    category_order: Optional[int] = None
    variables: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sync_metadata: Optional[Dict[str, Any]] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def device_name(self) -> str:
        """Display name of the device that last modified this row."""
        meta = self.sync_metadata or {}
        return meta.get("lastModifiedDeviceName") or UNKNOWN_DEVICE

    @property
    def versions(self) -> list[PromptVersion]:
        return [PromptVersion.from_dict(v) for v in self.metadata.get("versions") or []]

    def to_prompt(self, local_id: str) -> Prompt:
        """Convert this row into a local prompt stored under ``local_id``."""
        return Prompt(
            id=local_id,
            title=self.title,
            content=self.content,
            category=self.category or DEFAULT_CATEGORY,
            description=self.description or None,
            order=self.prompt_order,
            category_order=self.category_order,
            variables=[TemplateVariable.from_dict(v) for v in self.variables],
            metadata=PromptMetadata.from_dict(self.metadata),
            versions=self.versions,
        )


# =============================================================================
# Responses
# =============================================================================


class UploadResult(BaseModel):
    """Result of a successful create or update."""

    model_config = ConfigDict(populate_by_name=True)

    cloud_id: str = Field(..., alias="cloudId")
    version: int


class UserQuota(BaseModel):
    """Remote-reported usage and limits."""

    model_config = ConfigDict(populate_by_name=True)

    prompt_count: int = Field(..., alias="promptCount")
    prompt_limit: int = Field(..., alias="promptLimit")
    storage_bytes: int = Field(..., alias="storageBytes")
    storage_limit: int = Field(..., alias="storageLimit")
    percentage_used: float = Field(0.0, alias="percentageUsed")


class ConflictDetails(BaseModel):
    """Details block of a 409 response."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    expected_version: Optional[int] = Field(None, alias="expectedVersion")
    actual_version: Optional[int] = Field(None, alias="actualVersion")
