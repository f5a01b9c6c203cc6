"""Core prompt data model.

A prompt is a reusable text snippet with a title, a category and a body that
may contain ``{{variable}}`` placeholders. Each prompt carries usage metadata and
an append-only history of prior snapshots.
"""

import random
import re
import string
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

DEFAULT_CATEGORY = "General"
DEFAULT_MAX_VERSIONS = 10

_VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")
_ID_ALPHABET = string.digits + string.ascii_lowercase

_VARIABLE_DESCRIPTIONS = {
    "filename": "Current file name",
    "selectedText": "Currently selected text",
    "language": "Current file language",
    "projectName": "Current project name",
}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or epoch milliseconds) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def new_prompt_id() -> str:
    """Generate a device-local prompt id, e.g. ``prompt_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"prompt_{int(time.time() * 1000)}_{suffix}"


@dataclass
class TemplateVariable:
    """A ``{{name}}`` placeholder found in prompt content."""

    name: str
    type: str = "text"  # "text", "filename", "selection", "language", "custom"
    default_value: str | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.default_value is not None:
            data["defaultValue"] = self.default_value
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateVariable":
        return cls(
            name=data["name"],
            type=data.get("type", "text"),
            default_value=data.get("defaultValue"),
            description=data.get("description"),
        )


def _variable_type(name: str) -> str:
    lower = name.lower()
    if "file" in lower or "name" in lower:
        return "filename"
    if "select" in lower or "text" in lower:
        return "selection"
    if "lang" in lower:
        return "language"
    return "text"


def extract_variables(content: str) -> list[TemplateVariable]:
    """Extract distinct template variables in order of first appearance.

    Args:
        content: Prompt body

    Returns:
        One TemplateVariable per distinct ``{{name}}`` placeholder
    """
    found: list[TemplateVariable] = []
    seen: set[str] = set()
    for match in _VARIABLE_PATTERN.finditer(content):
        name = match.group(1)
        if name in seen:
            continue
        seen.add(name)
        found.append(
            TemplateVariable(
                name=name,
                type=_variable_type(name),
                description=_VARIABLE_DESCRIPTIONS.get(name, f"Variable: {name}"),
            )
        )
    return found


@dataclass
class FileContext:
    """Editor context a prompt was created in."""

    file_extension: str
    language: str
    project_type: str | None = None

    def to_dict(self) -> dict:
        data = {"fileExtension": self.file_extension, "language": self.language}
        if self.project_type is not None:
            data["projectType"] = self.project_type
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FileContext":
        return cls(
            file_extension=data.get("fileExtension", ""),
            language=data.get("language", ""),
            project_type=data.get("projectType"),
        )


@dataclass
class PromptMetadata:
    """Usage and timing metadata. Never part of the content hash."""

    created: datetime = field(default_factory=utcnow)
    modified: datetime = field(default_factory=utcnow)
    usage_count: int = 0
    last_used: datetime | None = None
    context: FileContext | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "created": format_timestamp(self.created),
            "modified": format_timestamp(self.modified),
            "usageCount": self.usage_count,
        }
        if self.last_used is not None:
            data["lastUsed"] = format_timestamp(self.last_used)
        if self.context is not None:
            data["context"] = self.context.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "PromptMetadata":
        data = data or {}
        now = utcnow()
        context = data.get("context")
        return cls(
            created=parse_timestamp(data.get("created")) or now,
            modified=parse_timestamp(data.get("modified")) or now,
            usage_count=int(data.get("usageCount") or 0),
            last_used=parse_timestamp(data.get("lastUsed")),
            context=FileContext.from_dict(context) if context else None,
        )


@dataclass
class PromptVersion:
    """A snapshot of a prompt captured immediately before an edit."""

    version_id: str
    timestamp: datetime
    device_id: str
    device_name: str
    title: str
    content: str
    category: str
    description: str | None = None
    change_reason: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "versionId": self.version_id,
            "timestamp": format_timestamp(self.timestamp),
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "title": self.title,
            "content": self.content,
            "category": self.category,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.change_reason is not None:
            data["changeReason"] = self.change_reason
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PromptVersion":
        return cls(
            version_id=data["versionId"],
            timestamp=parse_timestamp(data["timestamp"]),
            device_id=data.get("deviceId", ""),
            device_name=data.get("deviceName", ""),
            title=data.get("title", ""),
            content=data.get("content", ""),
            category=data.get("category", DEFAULT_CATEGORY),
            description=data.get("description"),
            change_reason=data.get("changeReason"),
        )


@dataclass
class Prompt:
    """A prompt in the device-local library."""

    id: str
    title: str
    content: str
    category: str = DEFAULT_CATEGORY
    description: str | None = None
    order: int | None = None
    category_order: int | None = None
    variables: list[TemplateVariable] = field(default_factory=list)
    metadata: PromptMetadata = field(default_factory=PromptMetadata)
    versions: list[PromptVersion] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        title: str,
        content: str,
        category: str = DEFAULT_CATEGORY,
        description: str | None = None,
    ) -> "Prompt":
        """Create a new prompt with a fresh id and extracted variables."""
        return cls(
            id=new_prompt_id(),
            title=title,
            content=content,
            category=category,
            description=description,
            variables=extract_variables(content),
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "variables": [v.to_dict() for v in self.variables],
            "metadata": self.metadata.to_dict(),
            "versions": [v.to_dict() for v in self.versions],
        }
        if self.description is not None:
            data["description"] = self.description
        if self.order is not None:
            data["order"] = self.order
        if self.category_order is not None:
            data["categoryOrder"] = self.category_order
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Prompt":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            content=data.get("content", ""),
            category=data.get("category") or DEFAULT_CATEGORY,
            # Older files stored "" for an absent description
            description=data.get("description") or None,
            order=data.get("order"),
            category_order=data.get("categoryOrder"),
            variables=[TemplateVariable.from_dict(v) for v in data.get("variables", [])],
            metadata=PromptMetadata.from_dict(data.get("metadata")),
            versions=[PromptVersion.from_dict(v) for v in data.get("versions", [])],
        )


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of the device performing edits and syncs."""

    device_id: str
    device_name: str


def prune_versions(
    versions: list[PromptVersion], max_versions: int = DEFAULT_MAX_VERSIONS
) -> list[PromptVersion]:
    """Keep only the newest ``max_versions`` snapshots, oldest first."""
    ordered = sorted(versions, key=lambda v: v.timestamp)
    if max_versions <= 0:
        return []
    return ordered[-max_versions:]


def merge_versions(
    local: list[PromptVersion],
    remote: list[PromptVersion],
    max_versions: int = DEFAULT_MAX_VERSIONS,
) -> list[PromptVersion]:
    """Union two histories by version id, sorted by timestamp and pruned."""
    merged: dict[str, PromptVersion] = {v.version_id: v for v in local}
    for version in remote:
        merged.setdefault(version.version_id, version)
    return prune_versions(list(merged.values()), max_versions)


_CONTENT_FIELDS = ("title", "content", "category", "description")


def record_edit(
    prompt: Prompt,
    device: DeviceInfo,
    *,
    change_reason: str | None = None,
    max_versions: int = DEFAULT_MAX_VERSIONS,
    **changes: Any,
) -> Prompt:
    """Return an edited copy of ``prompt``.

    The prior snapshot is appended to the history only when one of title,
    content, category or description actually changes.

    Args:
        prompt: Prompt being edited
        device: Device making the edit
        change_reason: Optional free-text reason stored on the snapshot
        max_versions: History length cap
        **changes: Field values to apply (title, content, category, description,
            order, category_order)

    Returns:
        The updated prompt
    """
    unknown = set(changes) - set(_CONTENT_FIELDS) - {"order", "category_order"}
    if unknown:
        raise TypeError(f"Unknown prompt fields: {', '.join(sorted(unknown))}")

    content_changed = any(
        name in changes and changes[name] != getattr(prompt, name)
        for name in _CONTENT_FIELDS
    )
    versions = list(prompt.versions)
    if content_changed:
        versions.append(
            PromptVersion(
                version_id=str(uuid.uuid4()),
                timestamp=utcnow(),
                device_id=device.device_id,
                device_name=device.device_name,
                title=prompt.title,
                content=prompt.content,
                category=prompt.category,
                description=prompt.description,
                change_reason=change_reason,
            )
        )
        versions = prune_versions(versions, max_versions)

    edited = replace(prompt, **changes, versions=versions)
    edited.variables = extract_variables(edited.content)
    edited.metadata = replace(prompt.metadata, modified=utcnow())
    return edited
