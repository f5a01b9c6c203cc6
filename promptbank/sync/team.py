"""Team roles and the write-permission gate."""

from dataclasses import dataclass
from enum import Enum


class TeamRole(str, Enum):
    """Team roles. Higher rank means more privilege."""

    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {
    TeamRole.OWNER: 4,
    TeamRole.ADMIN: 3,
    TeamRole.EDITOR: 2,
    TeamRole.VIEWER: 1,
}


@dataclass(frozen=True)
class WritePermission:
    """What the caller may change remotely. Reads are never gated."""

    can_upload: bool = True
    can_delete: bool = True

    @classmethod
    def for_role(cls, role: TeamRole) -> "WritePermission":
        return cls(can_upload=can_edit(role), can_delete=can_delete(role))


FULL_ACCESS = WritePermission()


def has_min_role(role: TeamRole, min_role: TeamRole) -> bool:
    return role.rank >= min_role.rank


def can_edit(role: TeamRole) -> bool:
    """Editors and above may create and update team prompts."""
    return has_min_role(role, TeamRole.EDITOR)


def can_delete(role: TeamRole) -> bool:
    """Admins and owners may delete team prompts."""
    return has_min_role(role, TeamRole.ADMIN)


@dataclass(frozen=True)
class Team:
    """A team the user belongs to."""

    id: str
    name: str
    role: TeamRole
    description: str | None = None
    member_count: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            role=TeamRole(data.get("role", TeamRole.VIEWER.value)),
            description=data.get("description"),
            member_count=data.get("memberCount"),
        )
