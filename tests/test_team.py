"""Tests for team roles and the write-permission gate."""

import pytest

from promptbank.sync.team import (
    FULL_ACCESS,
    Team,
    TeamRole,
    WritePermission,
    can_delete,
    can_edit,
    has_min_role,
)


class TestRoles:
    """Tests for role ranking."""

    @pytest.mark.parametrize(
        "role,editable,deletable",
        [
            (TeamRole.OWNER, True, True),
            (TeamRole.ADMIN, True, True),
            (TeamRole.EDITOR, True, False),
            (TeamRole.VIEWER, False, False),
        ],
    )
    def test_permissions(self, role, editable, deletable):
        """Test edit and delete rights per role."""
        assert can_edit(role) is editable
        assert can_delete(role) is deletable

    def test_min_role(self):
        """Test has_min_role compares ranks."""
        assert has_min_role(TeamRole.OWNER, TeamRole.ADMIN)
        assert not has_min_role(TeamRole.VIEWER, TeamRole.EDITOR)
        assert has_min_role(TeamRole.EDITOR, TeamRole.EDITOR)

    def test_write_permission_for_role(self):
        """Test WritePermission mirrors the role checks."""
        assert WritePermission.for_role(TeamRole.VIEWER) == WritePermission(False, False)
        assert WritePermission.for_role(TeamRole.EDITOR) == WritePermission(True, False)
        assert WritePermission.for_role(TeamRole.OWNER) == FULL_ACCESS


class TestTeam:
    """Tests for Team parsing."""

    def test_from_dict(self):
        """Test a team listing entry parses."""
        team = Team.from_dict(
            {"id": "t1", "name": "Platform", "role": "admin", "memberCount": 5}
        )
        assert team.role is TeamRole.ADMIN
        assert team.member_count == 5

    def test_defaults(self):
        """Test missing name and role fall back to id and viewer."""
        team = Team.from_dict({"id": "t2"})
        assert team.name == "t2"
        assert team.role is TeamRole.VIEWER
