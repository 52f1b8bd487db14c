"""Project membership and per-tool capability checks.

Every route that touches a tool goes through ``resolve_tool_access``. The
owner shortcut lives here and nowhere else.
"""

from enum import Enum

from homecentral.core.exceptions import AccessDeniedError
from homecentral.db.models import ProjectMember
from homecentral.repositories.project_repo import ProjectRepository


class ToolAccess(str, Enum):
    OWNER = "OWNER"
    EDIT = "EDIT"
    VIEW = "VIEW"
    NONE = "NONE"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def satisfies(self, required: "ToolAccess") -> bool:
        return self.rank >= required.rank


_RANK = {
    ToolAccess.NONE: 0,
    ToolAccess.VIEW: 1,
    ToolAccess.EDIT: 2,
    ToolAccess.OWNER: 3,
}


def resolve_tool_access(repo: ProjectRepository, user_id: str, project_id: str, tool_key: str) -> ToolAccess:
    """Resolve a user's access to one tool in one project."""
    member = repo.get_membership(project_id, user_id)
    if member is None:
        return ToolAccess.NONE
    if member.role == "OWNER":
        return ToolAccess.OWNER

    access = repo.get_tool_access(project_id, tool_key, user_id)
    if access is None:
        return ToolAccess.NONE
    return ToolAccess.EDIT if access.level == "EDIT" else ToolAccess.VIEW


def require_project_membership(repo: ProjectRepository, user_id: str, project_id: str) -> ProjectMember:
    member = repo.get_membership(project_id, user_id)
    if member is None:
        raise AccessDeniedError(AccessDeniedError.NOT_A_MEMBER)
    return member


def require_project_owner(repo: ProjectRepository, user_id: str, project_id: str) -> ProjectMember:
    member = require_project_membership(repo, user_id, project_id)
    if member.role != "OWNER":
        raise AccessDeniedError(AccessDeniedError.OWNER_REQUIRED)
    return member


def require_tool_access(
    repo: ProjectRepository,
    user_id: str,
    project_id: str,
    tool_key: str,
    required: ToolAccess,
) -> ToolAccess:
    """Raise unless the user holds at least ``required`` on the tool.

    Non-members get NOT_A_MEMBER, members without a grant NO_TOOL_ACCESS,
    and VIEW holders asking to write VIEW_ONLY.
    """
    access = resolve_tool_access(repo, user_id, project_id, tool_key)
    if access.satisfies(required):
        return access

    if access is ToolAccess.NONE:
        if repo.get_membership(project_id, user_id) is None:
            raise AccessDeniedError(AccessDeniedError.NOT_A_MEMBER)
        raise AccessDeniedError(AccessDeniedError.NO_TOOL_ACCESS)
    raise AccessDeniedError(AccessDeniedError.VIEW_ONLY)


def get_edit_share_count(repo: ProjectRepository, project_id: str, tool_key: str) -> int:
    return repo.count_edit_shares(project_id, tool_key)
