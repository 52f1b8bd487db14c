"""Project lifecycle and the user's current project."""

from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.core.exceptions import BadRequestError, NotFoundError
from homecentral.core.logging import get_logger
from homecentral.db.models import User
from homecentral.repositories.project_repo import ProjectRepository
from homecentral.services.access_service import require_project_membership, require_project_owner
from homecentral.services.tool_registry import (
    STAGE_OPTIONS,
    VALID_STAGE_IDS,
    get_stage_label,
    get_tool,
    get_tool_priority,
    is_valid_tool_key,
)

logger = get_logger(__name__)

DEFAULT_PROJECT_NAME = "My Home"
MAX_PROJECT_NAME_LENGTH = 100
PROJECT_STATUSES = frozenset({"ACTIVE", "ARCHIVED", "TRASHED"})


def ensure_current_project(db: DBSession, repo: ProjectRepository, user: User) -> str:
    """Return the user's current project id, repairing or creating it if needed.

    A current project the user is no longer a member of is replaced by the
    oldest remaining ACTIVE membership, or the oldest of any status. A user
    without any membership gets a fresh "My Home" project.
    """
    if user.current_project_id and repo.get_membership(user.current_project_id, user.id):
        return user.current_project_id

    # Re-check against the committed row before writing.
    db.refresh(user)
    if user.current_project_id and repo.get_membership(user.current_project_id, user.id):
        return user.current_project_id

    memberships = repo.list_memberships(user.id)
    if memberships:
        active = [m for m in memberships if m.project.status == "ACTIVE"]
        project_id = (active or memberships)[0].project_id
    else:
        project = repo.create(user.id, DEFAULT_PROJECT_NAME)
        project_id = project.id
        logger.info("Default project created", data={"user_id": user.id, "project_id": project_id})

    user.current_project_id = project_id
    db.commit()
    return project_id


def normalize_project_name(raw: Any, *, truncate: bool) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise BadRequestError("Project name is required")
    name = raw.strip()
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        if not truncate:
            raise BadRequestError(f"Project name must be {MAX_PROJECT_NAME_LENGTH} characters or fewer")
        name = name[:MAX_PROJECT_NAME_LENGTH]
    return name


def create_project(db: DBSession, repo: ProjectRepository, user: User, raw_name: Any):
    name = normalize_project_name(raw_name, truncate=False)
    project = repo.create(user.id, name)
    user.current_project_id = project.id
    db.commit()
    db.refresh(project)
    logger.info("Project created", data={"user_id": user.id, "project_id": project.id})
    return project


def update_project(
    db: DBSession,
    repo: ProjectRepository,
    user: User,
    project_id: str,
    name: Any = None,
    status: Optional[str] = None,
):
    require_project_owner(repo, user.id, project_id)

    changes: dict[str, Any] = {}
    if name is not None:
        changes["name"] = normalize_project_name(name, truncate=True)
    if status is not None:
        if status not in PROJECT_STATUSES:
            raise BadRequestError("Invalid status")
        changes["status"] = status
    if not changes:
        raise BadRequestError("Nothing to update")

    project = repo.update(project_id, **changes)
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: DBSession, repo: ProjectRepository, user: User, project_id: str) -> None:
    """Permanently delete a trashed project and everything scoped to it."""
    require_project_owner(repo, user.id, project_id)
    project = repo.get_by_id(project_id)
    if project is None:
        raise NotFoundError("Project not found")
    if project.status != "TRASHED":
        raise BadRequestError("Only trashed projects can be deleted")

    repo.delete(project_id)
    if user.current_project_id == project_id:
        user.current_project_id = None
    db.commit()
    logger.info("Project deleted", data={"user_id": user.id, "project_id": project_id})


def set_current_project(db: DBSession, repo: ProjectRepository, user: User, project_id: str) -> str:
    require_project_membership(repo, user.id, project_id)
    user.current_project_id = project_id
    db.commit()
    return project_id


def set_stage(db: DBSession, repo: ProjectRepository, user: User, stage: Any) -> str:
    if not isinstance(stage, str) or stage not in VALID_STAGE_IDS:
        raise BadRequestError(f"Invalid stage. Must be one of: {', '.join(option.id for option in STAGE_OPTIONS)}")
    project_id = ensure_current_project(db, repo, user)
    require_project_membership(repo, user.id, project_id)
    repo.update(project_id, current_stage=stage)
    db.commit()
    return stage


def set_active_tools(db: DBSession, repo: ProjectRepository, user: User, tool_keys: Any) -> list[str]:
    if not isinstance(tool_keys, list) or not all(isinstance(k, str) and is_valid_tool_key(k) for k in tool_keys):
        raise BadRequestError("Invalid toolKeys. Must be an array of valid tool keys.")
    project_id = ensure_current_project(db, repo, user)
    require_project_membership(repo, user.id, project_id)

    unique_keys = list(dict.fromkeys(tool_keys))
    repo.update(project_id, active_tool_keys=unique_keys)
    db.commit()
    return unique_keys


def get_next_steps(db: DBSession, repo: ProjectRepository, user: User) -> dict[str, Any]:
    """Tools for the current stage, primary recommendation first."""
    project_id = ensure_current_project(db, repo, user)
    project = repo.get_by_id(project_id)
    stage = project.current_stage if project else None
    tools = [get_tool(key) for key in get_tool_priority(stage) or [] if is_valid_tool_key(key)]
    return {
        "stage": stage,
        "stageLabel": get_stage_label(stage),
        "toolKeys": [tool.tool_key for tool in tools],
        "tools": [
            {"toolKey": tool.tool_key, "title": tool.title, "href": tool.href, "description": tool.description}
            for tool in tools
        ],
    }
