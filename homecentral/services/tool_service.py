"""Reading and writing per-project tool state."""

import json
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.core.exceptions import BadRequestError, ConflictError, InvalidPayloadError
from homecentral.core.logging import get_logger
from homecentral.db.models import ToolInstance, User
from homecentral.repositories.project_repo import ProjectRepository
from homecentral.repositories.tool_repo import StaleRevisionError, ToolRepository
from homecentral.services.access_service import ToolAccess, require_tool_access
from homecentral.services.tool_payloads import upgrade_to_latest, validate_and_coerce_tool_payload
from homecentral.services.tool_registry import is_valid_tool_key

logger = get_logger(__name__)


def require_known_tool(tool_key: str) -> None:
    if not is_valid_tool_key(tool_key):
        raise BadRequestError("Invalid tool key")


def _updated_by(instance: ToolInstance) -> Optional[dict[str, Any]]:
    user = instance.updated_by
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "image": user.image}


def read_payload(instance: ToolInstance) -> Any:
    """Stored payload, with finish decisions upgraded to the current version."""
    payload = instance.payload
    if instance.tool_key == "finish_decisions" and isinstance(payload, dict):
        return upgrade_to_latest(payload).to_payload()
    return payload


def serialize_state(instance: Optional[ToolInstance], access: ToolAccess) -> dict[str, Any]:
    if instance is None:
        return {"payload": None, "revision": 0, "updatedAt": None, "updatedBy": None, "access": access.value}
    return {
        "payload": read_payload(instance),
        "revision": instance.revision,
        "updatedAt": instance.updated_at,
        "updatedBy": _updated_by(instance),
        "access": access.value,
    }


def get_tool_state(
    projects: ProjectRepository,
    tools: ToolRepository,
    user: User,
    project_id: str,
    tool_key: str,
) -> dict[str, Any]:
    require_known_tool(tool_key)
    access = require_tool_access(projects, user.id, project_id, tool_key, ToolAccess.VIEW)
    return serialize_state(tools.get(project_id, tool_key), access)


def _stale_revision(
    current: Optional[ToolInstance],
    access: ToolAccess,
    project_id: str,
    tool_key: str,
    base_revision: Optional[int],
) -> ConflictError:
    current_revision = current.revision if current is not None else 0
    logger.info(
        "Tool write rejected: stale revision",
        data={
            "tool_key": tool_key,
            "project_id": project_id,
            "base_revision": base_revision,
            "revision": current_revision,
        },
    )
    return ConflictError(
        "Tool state was changed by someone else",
        code="E4091",
        details={"current": serialize_state(current, access)},
    )


def save_tool_state(
    db: DBSession,
    projects: ProjectRepository,
    tools: ToolRepository,
    user: User,
    project_id: str,
    tool_key: str,
    incoming: Any,
    base_revision: Optional[int] = None,
) -> dict[str, Any]:
    """Validate, coerce and persist a tool payload.

    With ``base_revision`` the write only lands if nobody else wrote since
    that revision; a mismatch raises a 409 carrying the current server state.
    The check is repeated inside the UPDATE, so a writer that commits between
    the read and the write still produces a 409. Without it the write is
    last-writer-wins.
    """
    require_known_tool(tool_key)
    access = require_tool_access(projects, user.id, project_id, tool_key, ToolAccess.EDIT)

    result = validate_and_coerce_tool_payload(tool_key, incoming)
    if not result.valid:
        raise InvalidPayloadError(result.reason or "invalid_payload")

    current = tools.get(project_id, tool_key)
    current_revision = current.revision if current is not None else 0
    if base_revision is not None and base_revision != current_revision:
        raise _stale_revision(current, access, project_id, tool_key, base_revision)

    try:
        instance = tools.save(project_id, tool_key, result.payload, user.id, expected_revision=base_revision)
    except StaleRevisionError:
        db.rollback()
        if base_revision is not None:
            raise _stale_revision(tools.get(project_id, tool_key), access, project_id, tool_key, base_revision)
        # Lost a first-insert race without a base revision: overwrite the winner.
        instance = tools.save(project_id, tool_key, result.payload, user.id)
    db.commit()
    db.refresh(instance)
    logger.info(
        "Tool state saved",
        data={
            "tool_key": tool_key,
            "project_id": project_id,
            "revision": instance.revision,
            "bytes": len(json.dumps(result.payload, separators=(",", ":"))),
        },
    )
    return serialize_state(instance, access)


def get_tool_summaries(tools: ToolRepository, project_id: str) -> list[dict[str, Any]]:
    summaries = []
    for instance in tools.list_for_project(project_id):
        updated_by = instance.updated_by
        summaries.append(
            {
                "toolKey": instance.tool_key,
                "updatedAt": instance.updated_at,
                "updatedBy": {"name": updated_by.name, "image": updated_by.image} if updated_by else None,
            }
        )
    return summaries
