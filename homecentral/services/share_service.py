"""Public read-only share links for tool state.

Public payloads are built by allowlist: a field leaves the server only if a
projection below names it. Everything else, including fields added to tool
payloads later, stays private.
"""

import secrets
from datetime import timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.config import get_settings
from homecentral.core.exceptions import AccessDeniedError, BadRequestError, NotFoundError
from homecentral.core.logging import get_logger
from homecentral.core.time import utcnow
from homecentral.db.models import ToolShareToken, User
from homecentral.repositories.project_repo import ProjectRepository
from homecentral.repositories.share_token_repo import ShareTokenRepository
from homecentral.repositories.tool_repo import ToolRepository
from homecentral.services.access_service import ToolAccess, resolve_tool_access
from homecentral.services.site_settings import get_report_settings
from homecentral.services.tool_payloads import upgrade_to_latest
from homecentral.services.tool_registry import is_shareable_tool

logger = get_logger(__name__)

INVALID_LINK = "Invalid or expired link"

PUNCHLIST_ITEM_FIELDS = (
    "id", "itemNumber", "title", "location", "status", "assigneeLabel",
    "priority", "createdAt", "updatedAt", "completedAt",
)
PHOTO_FIELDS = ("id", "url", "thumbnailUrl", "caption", "label", "uploadedAt")
COMMENT_FIELDS = ("id", "text", "authorName", "createdAt", "refIdeaId", "refOptionId")
BOARD_FIELDS = ("id", "name", "isDefault", "createdAt", "updatedAt")
IDEA_FIELDS = ("id", "name", "heroImageId", "sourceUrl", "sourceTitle", "tags", "createdAt", "updatedAt")
REACTION_FIELDS = ("type", "userName")
ROOM_FIELDS = ("id", "type", "name", "createdAt", "updatedAt")
DECISION_FIELDS = ("id", "title", "status", "createdAt", "updatedAt")
OPTION_FIELDS = ("id", "name", "urls", "isSelected", "imageUrl", "thumbnailUrl", "createdAt", "updatedAt")


def generate_share_token() -> str:
    """32 random bytes, url-safe."""
    return secrets.token_urlsafe(32)


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _pick(source: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {key: source[key] for key in fields if key in source}


def _objects(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _project_list(value: Any, fields: tuple[str, ...]) -> list[dict[str, Any]]:
    return [_pick(entry, fields) for entry in _objects(value)]


# --- Share settings -------------------------------------------------------


def build_share_settings(body: dict[str, Any], hide_notes: bool) -> dict[str, Any]:
    """Normalize the owner's link options; the admin failsafe wins over includeNotes."""
    settings: dict[str, Any] = {
        "includeNotes": body.get("includeNotes") is True and not hide_notes,
        "includeComments": body.get("includeComments") is True,
        "includePhotos": body.get("includePhotos") is not False,
        "locations": _str_list(body.get("locations")),
        "assignees": _str_list(body.get("assignees")),
    }

    scope = body.get("scope")
    if isinstance(scope, dict) and scope.get("mode") == "selected":
        settings["scope"] = {
            "mode": "selected",
            "roomIds": _str_list(scope.get("roomIds")),
            "roomLabels": _str_list(scope.get("roomLabels")),
            "boardIds": _str_list(scope.get("boardIds")),
            "boardLabels": _str_list(scope.get("boardLabels")),
        }
    else:
        settings["scope"] = {"mode": "all"}

    if isinstance(body.get("boardId"), str) and body["boardId"]:
        settings["boardId"] = body["boardId"]
        if isinstance(body.get("boardName"), str):
            settings["boardName"] = body["boardName"]
    return settings


# --- Projections ----------------------------------------------------------


def _project_comments(value: Any) -> list[dict[str, Any]]:
    # authorEmail is never in COMMENT_FIELDS.
    return _project_list(value, COMMENT_FIELDS)


def project_punchlist(payload: dict[str, Any], settings: dict[str, Any]) -> dict[str, Any]:
    locations = set(_str_list(settings.get("locations")))
    assignees = set(_str_list(settings.get("assignees")))

    items = []
    for item in _objects(payload.get("items")):
        if locations and item.get("location") not in locations:
            continue
        if assignees and item.get("assigneeLabel") not in assignees:
            continue
        public = _pick(item, PUNCHLIST_ITEM_FIELDS)
        public["photos"] = _project_list(item.get("photos"), PHOTO_FIELDS) if settings.get("includePhotos", True) else []
        if settings.get("includeNotes") and isinstance(item.get("notes"), str):
            public["notes"] = item["notes"]
        if settings.get("includeComments"):
            public["comments"] = _project_comments(item.get("comments"))
        items.append(public)
    return {"version": payload.get("version", 3), "items": items}


def project_mood_boards(payload: dict[str, Any], settings: dict[str, Any]) -> dict[str, Any]:
    scope = settings.get("scope") or {}
    board_ids: Optional[set[str]] = None
    if settings.get("boardId"):
        board_ids = {settings["boardId"]}
    elif scope.get("mode") == "selected":
        board_ids = set(_str_list(scope.get("boardIds")))

    boards = []
    for board in _objects(payload.get("boards")):
        if board_ids is not None and board.get("id") not in board_ids:
            continue
        public = _pick(board, BOARD_FIELDS)
        ideas = []
        for idea in _objects(board.get("ideas")):
            public_idea = _pick(idea, IDEA_FIELDS)
            public_idea["images"] = (
                _project_list(idea.get("images"), PHOTO_FIELDS) if settings.get("includePhotos", True) else []
            )
            public_idea["reactions"] = _project_list(idea.get("reactions"), REACTION_FIELDS)
            if settings.get("includeNotes") and isinstance(idea.get("notes"), str):
                public_idea["notes"] = idea["notes"]
            ideas.append(public_idea)
        public["ideas"] = ideas
        if settings.get("includeComments"):
            public["comments"] = _project_comments(board.get("comments"))
        boards.append(public)
    return {"version": 1, "boards": boards}


def project_finish_decisions(payload: dict[str, Any], settings: dict[str, Any]) -> dict[str, Any]:
    current = upgrade_to_latest(payload).to_payload()
    scope = settings.get("scope") or {}
    room_ids = set(_str_list(scope.get("roomIds"))) if scope.get("mode") == "selected" else None
    include_notes = bool(settings.get("includeNotes"))

    rooms = []
    for room in _objects(current.get("rooms")):
        if room_ids is not None and room.get("id") not in room_ids:
            continue
        public_room = _pick(room, ROOM_FIELDS)
        decisions = []
        for decision in _objects(room.get("decisions")):
            public_decision = _pick(decision, DECISION_FIELDS)
            options = []
            for option in _objects(decision.get("options")):
                public_option = _pick(option, OPTION_FIELDS)
                if settings.get("includePhotos", True):
                    public_option["images"] = _project_list(option.get("images"), PHOTO_FIELDS)
                if include_notes:
                    public_option["notes"] = option.get("notes", "")
                options.append(public_option)
            public_decision["options"] = options
            if include_notes:
                public_decision["notes"] = decision.get("notes", "")
            if settings.get("includeComments"):
                public_decision["comments"] = _project_comments(decision.get("comments"))
            decisions.append(public_decision)
        public_room["decisions"] = decisions
        rooms.append(public_room)
    return {"version": 3, "rooms": rooms}


PROJECTIONS: dict[str, Callable[[dict[str, Any], dict[str, Any]], dict[str, Any]]] = {
    "punchlist": project_punchlist,
    "mood_boards": project_mood_boards,
    "finish_decisions": project_finish_decisions,
}


# --- Owner operations -----------------------------------------------------


def _require_owner(projects: ProjectRepository, user: User, project_id: str, tool_key: str) -> None:
    if resolve_tool_access(projects, user.id, project_id, tool_key) is not ToolAccess.OWNER:
        raise AccessDeniedError(AccessDeniedError.OWNER_REQUIRED, "Owner access required")


def serialize_token(record: ToolShareToken) -> dict[str, Any]:
    settings = record.settings or {}
    return {
        "id": record.id,
        "token": record.token,
        "includeNotes": settings.get("includeNotes", False),
        "includeComments": settings.get("includeComments", False),
        "includePhotos": settings.get("includePhotos", True),
        "locations": settings.get("locations", []),
        "assignees": settings.get("assignees", []),
        "scope": settings.get("scope", {"mode": "all"}),
        "boardId": settings.get("boardId"),
        "boardName": settings.get("boardName"),
        "createdAt": record.created_at,
        "expiresAt": record.expires_at,
    }


def create_share_token(
    db: DBSession,
    projects: ProjectRepository,
    tokens: ShareTokenRepository,
    user: User,
    project_id: str,
    tool_key: str,
    body: dict[str, Any],
) -> ToolShareToken:
    if not is_shareable_tool(tool_key):
        raise BadRequestError("This tool cannot be shared publicly")
    _require_owner(projects, user, project_id, tool_key)

    hide_notes = get_report_settings(db)["hideNotesInPublicShare"]
    record = tokens.create(
        token=generate_share_token(),
        project_id=project_id,
        tool_key=tool_key,
        created_by_id=user.id,
        settings=build_share_settings(body, hide_notes),
        expires_at=utcnow() + timedelta(days=get_settings().share_link_ttl_days),
    )
    db.commit()
    db.refresh(record)
    logger.info(
        "Share link created",
        data={"project_id": project_id, "tool_key": tool_key, "share_token_id": record.id},
    )
    return record


def list_share_tokens(
    projects: ProjectRepository,
    tokens: ShareTokenRepository,
    user: User,
    project_id: str,
    tool_key: str,
) -> list[ToolShareToken]:
    _require_owner(projects, user, project_id, tool_key)
    return tokens.list_active(project_id, tool_key)


def revoke_share_token(
    db: DBSession,
    projects: ProjectRepository,
    tokens: ShareTokenRepository,
    user: User,
    project_id: str,
    tool_key: str,
    token_id: Any,
) -> None:
    _require_owner(projects, user, project_id, tool_key)
    if not isinstance(token_id, str) or not token_id:
        raise BadRequestError("tokenId required")
    record = tokens.get_for_tool(token_id, project_id, tool_key)
    if record is None:
        raise NotFoundError("Token not found")
    tokens.revoke(record)
    db.commit()
    logger.info("Share link revoked", data={"project_id": project_id, "tool_key": tool_key, "share_token_id": token_id})


# --- Public read ----------------------------------------------------------


def validate_share_token(tokens: ShareTokenRepository, token: str) -> Optional[ToolShareToken]:
    """Return the token row when it exists, is not revoked and has not expired."""
    record = tokens.get_by_token(token)
    if record is None or record.revoked_at is not None or record.expires_at <= utcnow():
        return None
    return record


def resolve_public_share(
    db: DBSession,
    tokens: ShareTokenRepository,
    tools: ToolRepository,
    tool_key: str,
    token: str,
) -> dict[str, Any]:
    record = validate_share_token(tokens, token)
    if record is None or record.tool_key != tool_key:
        raise NotFoundError(INVALID_LINK)

    projection = PROJECTIONS.get(tool_key)
    if projection is None:
        raise NotFoundError(INVALID_LINK)

    instance = tools.get(record.project_id, tool_key)
    if instance is None or not isinstance(instance.payload, dict):
        raise NotFoundError("No data found")

    settings = dict(record.settings or {})
    # The failsafe is re-read here so flipping it also hides notes on existing links.
    if get_report_settings(db)["hideNotesInPublicShare"]:
        settings["includeNotes"] = False

    return {
        "payload": projection(instance.payload, settings),
        "projectName": record.project.name,
        "toolKey": tool_key,
        "includeNotes": bool(settings.get("includeNotes")),
        "includeComments": bool(settings.get("includeComments")),
        "includePhotos": settings.get("includePhotos", True) is not False,
        "scope": settings.get("scope", {"mode": "all"}),
        "filters": {
            "locations": _str_list(settings.get("locations")),
            "assignees": _str_list(settings.get("assignees")),
        },
    }
