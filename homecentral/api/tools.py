"""Tool state API: per-project JSON state, summaries, share links and report settings."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_current_user
from homecentral.db import get_db
from homecentral.db.models import User
from homecentral.repositories import ProjectRepository, ShareTokenRepository, ToolRepository
from homecentral.repositories.deps import get_project_repo, get_share_token_repo, get_tool_repo
from homecentral.services import share_service, tool_service
from homecentral.services.audit_service import audit_log_event
from homecentral.services.project_service import ensure_current_project
from homecentral.services.site_settings import get_report_settings

router = APIRouter(prefix="/api", tags=["tools"])


class ToolStateUpdate(BaseModel):
    payload: Any = None
    baseRevision: Optional[int] = None
    projectId: Optional[str] = None


class ShareTokenRevokeRequest(BaseModel):
    tokenId: Any = None


def _resolve_project_id(
    db: DBSession, projects: ProjectRepository, user: User, project_id: Optional[str]
) -> str:
    return project_id or ensure_current_project(db, projects, user)


@router.get("/tool-summaries")
async def tool_summaries(
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tools: ToolRepository = Depends(get_tool_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = ensure_current_project(db, projects, current_user)
    return {"projectId": project_id, "tools": tool_service.get_tool_summaries(tools, project_id)}


@router.get("/tools/punchlist/report-settings")
async def report_settings(
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = get_report_settings(db)
    settings.pop("hideNotesInPublicShare")
    return settings


@router.get("/tools/{tool_key}")
async def get_tool_state(
    tool_key: str,
    projectId: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tools: ToolRepository = Depends(get_tool_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = _resolve_project_id(db, projects, current_user, projectId)
    return {
        "projectId": project_id,
        **tool_service.get_tool_state(projects, tools, current_user, project_id, tool_key),
    }


@router.put("/tools/{tool_key}")
async def save_tool_state(
    tool_key: str,
    body: ToolStateUpdate,
    projectId: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tools: ToolRepository = Depends(get_tool_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = _resolve_project_id(db, projects, current_user, body.projectId or projectId)
    state = tool_service.save_tool_state(
        db,
        projects,
        tools,
        current_user,
        project_id,
        tool_key,
        body.payload,
        base_revision=body.baseRevision,
    )
    return {"projectId": project_id, **state}


# --- Public share links (owner only) --------------------------------------


@router.post("/tools/{tool_key}/share-token", status_code=status.HTTP_201_CREATED)
async def create_share_token(
    tool_key: str,
    request: Request,
    body: dict[str, Any] = Body(default={}),
    projectId: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tokens: ShareTokenRepository = Depends(get_share_token_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = _resolve_project_id(db, projects, current_user, projectId)
    record = share_service.create_share_token(db, projects, tokens, current_user, project_id, tool_key, body)
    audit_log_event(
        db,
        event_type="share_link.created",
        user_id=current_user.id,
        request=request,
        data={"project_id": project_id, "tool_key": tool_key},
    )
    return share_service.serialize_token(record)


@router.get("/tools/{tool_key}/share-token")
async def list_share_tokens(
    tool_key: str,
    projectId: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tokens: ShareTokenRepository = Depends(get_share_token_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = _resolve_project_id(db, projects, current_user, projectId)
    records = share_service.list_share_tokens(projects, tokens, current_user, project_id, tool_key)
    return {"tokens": [share_service.serialize_token(r) for r in records]}


@router.delete("/tools/{tool_key}/share-token")
async def revoke_share_token(
    tool_key: str,
    request: Request,
    body: ShareTokenRevokeRequest,
    projectId: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    tokens: ShareTokenRepository = Depends(get_share_token_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = _resolve_project_id(db, projects, current_user, projectId)
    share_service.revoke_share_token(db, projects, tokens, current_user, project_id, tool_key, body.tokenId)
    audit_log_event(
        db,
        event_type="share_link.revoked",
        user_id=current_user.id,
        request=request,
        data={"project_id": project_id, "tool_key": tool_key},
    )
    return {"ok": True}
