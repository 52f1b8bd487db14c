"""Public read-only share links and invite links."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_current_user
from homecentral.db import get_db
from homecentral.db.models import User
from homecentral.repositories import InviteRepository, ProjectRepository, ShareTokenRepository, ToolRepository
from homecentral.repositories.deps import (
    get_invite_repo,
    get_project_repo,
    get_share_token_repo,
    get_tool_repo,
)
from homecentral.services import invite_service
from homecentral.services.audit_service import audit_log_event
from homecentral.services.share_service import resolve_public_share

router = APIRouter(prefix="/api", tags=["share"])


@router.get("/share/{tool_key}/{token}")
async def get_shared_tool(
    tool_key: str,
    token: str,
    db: DBSession = Depends(get_db),
    tokens: ShareTokenRepository = Depends(get_share_token_repo),
    tools: ToolRepository = Depends(get_tool_repo),
):
    """No authentication: the token is the credential."""
    return resolve_public_share(db, tokens, tools, tool_key, token)


@router.get("/invites/{token}")
async def preview_invite(
    token: str,
    db: DBSession = Depends(get_db),
    invites: InviteRepository = Depends(get_invite_repo),
):
    return invite_service.preview_invite(db, invites, token)


@router.post("/invites/{token}")
async def accept_invite(
    token: str,
    request: Request,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    invites: InviteRepository = Depends(get_invite_repo),
    current_user: User = Depends(get_current_user),
):
    invite = invite_service.accept_invite(db, projects, invites, current_user, token)
    audit_log_event(
        db,
        event_type="project.invite_accepted",
        user_id=current_user.id,
        request=request,
        data={"project_id": invite.project_id, "tool_key": invite.tool_key},
    )
    return {"projectId": invite.project_id, "toolKey": invite.tool_key, "level": invite.level}
