"""Projects API endpoints: lifecycle, current project, stage and tool sharing."""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_current_user
from homecentral.core.time import isoformat
from homecentral.db import get_db
from homecentral.db.models import Project, User
from homecentral.repositories import InviteRepository, ProjectRepository
from homecentral.repositories.deps import get_invite_repo, get_project_repo
from homecentral.services import invite_service, project_service
from homecentral.services.audit_service import audit_log_event

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectModel(BaseModel):
    id: str
    name: str
    status: str
    role: str
    currentStage: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class ProjectListResponse(BaseModel):
    projects: List[ProjectModel]
    currentProjectId: str


class ProjectCreateRequest(BaseModel):
    name: Any = None


class ProjectUpdateRequest(BaseModel):
    name: Any = None
    status: Optional[str] = None


class CurrentProjectRequest(BaseModel):
    projectId: str


class StageRequest(BaseModel):
    stage: Any = None


class ActiveToolsRequest(BaseModel):
    toolKeys: Any = None


class InviteRequest(BaseModel):
    email: Any = None
    level: Optional[str] = None


class RevokeShareRequest(BaseModel):
    userId: Optional[str] = None
    inviteId: Optional[str] = None


def _project_model(project: Project, role: str) -> ProjectModel:
    return ProjectModel(
        id=project.id,
        name=project.name,
        status=project.status,
        role=role,
        currentStage=project.current_stage,
        createdAt=isoformat(project.created_at),
        updatedAt=isoformat(project.updated_at),
    )


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    current_project_id = project_service.ensure_current_project(db, projects, current_user)
    return ProjectListResponse(
        projects=[
            _project_model(member.project, member.role) for member in projects.list_memberships(current_user.id)
        ],
        currentProjectId=current_project_id,
    )


@router.post("", response_model=ProjectModel, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreateRequest,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    project = project_service.create_project(db, projects, current_user, body.name)
    return _project_model(project, "OWNER")


@router.put("/current")
async def set_current_project(
    body: CurrentProjectRequest,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    project_id = project_service.set_current_project(db, projects, current_user, body.projectId)
    return {"currentProjectId": project_id}


@router.put("/stage")
async def set_stage(
    body: StageRequest,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    return {"stage": project_service.set_stage(db, projects, current_user, body.stage)}


@router.put("/active-tools")
async def set_active_tools(
    body: ActiveToolsRequest,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    return {"toolKeys": project_service.set_active_tools(db, projects, current_user, body.toolKeys)}


@router.get("/next-steps")
async def get_next_steps(
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    return project_service.get_next_steps(db, projects, current_user)


@router.patch("/{project_id}", response_model=ProjectModel)
async def update_project(
    project_id: str,
    body: ProjectUpdateRequest,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    project = project_service.update_project(
        db, projects, current_user, project_id, name=body.name, status=body.status
    )
    return _project_model(project, "OWNER")


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    current_user: User = Depends(get_current_user),
):
    project_service.delete_project(db, projects, current_user, project_id)
    audit_log_event(
        db,
        event_type="project.deleted",
        user_id=current_user.id,
        request=request,
        data={"project_id": project_id},
    )
    return {"ok": True}


# --- Tool sharing ---------------------------------------------------------


@router.get("/{project_id}/tools/{tool_key}/share")
async def get_share_state(
    project_id: str,
    tool_key: str,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    invites: InviteRepository = Depends(get_invite_repo),
    current_user: User = Depends(get_current_user),
):
    return invite_service.get_share_state(db, projects, invites, current_user, project_id, tool_key)


@router.post("/{project_id}/tools/{tool_key}/share", status_code=status.HTTP_201_CREATED)
async def create_invite(
    project_id: str,
    tool_key: str,
    body: InviteRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    invites: InviteRepository = Depends(get_invite_repo),
    current_user: User = Depends(get_current_user),
):
    invite = invite_service.create_invite(
        db, projects, invites, current_user, project_id, tool_key, body.email, body.level
    )
    audit_log_event(
        db,
        event_type="project.invite_created",
        user_id=current_user.id,
        request=request,
        data={"project_id": project_id, "tool_key": tool_key, "level": invite.level},
    )
    return {
        "invite": {
            "id": invite.id,
            "email": invite.email,
            "level": invite.level,
            "status": invite.status,
            "expiresAt": isoformat(invite.expires_at),
        },
        "inviteUrl": invite_service.build_invite_url(invite.token),
    }


@router.delete("/{project_id}/tools/{tool_key}/share")
async def revoke_share(
    project_id: str,
    tool_key: str,
    body: RevokeShareRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
    invites: InviteRepository = Depends(get_invite_repo),
    current_user: User = Depends(get_current_user),
):
    invite_service.revoke_share(
        db,
        projects,
        invites,
        current_user,
        project_id,
        tool_key,
        target_user_id=body.userId,
        invite_id=body.inviteId,
    )
    audit_log_event(
        db,
        event_type="project.share_revoked",
        user_id=current_user.id,
        request=request,
        data={"project_id": project_id, "tool_key": tool_key},
    )
    return {"ok": True}
