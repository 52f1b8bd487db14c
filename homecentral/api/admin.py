"""Admin API endpoints: site settings, access control, users and audit."""

from datetime import UTC, datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_admin_user, get_full_admin_user
from homecentral.auth.session import revoke_all_user_sessions
from homecentral.config import get_settings
from homecentral.core.exceptions import BadRequestError, ConflictError, NotFoundError
from homecentral.core.logging import get_logger
from homecentral.db import get_db
from homecentral.db.models import AdminAllowlist, AuditLog, EarlyAccessAllowlist, User
from homecentral.services.allowlist_service import ADMIN_ROLES, normalize_email
from homecentral.services.audit_service import audit_log_event
from homecentral.services.site_settings import get_settings_map, upsert_settings

logger = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


class UserListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str]
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime]


class AllowlistEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str
    created_at: datetime


class EarlyAccessEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    note: Optional[str]
    created_at: datetime


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str]
    event_type: str
    ip: Optional[str]
    user_agent: Optional[str]
    path: Optional[str]
    method: Optional[str]
    data_json: Optional[dict]
    created_at: datetime


class AccessCreateRequest(BaseModel):
    email: Any = None
    role: Optional[str] = None


class AccessUpdateRequest(BaseModel):
    id: Optional[str] = None
    role: Optional[str] = None


class EarlyAccessCreateRequest(BaseModel):
    email: Any = None
    note: Optional[str] = None


class UpdateUserRequest(BaseModel):
    is_active: Optional[bool] = None


def _valid_email(raw: Any) -> str:
    email = normalize_email(raw if isinstance(raw, str) else "")
    if not email or "@" not in email:
        raise BadRequestError("Invalid email")
    return email


# --- Site settings --------------------------------------------------------


@router.get("/settings")
async def get_site_settings(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return get_settings_map(db)


@router.put("/settings")
async def update_site_settings(
    http_request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    written = upsert_settings(db, body, admin.id)
    audit_log_event(
        db,
        event_type="admin.settings_update",
        user_id=admin.id,
        request=http_request,
        data={"keys": written},
    )
    return {"ok": True, "keys": written}


# --- Admin allowlist (ADMIN role only) ------------------------------------


@router.get("/access")
async def list_admin_access(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    rows = db.query(AdminAllowlist).order_by(AdminAllowlist.created_at.desc()).all()
    return {
        "rows": [AllowlistEntryResponse.model_validate(r) for r in rows],
        "envEmails": get_settings().admin_allowlist_list,
    }


@router.post("/access", status_code=status.HTTP_201_CREATED, response_model=AllowlistEntryResponse)
async def add_admin_access(
    body: AccessCreateRequest,
    http_request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    email = _valid_email(body.email)
    role = "EDITOR" if body.role == "EDITOR" else "ADMIN"
    if db.query(AdminAllowlist).filter(AdminAllowlist.email == email).first():
        raise ConflictError("Email already in allowlist")

    row = AdminAllowlist(email=email, role=role, added_by_id=admin.id)
    db.add(row)
    db.commit()
    db.refresh(row)
    audit_log_event(
        db,
        event_type="admin.access_grant",
        user_id=admin.id,
        request=http_request,
        data={"email": email, "role": role},
    )
    return AllowlistEntryResponse.model_validate(row)


@router.patch("/access", response_model=AllowlistEntryResponse)
async def update_admin_access(
    body: AccessUpdateRequest,
    http_request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    if not body.id or body.role not in ADMIN_ROLES:
        raise BadRequestError("Invalid input")
    row = db.get(AdminAllowlist, body.id)
    if row is None:
        raise NotFoundError("Allowlist entry not found")
    row.role = body.role
    db.commit()
    db.refresh(row)
    audit_log_event(
        db,
        event_type="admin.access_update",
        user_id=admin.id,
        request=http_request,
        data={"entry_id": row.id, "role": row.role},
    )
    return AllowlistEntryResponse.model_validate(row)


@router.delete("/access")
async def remove_admin_access(
    http_request: Request,
    id: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    if not id:
        raise BadRequestError("Missing id")
    row = db.get(AdminAllowlist, id)
    if row is None:
        raise NotFoundError("Allowlist entry not found")
    if normalize_email(row.email) == normalize_email(admin.email):
        raise BadRequestError("Cannot remove your own admin access")
    db.delete(row)
    db.commit()
    audit_log_event(
        db,
        event_type="admin.access_revoke",
        user_id=admin.id,
        request=http_request,
        data={"entry_id": id},
    )
    return {"ok": True}


# --- Early access allowlist -----------------------------------------------


@router.get("/early-access-allowlist")
async def list_early_access(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    rows = db.query(EarlyAccessAllowlist).order_by(EarlyAccessAllowlist.created_at.desc()).all()
    return {
        "rows": [EarlyAccessEntryResponse.model_validate(r) for r in rows],
        "envEmails": get_settings().early_access_allowlist_list,
    }


@router.post(
    "/early-access-allowlist",
    status_code=status.HTTP_201_CREATED,
    response_model=EarlyAccessEntryResponse,
)
async def add_early_access(
    body: EarlyAccessCreateRequest,
    http_request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    email = _valid_email(body.email)
    if db.query(EarlyAccessAllowlist).filter(EarlyAccessAllowlist.email == email).first():
        raise ConflictError("Email already in allowlist")

    row = EarlyAccessAllowlist(email=email, note=body.note or admin.email)
    db.add(row)
    db.commit()
    db.refresh(row)
    audit_log_event(
        db,
        event_type="admin.early_access_add",
        user_id=admin.id,
        request=http_request,
        data={"email": email},
    )
    return EarlyAccessEntryResponse.model_validate(row)


@router.delete("/early-access-allowlist")
async def remove_early_access(
    http_request: Request,
    id: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    if not id:
        raise BadRequestError("Missing id")
    row = db.get(EarlyAccessAllowlist, id)
    if row is None:
        raise NotFoundError("Allowlist entry not found")
    db.delete(row)
    db.commit()
    audit_log_event(
        db,
        event_type="admin.early_access_remove",
        user_id=admin.id,
        request=http_request,
        data={"entry_id": id},
    )
    return {"ok": True}


# --- Users and audit ------------------------------------------------------


@router.get("/users", response_model=List[UserListResponse])
async def list_users(
    limit: int = 100,
    offset: int = 0,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    """List all users (admin only)."""
    users = db.query(User).order_by(User.created_at.desc()).offset(offset).limit(min(500, max(1, limit))).all()
    return [UserListResponse.model_validate(u) for u in users]


@router.patch("/users/{user_id}", response_model=UserListResponse)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    http_request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    """Activate or deactivate a user; deactivation signs them out everywhere."""
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.id == admin.id and request.is_active is False:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate your own account")

    if request.is_active is not None:
        user.is_active = request.is_active
    db.commit()
    if request.is_active is False:
        revoke_all_user_sessions(db, user.id)
    db.refresh(user)

    audit_log_event(
        db,
        event_type="admin.user_update",
        user_id=admin.id,
        request=http_request,
        data={"target_user_id": user.id, "is_active": request.is_active},
    )
    return UserListResponse.model_validate(user)


@router.get("/audit")
async def get_audit(
    event: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_full_admin_user),
):
    """Return audit entries (admin only)."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc())

    if event:
        q = q.filter(AuditLog.event_type == event)

    def _parse_dt(s: str) -> datetime:
        try:
            dt = datetime.fromisoformat(s)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid datetime: {s}") from exc
        if dt.tzinfo is not None:
            dt = dt.astimezone(UTC)
        return dt.replace(tzinfo=None)

    if from_date:
        q = q.filter(AuditLog.created_at >= _parse_dt(from_date))
    if to_date:
        q = q.filter(AuditLog.created_at <= _parse_dt(to_date))

    entries = q.offset(offset).limit(min(500, max(1, limit))).all()
    return {"entries": [AuditLogResponse.model_validate(e) for e in entries]}
