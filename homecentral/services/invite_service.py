"""Tool sharing: invites, grants and revocation."""

import secrets
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.config import get_settings
from homecentral.core.exceptions import (
    AuthorizationError,
    BadRequestError,
    ConflictError,
    GoneError,
    NotFoundError,
)
from homecentral.core.logging import get_logger
from homecentral.core.time import utcnow
from homecentral.db.models import ProjectInvite, User
from homecentral.repositories.invite_repo import InviteRepository
from homecentral.repositories.project_repo import ProjectRepository
from homecentral.services.access_service import get_edit_share_count, require_project_owner
from homecentral.services.tool_registry import is_valid_tool_key

logger = get_logger(__name__)

ACCESS_LEVELS = frozenset({"VIEW", "EDIT"})


def generate_invite_token() -> str:
    return secrets.token_urlsafe(32)


def normalize_email(raw: Any) -> str:
    return raw.strip().lower() if isinstance(raw, str) else ""


def build_invite_url(token: str) -> str:
    return f"{get_settings().public_base_url.rstrip('/')}/invite/{token}"


def _require_tool_key(tool_key: str) -> None:
    if not is_valid_tool_key(tool_key):
        raise BadRequestError("Unknown tool")


def _max_edit_shares() -> int:
    return get_settings().max_edit_shares


def get_share_state(
    db: DBSession,
    repo: ProjectRepository,
    invites: InviteRepository,
    user: User,
    project_id: str,
    tool_key: str,
) -> dict[str, Any]:
    """Grants, pending invites and the EDIT share cap for one tool."""
    _require_tool_key(tool_key)
    require_project_owner(repo, user.id, project_id)

    access = [
        {
            "id": grant.id,
            "userId": grant.user_id,
            "name": grant.user.name if grant.user else None,
            "email": grant.user.email if grant.user else None,
            "image": grant.user.image if grant.user else None,
            "level": grant.level,
            "createdAt": grant.created_at,
        }
        for grant in repo.list_tool_access(project_id, tool_key)
    ]
    pending = [
        {
            "id": invite.id,
            "email": invite.email,
            "level": invite.level,
            "status": invite.status,
            "expiresAt": invite.expires_at,
            "createdAt": invite.created_at,
        }
        for invite in invites.list_pending(project_id, tool_key)
    ]
    return {
        "access": access,
        "invites": pending,
        "editShareCount": get_edit_share_count(repo, project_id, tool_key),
        "maxEditShares": _max_edit_shares(),
    }


def create_invite(
    db: DBSession,
    repo: ProjectRepository,
    invites: InviteRepository,
    user: User,
    project_id: str,
    tool_key: str,
    raw_email: Any,
    raw_level: Any = None,
) -> ProjectInvite:
    _require_tool_key(tool_key)
    require_project_owner(repo, user.id, project_id)

    email = normalize_email(raw_email)
    level = "VIEW" if raw_level == "VIEW" else "EDIT"
    if not email or "@" not in email:
        raise BadRequestError("Valid email required")
    if email == (user.email or "").lower():
        raise BadRequestError("You can't invite yourself")

    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user and repo.get_tool_access(project_id, tool_key, existing_user.id):
        raise ConflictError("This person already has access to this tool")

    if invites.find_pending(project_id, tool_key, email):
        raise ConflictError("An invite is already pending for this email")

    if level == "EDIT":
        limit = _max_edit_shares()
        in_use = get_edit_share_count(repo, project_id, tool_key) + invites.count_pending_edit(project_id, tool_key)
        if in_use >= limit:
            raise ConflictError(f"Maximum {limit} edit collaborators reached")

    invite = invites.create(
        token=generate_invite_token(),
        project_id=project_id,
        tool_key=tool_key,
        email=email,
        level=level,
        invited_by_id=user.id,
        expires_at=utcnow() + timedelta(days=get_settings().invite_ttl_days),
    )
    db.commit()
    db.refresh(invite)
    logger.info(
        "Invite created",
        data={"project_id": project_id, "tool_key": tool_key, "level": level, "invite_id": invite.id},
    )
    return invite


def revoke_share(
    db: DBSession,
    repo: ProjectRepository,
    invites: InviteRepository,
    user: User,
    project_id: str,
    tool_key: str,
    target_user_id: Optional[str] = None,
    invite_id: Optional[str] = None,
) -> None:
    """Remove a user's grant, or cancel a pending invite."""
    _require_tool_key(tool_key)
    require_project_owner(repo, user.id, project_id)

    if target_user_id:
        repo.remove_tool_access(project_id, tool_key, target_user_id)
        # A member with no remaining grants leaves the project. Owners never do.
        if repo.count_tool_access_for_user(project_id, target_user_id) == 0:
            member = repo.get_membership(project_id, target_user_id)
            if member is not None and member.role == "MEMBER":
                repo.remove_member(project_id, target_user_id)
        db.commit()
        logger.info("Tool access revoked", data={"project_id": project_id, "tool_key": tool_key})
        return

    if invite_id:
        invite = invites.get_by_id(invite_id)
        if (
            invite is not None
            and invite.project_id == project_id
            and invite.tool_key == tool_key
            and invite.status == "PENDING"
        ):
            invites.set_status(invite, "REVOKED")
            db.commit()
        return

    raise BadRequestError("Must provide userId or inviteId")


def _load_pending_invite(db: DBSession, invites: InviteRepository, token: str) -> ProjectInvite:
    """Look up a usable invite. Expired pending invites are marked EXPIRED."""
    invite = invites.get_by_token(token)
    if invite is None:
        raise NotFoundError("Invite not found")
    if invite.status != "PENDING":
        raise GoneError("Invite is no longer valid", details={"status": invite.status})
    if invite.expires_at < utcnow():
        invites.set_status(invite, "EXPIRED")
        db.commit()
        raise GoneError("Invite has expired", details={"status": "EXPIRED"})
    return invite


def preview_invite(db: DBSession, invites: InviteRepository, token: str) -> dict[str, Any]:
    invite = _load_pending_invite(db, invites, token)
    inviter = invite.invited_by
    return {
        "projectName": invite.project.name,
        "toolKey": invite.tool_key,
        "level": invite.level,
        "invitedBy": (inviter.name or inviter.email) if inviter else None,
        "email": invite.email,
        "expiresAt": invite.expires_at,
    }


def accept_invite(
    db: DBSession,
    repo: ProjectRepository,
    invites: InviteRepository,
    user: User,
    token: str,
) -> ProjectInvite:
    """Join the project and receive the invited tool grant, all in one commit."""
    invite = _load_pending_invite(db, invites, token)

    if invite.email.lower() != (user.email or "").lower():
        raise AuthorizationError("This invite was sent to a different email address")

    if invite.level == "EDIT":
        limit = _max_edit_shares()
        if get_edit_share_count(repo, invite.project_id, invite.tool_key) >= limit:
            raise ConflictError(f"Maximum {limit} edit collaborators reached")

    try:
        if repo.get_membership(invite.project_id, user.id) is None:
            repo.add_member(invite.project_id, user.id, "MEMBER")
        repo.upsert_tool_access(
            invite.project_id,
            invite.tool_key,
            user.id,
            invite.level,
            invite.invited_by_id,
        )
        invite.accepted_by_id = user.id
        invite.accepted_at = utcnow()
        invites.set_status(invite, "ACCEPTED")
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Invite accepted",
        data={"project_id": invite.project_id, "tool_key": invite.tool_key, "invite_id": invite.id},
    )
    return invite
