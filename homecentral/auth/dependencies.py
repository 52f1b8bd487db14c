"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.session import validate_session
from homecentral.config import get_settings
from homecentral.core.exceptions import AuthenticationError, AuthorizationError
from homecentral.core.logging import get_logger
from homecentral.db import get_db
from homecentral.db.models import User
from homecentral.services.allowlist_service import get_admin_role
from homecentral.services.audit_service import audit_log_event

logger = get_logger(__name__)


def _load_session_user(request: Request, db: DBSession) -> tuple[Optional[User], str]:
    """Return (user, failure_event); failure_event is empty on success."""
    session_token = request.cookies.get(get_settings().session_cookie_name)
    if not session_token:
        return None, "auth_missing_token"

    session = validate_session(db, session_token)
    if not session:
        return None, "auth_invalid_session"

    user = db.get(User, session.user_id)
    if not user or not user.is_active:
        return None, "auth_inactive_user"
    return user, ""


async def get_current_user(
    request: Request,
    db: DBSession = Depends(get_db),
) -> User:
    """Get the current authenticated user.

    Raises:
        AuthenticationError: If not authenticated.
    """
    user, failure = _load_session_user(request, db)
    if user is None:
        # A missing cookie is routine (signed-out visitors); only audit bad sessions.
        if failure != "auth_missing_token":
            audit_log_event(
                db,
                event_type=failure,
                user_id=None,
                request=request,
                data={"path": request.url.path},
            )
        raise AuthenticationError("Not authenticated")
    return user


async def get_optional_user(
    request: Request,
    db: DBSession = Depends(get_db),
) -> Optional[User]:
    """Get the current user if authenticated, otherwise None."""
    user, _ = _load_session_user(request, db)
    return user


async def get_admin_user(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_db),
) -> User:
    """Require an admin role (ADMIN or EDITOR); the role lands on ``request.state.admin_role``."""
    role = get_admin_role(db, current_user.email)
    if role is None:
        audit_log_event(
            db,
            event_type="admin_access_denied",
            user_id=current_user.id,
            request=request,
            data={"attempted": "admin_access"},
        )
        raise AuthorizationError("Admin access required")
    request.state.admin_role = role
    return current_user


async def get_full_admin_user(
    request: Request,
    current_user: User = Depends(get_admin_user),
) -> User:
    """Require the ADMIN role; editors may manage content but not access control."""
    if getattr(request.state, "admin_role", None) != "ADMIN":
        raise AuthorizationError("Full admin access required")
    return current_user
