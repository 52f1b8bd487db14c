"""Authentication API endpoints: Google sign-in and session management."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_current_user
from homecentral.auth.oauth import (
    STATE_TTL_SECONDS,
    build_authorization_url,
    create_state,
    fetch_google_profile,
    verify_state,
)
from homecentral.auth.session import create_session, invalidate_session, rotate_session, validate_session
from homecentral.config import get_settings
from homecentral.core.exceptions import AuthenticationError, AuthorizationError, SignInDeniedError
from homecentral.core.logging import get_logger
from homecentral.core.time import utcnow
from homecentral.db import get_db
from homecentral.db.models import User
from homecentral.repositories import ProjectRepository
from homecentral.repositories.deps import get_project_repo
from homecentral.services.allowlist_service import check_sign_in_allowed, get_admin_role
from homecentral.services.audit_service import audit_log_event
from homecentral.services.project_service import ensure_current_project

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    created_at: Optional[datetime] = None


class MeResponse(BaseModel):
    user: UserResponse
    currentProjectId: str
    adminRole: Optional[str] = None
    onboardingCompleted: bool


class CsrfResponse(BaseModel):
    csrf_token: str


# Cache-control headers for sensitive auth endpoints
_AUTH_CACHE_CONTROL = "no-store, no-cache, must-revalidate, private"
_AUTH_PRAGMA = "no-cache"


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = _AUTH_CACHE_CONTROL
    response.headers["Pragma"] = _AUTH_PRAGMA


def _set_session_cookies(response: Response, session_token: str, csrf_token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain or None,
        path="/",
        max_age=settings.session_ttl_seconds,
    )
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=csrf_token,
        httponly=False,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain or None,
        path="/",
        max_age=settings.session_ttl_seconds,
    )


def _clear_session_cookies(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(settings.session_cookie_name, domain=settings.cookie_domain or None, path="/")
    response.delete_cookie(settings.csrf_cookie_name, domain=settings.cookie_domain or None, path="/")


def _upsert_user(db: DBSession, email: str, name: Optional[str], image: Optional[str]) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=name, image=image)
        db.add(user)
    else:
        user.name = name or user.name
        user.image = image or user.image
    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)
    return user


@router.get("/google/login")
async def google_login():
    """Redirect to Google with a signed ``state`` cookie."""
    settings = get_settings()
    if not settings.google_oauth_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google sign-in is not configured",
        )

    state = create_state()
    response = RedirectResponse(build_authorization_url(state), status_code=status.HTTP_302_FOUND)
    _no_store(response)
    # Lax so the cookie survives the top-level redirect back from Google.
    response.set_cookie(
        key=settings.oauth_state_cookie_name,
        value=state,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        domain=settings.cookie_domain or None,
        path="/api/auth/google",
        max_age=STATE_TTL_SECONDS,
    )
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
):
    """Finish the Google flow, gate the email, create the user and session."""
    settings = get_settings()

    if error:
        audit_log_event(db, event_type="auth.oauth_error", user_id=None, request=request, data={"error": error})
        raise AuthenticationError("Google sign-in was cancelled")

    if not verify_state(state, request.cookies.get(settings.oauth_state_cookie_name)):
        audit_log_event(db, event_type="auth.oauth_state_mismatch", user_id=None, request=request)
        raise AuthenticationError("Invalid OAuth state")
    if not code:
        raise AuthenticationError("Missing authorization code")

    profile = await fetch_google_profile(code)

    allowed, reason = check_sign_in_allowed(db, profile.email)
    if not allowed:
        audit_log_event(
            db,
            event_type="auth.sign_in_denied",
            user_id=None,
            request=request,
            data={"email": profile.email, "reason": reason},
        )
        raise SignInDeniedError(reason)

    user = _upsert_user(db, profile.email, profile.name, profile.image)
    if not user.is_active:
        audit_log_event(db, event_type="auth.inactive_user", user_id=user.id, request=request)
        raise AuthorizationError("Account is disabled")

    ensure_current_project(db, projects, user)
    session_token, csrf_token = create_session(db, user)

    response = RedirectResponse(
        f"{settings.public_base_url.rstrip('/')}{settings.post_login_redirect}",
        status_code=status.HTTP_302_FOUND,
    )
    _no_store(response)
    _set_session_cookies(response, session_token, csrf_token)
    response.delete_cookie(
        settings.oauth_state_cookie_name, domain=settings.cookie_domain or None, path="/api/auth/google"
    )

    logger.info("User signed in", data={"user_id": user.id})
    audit_log_event(db, event_type="auth.login", user_id=user.id, request=request, data={"provider": "google"})
    return response


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: DBSession = Depends(get_db),
):
    """Log out and invalidate session."""
    settings = get_settings()
    _no_store(response)

    session_token = request.cookies.get(settings.session_cookie_name)
    user_id = None
    if session_token:
        session = validate_session(db, session_token)
        if session:
            user_id = session.user_id
        invalidate_session(db, session_token)

    audit_log_event(db, event_type="auth.logout", user_id=user_id, request=request)
    _clear_session_cookies(response)
    return {"message": "Logged out"}


@router.post("/refresh", response_model=CsrfResponse)
async def refresh_session(
    request: Request,
    response: Response,
    db: DBSession = Depends(get_db),
):
    """Rotate session + CSRF token for an authenticated user."""
    settings = get_settings()
    _no_store(response)

    session_token = request.cookies.get(settings.session_cookie_name)
    existing = validate_session(db, session_token) if session_token else None
    if not existing:
        raise AuthenticationError("Session expired or invalid")

    user = db.get(User, existing.user_id)
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    rotated = rotate_session(db, session_token)
    if not rotated:
        raise AuthenticationError("Session expired or invalid")
    new_session_token, new_csrf_token, _ = rotated
    _set_session_cookies(response, new_session_token, new_csrf_token)

    audit_log_event(db, event_type="auth.refresh", user_id=user.id, request=request)
    return CsrfResponse(csrf_token=new_csrf_token)


@router.get("/csrf", response_model=CsrfResponse)
async def get_csrf_token(
    request: Request,
    response: Response,
    db: DBSession = Depends(get_db),
):
    """Return the CSRF token of the active session and re-set its cookie."""
    settings = get_settings()

    session_token = request.cookies.get(settings.session_cookie_name)
    session = validate_session(db, session_token) if session_token else None
    if not session:
        raise AuthenticationError("Session expired or invalid")

    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=session.csrf_token,
        httponly=False,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain or None,
        path="/",
        max_age=settings.session_ttl_seconds,
    )
    response.headers["Cache-Control"] = "no-store"
    return CsrfResponse(csrf_token=session.csrf_token)


@router.get("/me", response_model=MeResponse)
async def get_me(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    projects: ProjectRepository = Depends(get_project_repo),
):
    """Current user, current project and admin role."""
    _no_store(response)
    project_id = ensure_current_project(db, projects, current_user)
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        currentProjectId=project_id,
        adminRole=get_admin_role(db, current_user.email),
        onboardingCompleted=current_user.onboarding_completed_at is not None,
    )
