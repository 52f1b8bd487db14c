"""Session management for authentication."""

import hashlib
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session as DBSession

from homecentral.config import get_settings
from homecentral.core.time import utcnow
from homecentral.db.models import Session, User


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _new_session_row(user_id: str) -> Tuple[str, str, Session]:
    session_token = secrets.token_urlsafe(32)
    csrf_token = secrets.token_urlsafe(32)
    row = Session(
        user_id=user_id,
        token_hash=_hash_token(session_token),
        csrf_token=csrf_token,
        expires_at=utcnow() + timedelta(seconds=get_settings().session_ttl_seconds),
    )
    return session_token, csrf_token, row


def create_session(db: DBSession, user: User) -> Tuple[str, str]:
    """Create a new session for a user.

    Returns:
        Tuple of (session_token, csrf_token). Only the token hash is stored.
    """
    session_token, csrf_token, row = _new_session_row(user.id)
    db.add(row)
    db.commit()
    return session_token, csrf_token


def rotate_session(db: DBSession, session_token: str) -> Optional[Tuple[str, str, Session]]:
    """Replace a valid session with a fresh one (new token and CSRF token).

    Returns (new_session_token, new_csrf_token, new_session_row), or None when
    the old session is missing or expired.
    """
    existing = validate_session(db, session_token)
    if not existing:
        return None

    new_token, new_csrf, new_row = _new_session_row(existing.user_id)
    db.delete(existing)
    db.add(new_row)
    db.commit()
    db.refresh(new_row)
    return new_token, new_csrf, new_row


def validate_session(db: DBSession, session_token: str) -> Optional[Session]:
    """Return the unexpired session for a token, if any."""
    if not session_token:
        return None

    return db.query(Session).filter(
        Session.token_hash == _hash_token(session_token),
        Session.expires_at > utcnow(),
    ).first()


def invalidate_session(db: DBSession, session_token: str) -> bool:
    if not session_token:
        return False

    result = db.query(Session).filter(Session.token_hash == _hash_token(session_token)).delete()
    db.commit()
    return result > 0


def revoke_all_user_sessions(db: DBSession, user_id: str) -> int:
    """Sign a user out everywhere (used when an admin deactivates an account)."""
    count = db.query(Session).filter(Session.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    return count


def cleanup_expired_sessions(db: DBSession) -> int:
    """Delete expired sessions. Returns the number removed."""
    count = db.query(Session).filter(Session.expires_at <= utcnow()).delete(synchronize_session=False)
    db.commit()
    return count
