"""Admin roles and sign-in gating.

Admin role lookup: the ADMIN_ALLOWLIST env list always yields ADMIN, then the
``admin_allowlist`` table yields its stored role.

Sign-in gating, in order:
- maintenance mode: only env admins may sign in
- whitelist mode: env admins, env early-access list or the DB allowlist
- otherwise anyone with a verified email
"""

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.config import get_settings
from homecentral.db.models import AdminAllowlist, EarlyAccessAllowlist

ADMIN_ROLES = frozenset({"ADMIN", "EDITOR"})


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_env_admin(email: str) -> bool:
    return normalize_email(email) in get_settings().admin_allowlist_list


def is_email_allowlisted(email: str) -> bool:
    """Env lists only (admin + early access)."""
    settings = get_settings()
    normalized = normalize_email(email)
    return normalized in settings.admin_allowlist_list or normalized in settings.early_access_allowlist_list


def is_email_allowlisted_with_db(db: DBSession, email: str) -> bool:
    normalized = normalize_email(email)
    if is_email_allowlisted(normalized):
        return True
    return db.query(EarlyAccessAllowlist).filter(EarlyAccessAllowlist.email == normalized).first() is not None


def get_admin_role(db: DBSession, email: Optional[str]) -> Optional[str]:
    normalized = normalize_email(email)
    if not normalized:
        return None
    if is_env_admin(normalized):
        return "ADMIN"
    row = db.query(AdminAllowlist).filter(AdminAllowlist.email == normalized).first()
    return row.role if row is not None else None


def check_sign_in_allowed(db: DBSession, email: Optional[str]) -> tuple[bool, str]:
    """Return (allowed, reason). Reason is ``ok``, ``maintenance``, ``not_allowlisted`` or ``no_email``."""
    normalized = normalize_email(email)
    if not normalized:
        return False, "no_email"

    settings = get_settings()
    if settings.maintenance_mode:
        return (True, "ok") if is_env_admin(normalized) else (False, "maintenance")

    if settings.require_whitelist:
        return (True, "ok") if is_email_allowlisted_with_db(db, normalized) else (False, "not_allowlisted")

    return True, "ok"
