"""Bootstrap the first admin from BOOTSTRAP_ADMIN_EMAIL."""

from homecentral.config import Settings
from homecentral.core.logging import get_logger
from homecentral.db.database import get_session_local
from homecentral.db.models import AdminAllowlist
from homecentral.services.allowlist_service import normalize_email

logger = get_logger(__name__)


class BootstrapRefusedError(RuntimeError):
    """Bootstrap admin configured in production."""


def ensure_bootstrap_admin(settings: Settings) -> bool:
    """Insert the bootstrap email into the admin allowlist as ADMIN if absent.

    Returns True when a row was created. In production the variable must be
    removed after initial setup, so its presence refuses startup.
    """
    email = normalize_email(settings.bootstrap_admin_email)
    if not email:
        return False

    if settings.is_production:
        logger.error(
            "CRITICAL SECURITY: Bootstrap admin is set in production. "
            "Remove BOOTSTRAP_ADMIN_EMAIL after initial setup. Refusing to start."
        )
        raise BootstrapRefusedError("BOOTSTRAP_ADMIN_EMAIL must not be set in production")

    db = get_session_local()()
    try:
        existing = db.query(AdminAllowlist).filter(AdminAllowlist.email == email).first()
        if existing:
            return False
        db.add(AdminAllowlist(email=email, role="ADMIN"))
        db.commit()
        logger.warning("Bootstrap admin allowlisted", data={"email": email})
        return True
    finally:
        db.close()
