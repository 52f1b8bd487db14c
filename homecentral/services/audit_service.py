"""Persistent audit log.

Recording an event must never fail the request it belongs to.
"""

from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.core.logging import get_logger, redact_sensitive_data
from homecentral.core.middleware import get_client_ip
from homecentral.db.models import AuditLog

logger = get_logger(__name__)


def audit_log_event(
    db: DBSession,
    *,
    event_type: str,
    user_id: Optional[str],
    request=None,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Persist an audit log entry, best effort.

    ``data`` goes through the same redaction as log records, so tokens and
    email addresses never land in the table verbatim.
    """
    if db is None:
        return

    try:
        ip = get_client_ip(request)[0] if request is not None else None
        entry = AuditLog(
            user_id=user_id,
            event_type=event_type,
            ip=ip,
            user_agent=request.headers.get("user-agent") if request is not None else None,
            path=request.url.path if request is not None else None,
            method=request.method if request is not None else None,
            data_json=redact_sensitive_data(data) if data is not None else None,
        )
        db.add(entry)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("Audit log write failed", data={"event_type": event_type, "error": type(exc).__name__})
