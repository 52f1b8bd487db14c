"""Key/value site settings edited from the admin back-office."""

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.db.models import SiteSetting

# Only these keys may be read without authentication.
PUBLIC_SETTING_KEYS = frozenset({"site_contact_email", "site_footer_tagline"})

REPORT_LOGO_URL = "report_logo_url"
REPORT_COMPANY_NAME = "report_company_name"
REPORT_TITLE = "report_title"
REPORT_FOOTER_TEXT = "report_footer_text"
REPORT_HIDE_NOTES_IN_PUBLIC_SHARE = "report_hide_notes_in_public_share"

REPORT_DEFAULTS = {
    REPORT_LOGO_URL: "",
    REPORT_COMPANY_NAME: "Hawaii Home Central",
    REPORT_TITLE: "Fix List",
    REPORT_FOOTER_TEXT: "",
}


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def get_settings_map(db: DBSession, keys: Optional[Iterable[str]] = None) -> dict[str, str]:
    query = db.query(SiteSetting)
    if keys is not None:
        query = query.filter(SiteSetting.key.in_(list(keys)))
    return {row.key: row.value for row in query.all()}


def upsert_settings(db: DBSession, values: dict[str, Any], updated_by_id: Optional[str]) -> list[str]:
    """Insert or update many keys in one commit; returns the keys written."""
    written = []
    for key, value in values.items():
        text = value if isinstance(value, str) else ("" if value is None else str(value))
        row = db.get(SiteSetting, key)
        if row is None:
            db.add(SiteSetting(key=key, value=text, updated_by_id=updated_by_id))
        else:
            row.value = text
            row.updated_by_id = updated_by_id
        written.append(key)
    db.commit()
    return written


def get_public_settings(db: DBSession, keys_param: Optional[str]) -> dict[str, str]:
    if not keys_param:
        return {}
    requested = [k for k in (part.strip() for part in keys_param.split(",")) if k in PUBLIC_SETTING_KEYS]
    if not requested:
        return {}
    return get_settings_map(db, requested)


def get_report_settings(db: DBSession) -> dict[str, Any]:
    stored = get_settings_map(db, [*REPORT_DEFAULTS, REPORT_HIDE_NOTES_IN_PUBLIC_SHARE])
    return {
        "logoUrl": stored.get(REPORT_LOGO_URL) or REPORT_DEFAULTS[REPORT_LOGO_URL],
        "companyName": stored.get(REPORT_COMPANY_NAME) or REPORT_DEFAULTS[REPORT_COMPANY_NAME],
        "reportTitle": stored.get(REPORT_TITLE) or REPORT_DEFAULTS[REPORT_TITLE],
        "footerText": stored.get(REPORT_FOOTER_TEXT) or REPORT_DEFAULTS[REPORT_FOOTER_TEXT],
        "hideNotesInPublicShare": is_truthy(stored.get(REPORT_HIDE_NOTES_IN_PUBLIC_SHARE)),
    }
