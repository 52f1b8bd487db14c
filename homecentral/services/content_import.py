"""Bulk CSV-style import, dry-run validation and CSV export for content."""

import csv
import io
from typing import Any

from sqlalchemy.orm import Session as DBSession

from homecentral.core.exceptions import BadRequestError
from homecentral.core.logging import get_logger
from homecentral.core.time import isoformat, utcnow
from homecentral.db.models import Collection, CollectionItem, Content, ContentTag
from homecentral.services.content_service import (
    CONTENT_STATUSES,
    CONTENT_TYPES,
    GEO_SCOPES,
    ensure_unique_slug,
    generate_slug,
    parse_datetime,
    upsert_tag,
)

logger = get_logger(__name__)

EXPORT_COLUMNS = [
    "id",
    "title",
    "slug",
    "contentType",
    "status",
    "dek",
    "authorName",
    "bodyMd",
    "primaryTags",
    "tags",
    "collectionSlugs",
    "publishAt",
    "metaTitle",
    "metaDescription",
    "canonicalUrl",
    "ogImageUrl",
    "geoScope",
    "geoPlace",
    "robotsNoIndex",
]

EXPORT_FILENAME = "hhc-content-export.csv"

_LIST_SEPARATOR = "|"


def _cell(row: dict[str, Any], key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(_LIST_SEPARATOR) if part.strip()]


def _require_rows(rows: Any) -> list[dict[str, Any]]:
    if not isinstance(rows, list) or not rows:
        raise BadRequestError("No rows provided")
    return [row if isinstance(row, dict) else {} for row in rows]


def validate_rows(db: DBSession, rows: Any) -> dict[str, Any]:
    """Dry-run an import; nothing is written."""
    rows = _require_rows(rows)
    known_collections = {slug for (slug,) in db.query(Collection.slug).all()}
    results = []

    for index, row in enumerate(rows, start=1):
        errors: list[str] = []
        warnings: list[str] = []
        content_id = _cell(row, "id")
        title = _cell(row, "title")
        action = "update" if content_id else "create"

        existing = db.get(Content, content_id) if content_id else None
        if content_id and existing is None:
            errors.append(f"No content with id {content_id}")
        if not title:
            errors.append("Missing title")

        content_type = _cell(row, "contentType").upper()
        if not content_type:
            errors.append("Missing contentType")
        elif content_type not in CONTENT_TYPES:
            errors.append(f"Invalid contentType: {content_type}")

        slug = _cell(row, "slug") or generate_slug(title)
        if slug:
            clash = db.query(Content.id).filter(Content.slug == slug).first()
            if clash is not None and (action == "create" or clash.id != content_id):
                errors.append(f"Slug already in use: {slug}")

        status = _cell(row, "status").upper()
        if status and status not in CONTENT_STATUSES:
            errors.append(f"Invalid status: {status}")

        publish_at = _cell(row, "publishAt")
        if publish_at:
            try:
                parse_datetime(publish_at)
            except BadRequestError:
                errors.append(f"Invalid publishAt: {publish_at}")

        geo_scope = _cell(row, "geoScope").upper()
        if geo_scope and geo_scope not in GEO_SCOPES:
            warnings.append(f"Unknown geoScope: {geo_scope}")
        for collection_slug in _split(_cell(row, "collectionSlugs")):
            if collection_slug not in known_collections:
                warnings.append(f"Unknown collection: {collection_slug}")
        robots = _cell(row, "robotsNoIndex").lower()
        if robots and robots not in ("true", "false"):
            warnings.append(f"Invalid robotsNoIndex: {robots}")
        if not _cell(row, "bodyMd"):
            warnings.append("Missing bodyMd")

        if errors:
            row_status = "error"
        elif warnings:
            row_status = "warning"
        else:
            row_status = "valid"
        messages = errors + warnings or [f"OK ({action})"]
        results.append(
            {"row": index, "title": title, "status": row_status, "action": action, "messages": messages}
        )

    return {
        "rows": results,
        "summary": {
            "total": len(results),
            "valid": sum(1 for r in results if r["status"] == "valid"),
            "warnings": sum(1 for r in results if r["status"] == "warning"),
            "errors": sum(1 for r in results if r["status"] == "error"),
            "creates": sum(1 for r in results if r["action"] == "create"),
            "updates": sum(1 for r in results if r["action"] == "update"),
        },
    }


def _import_row(db: DBSession, row: dict[str, Any], collections: dict[str, str]) -> str:
    content_id = _cell(row, "id")
    title = _cell(row, "title")
    if not title:
        raise BadRequestError("Missing title")
    content_type = _cell(row, "contentType").upper() or "GUIDE"
    if content_type not in CONTENT_TYPES:
        raise BadRequestError(f"Invalid contentType: {content_type}")
    status = _cell(row, "status").upper() or "DRAFT"
    if status not in CONTENT_STATUSES:
        raise BadRequestError(f"Invalid status: {status}")

    fields = {
        "title": title,
        "content_type": content_type,
        "status": status,
        "dek": _cell(row, "dek") or None,
        "author_name": _cell(row, "authorName") or None,
        "body_md": _cell(row, "bodyMd"),
        "publish_at": parse_datetime(_cell(row, "publishAt")),
        "meta_title": _cell(row, "metaTitle") or None,
        "meta_description": _cell(row, "metaDescription") or None,
        "canonical_url": _cell(row, "canonicalUrl") or None,
        "og_image_url": _cell(row, "ogImageUrl") or None,
        "geo_scope": _cell(row, "geoScope").upper() or None,
        "geo_place": _cell(row, "geoPlace") or None,
        "robots_no_index": _cell(row, "robotsNoIndex").lower() == "true",
    }

    if content_id:
        content = db.get(Content, content_id)
        if content is None:
            raise BadRequestError(f"No content with id {content_id}")
        if status == "PUBLISHED" and content.status != "PUBLISHED" and content.published_at is None:
            content.published_at = utcnow()
        slug = _cell(row, "slug")
        if slug and slug != content.slug:
            content.slug = ensure_unique_slug(db, slug, existing_id=content.id)
        for attr, value in fields.items():
            setattr(content, attr, value)
        db.query(ContentTag).filter(ContentTag.content_id == content.id).delete(synchronize_session="fetch")
        db.query(CollectionItem).filter(CollectionItem.content_id == content.id).delete(
            synchronize_session="fetch"
        )
        action = "updated"
    else:
        content = Content(
            slug=ensure_unique_slug(db, _cell(row, "slug") or generate_slug(title)),
            published_at=utcnow() if status == "PUBLISHED" else None,
            **fields,
        )
        db.add(content)
        action = "created"
    db.flush()

    linked: set[str] = set()
    for name in _split(_cell(row, "primaryTags")):
        tag = upsert_tag(db, name, primary=True)
        if tag.id not in linked:
            db.add(ContentTag(content_id=content.id, tag_id=tag.id))
            linked.add(tag.id)
    for name in _split(_cell(row, "tags")):
        tag = upsert_tag(db, name)
        if tag.id not in linked:
            db.add(ContentTag(content_id=content.id, tag_id=tag.id))
            linked.add(tag.id)
    priority = 0
    for collection_slug in dict.fromkeys(_split(_cell(row, "collectionSlugs"))):
        collection_id = collections.get(collection_slug)
        if collection_id is None:
            continue
        db.add(CollectionItem(collection_id=collection_id, content_id=content.id, priority=priority))
        priority += 1
    db.flush()
    return action


def import_rows(db: DBSession, rows: Any) -> dict[str, Any]:
    """Create or update content from rows; each row commits or rolls back on its own."""
    rows = _require_rows(rows)
    collections = {slug: cid for slug, cid in db.query(Collection.slug, Collection.id).all()}
    created = updated = 0
    errors = []

    for index, row in enumerate(rows, start=1):
        try:
            action = _import_row(db, row, collections)
            db.commit()
        except Exception as exc:
            db.rollback()
            message = exc.message if isinstance(exc, BadRequestError) else str(exc)
            errors.append({"row": index, "title": _cell(row, "title"), "error": message})
            continue
        if action == "created":
            created += 1
        else:
            updated += 1

    logger.info(
        "Content import finished",
        data={"total": len(rows), "created": created, "updated": updated, "errors": len(errors)},
    )
    return {
        "summary": {"total": len(rows), "created": created, "updated": updated, "errors": len(errors)},
        "errors": errors,
    }


def _export_row(content: Content) -> dict[str, str]:
    primary = [ct.tag.name for ct in content.tags if ct.tag.is_primary]
    regular = [ct.tag.name for ct in content.tags if not ct.tag.is_primary]
    return {
        "id": content.id,
        "title": content.title,
        "slug": content.slug,
        "contentType": content.content_type,
        "status": content.status,
        "dek": content.dek or "",
        "authorName": content.author_name or "",
        "bodyMd": content.body_md or "",
        "primaryTags": _LIST_SEPARATOR.join(primary),
        "tags": _LIST_SEPARATOR.join(regular),
        "collectionSlugs": _LIST_SEPARATOR.join(
            item.collection.slug for item in sorted(content.collection_items, key=lambda i: i.priority)
        ),
        "publishAt": isoformat(content.publish_at) or "",
        "metaTitle": content.meta_title or "",
        "metaDescription": content.meta_description or "",
        "canonicalUrl": content.canonical_url or "",
        "ogImageUrl": content.og_image_url or "",
        "geoScope": content.geo_scope or "",
        "geoPlace": content.geo_place or "",
        "robotsNoIndex": "true" if content.robots_no_index else "false",
    }


def export_csv(db: DBSession) -> str:
    """All content as CSV, newest first."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for content in db.query(Content).order_by(Content.created_at.desc()).all():
        writer.writerow(_export_row(content))
    return output.getvalue()
