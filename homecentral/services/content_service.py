"""Content, tags and collections for the CMS."""

import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from homecentral.core.exceptions import BadRequestError, NotFoundError
from homecentral.core.time import isoformat, utcnow
from homecentral.db.models import (
    Collection,
    CollectionItem,
    Content,
    ContentRelation,
    ContentTag,
    Tag,
)

CONTENT_TYPES = frozenset({"ARTICLE", "GUIDE", "STORY"})
CONTENT_STATUSES = frozenset({"DRAFT", "SCHEDULED", "PUBLISHED", "ARCHIVED"})
GEO_SCOPES = frozenset({"STATEWIDE", "OAHU", "MAUI", "KAUAI", "HAWAII_ISLAND", "LANAI", "MOLOKAI", "OTHER"})
COLLECTION_LAYOUTS = frozenset({"TILES", "LIST"})

_APOSTROPHES = re.compile(r"['’]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Plain text fields copied from request bodies; empty strings become None.
_OPTIONAL_TEXT_FIELDS = {
    "dek": "dek",
    "authorName": "author_name",
    "metaTitle": "meta_title",
    "metaDescription": "meta_description",
    "canonicalUrl": "canonical_url",
    "ogImageUrl": "og_image_url",
    "geoScope": "geo_scope",
    "geoPlace": "geo_place",
}


# --- Slugs ----------------------------------------------------------------


def generate_slug(title: str) -> str:
    slug = _APOSTROPHES.sub("", (title or "").lower())
    slug = _NON_ALNUM.sub("-", slug)
    return slug.strip("-")


def ensure_unique_slug(db: DBSession, slug: str, existing_id: Optional[str] = None) -> str:
    """Return ``slug`` or the first free ``slug-2``, ``slug-3``...; the row being edited does not clash."""
    candidate = slug
    suffix = 2
    while True:
        row = db.query(Content.id).filter(Content.slug == candidate).first()
        if row is None or row.id == existing_id:
            return candidate
        candidate = f"{slug}-{suffix}"
        suffix += 1


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into naive UTC; empty values give None."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise BadRequestError(f"Invalid date: {value}")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise BadRequestError(f"Invalid date: {value}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# --- Serialization --------------------------------------------------------


def serialize_tag(tag: Tag) -> dict[str, Any]:
    return {"id": tag.id, "slug": tag.slug, "name": tag.name, "isPrimary": tag.is_primary}


def serialize_content_summary(content: Content) -> dict[str, Any]:
    return {
        "id": content.id,
        "title": content.title,
        "slug": content.slug,
        "contentType": content.content_type,
        "status": content.status,
        "dek": content.dek,
        "authorName": content.author_name,
        "publishAt": isoformat(content.publish_at),
        "publishedAt": isoformat(content.published_at),
        "updatedAt": isoformat(content.updated_at),
        "primaryCollection": (
            {"id": content.primary_collection.id, "title": content.primary_collection.title, "slug": content.primary_collection.slug}
            if content.primary_collection
            else None
        ),
        "tags": [serialize_tag(ct.tag) for ct in content.tags],
    }


def serialize_content(content: Content, published_related_only: bool = False) -> dict[str, Any]:
    data = serialize_content_summary(content)
    related = [rel.to_content for rel in content.related if rel.to_content is not None]
    if published_related_only:
        related = [c for c in related if c.status == "PUBLISHED"]
    data.update(
        {
            "bodyMd": content.body_md,
            "metaTitle": content.meta_title,
            "metaDescription": content.meta_description,
            "canonicalUrl": content.canonical_url,
            "ogImageUrl": content.og_image_url,
            "geoScope": content.geo_scope,
            "geoPlace": content.geo_place,
            "robotsNoIndex": content.robots_no_index,
            "primaryCollectionId": content.primary_collection_id,
            "createdAt": isoformat(content.created_at),
            "collections": [
                {"id": item.collection.id, "slug": item.collection.slug, "title": item.collection.title, "priority": item.priority}
                for item in sorted(content.collection_items, key=lambda i: i.priority)
            ],
            "related": [
                {"id": c.id, "title": c.title, "slug": c.slug, "contentType": c.content_type}
                for c in related
            ],
        }
    )
    return data


def serialize_collection(collection: Collection, published_only: bool = False) -> dict[str, Any]:
    items = [item for item in collection.items if item.content is not None]
    if published_only:
        items = [item for item in items if item.content.status == "PUBLISHED"]
    return {
        "id": collection.id,
        "slug": collection.slug,
        "title": collection.title,
        "description": collection.description,
        "heroImageUrl": collection.hero_image_url,
        "layout": collection.layout,
        "items": [
            {
                "contentId": item.content_id,
                "priority": item.priority,
                "content": {
                    "id": item.content.id,
                    "title": item.content.title,
                    "slug": item.content.slug,
                    "contentType": item.content.content_type,
                    "status": item.content.status,
                    "dek": item.content.dek,
                },
            }
            for item in items
        ],
    }


# --- Public reads ---------------------------------------------------------


def list_published_content(
    db: DBSession,
    content_type: Optional[str] = None,
    tag: Optional[str] = None,
    collection: Optional[str] = None,
) -> list[Content]:
    query = db.query(Content).filter(Content.status == "PUBLISHED")
    if content_type:
        query = query.filter(Content.content_type == content_type.upper())
    if tag:
        query = query.join(ContentTag, ContentTag.content_id == Content.id).join(Tag, Tag.id == ContentTag.tag_id)
        query = query.filter(Tag.slug == tag)
    if collection:
        query = query.join(CollectionItem, CollectionItem.content_id == Content.id).join(
            Collection, Collection.id == CollectionItem.collection_id
        )
        query = query.filter(Collection.slug == collection)
    return query.order_by(Content.published_at.desc(), Content.created_at.desc()).all()


def get_published_content(db: DBSession, slug: str) -> Content:
    content = db.query(Content).filter(Content.slug == slug, Content.status == "PUBLISHED").first()
    if content is None:
        raise NotFoundError("Not found")
    return content


def get_collection_by_slug(db: DBSession, slug: str) -> Collection:
    collection = db.query(Collection).filter(Collection.slug == slug).first()
    if collection is None:
        raise NotFoundError("Not found")
    return collection


# --- Tags -----------------------------------------------------------------


def upsert_tag(db: DBSession, name: str, primary: bool = False) -> Tag:
    """Find a tag by the slug of ``name`` or create it."""
    slug = generate_slug(name)
    if not slug:
        raise BadRequestError(f"Invalid tag name: {name!r}")
    tag = db.query(Tag).filter(Tag.slug == slug).first()
    if tag is None:
        tag = Tag(slug=slug, name=name.strip())
        db.add(tag)
    if primary:
        tag.is_primary = True
    db.flush()
    return tag


def _link_tag(db: DBSession, content_id: str, tag: Tag) -> None:
    exists = db.get(ContentTag, {"content_id": content_id, "tag_id": tag.id})
    if exists is None:
        db.add(ContentTag(content_id=content_id, tag_id=tag.id))
        db.flush()


def sync_tags(
    db: DBSession,
    content: Content,
    tag_names: Optional[Iterable[str]],
    primary_tag_names: Optional[Iterable[str]] = None,
) -> None:
    """Replace the content's tags: primary tags first, then regular tags."""
    db.query(ContentTag).filter(ContentTag.content_id == content.id).delete(synchronize_session="fetch")
    db.flush()
    for name in primary_tag_names or []:
        if isinstance(name, str) and name.strip():
            _link_tag(db, content.id, upsert_tag(db, name, primary=True))
    for name in tag_names or []:
        if isinstance(name, str) and name.strip():
            _link_tag(db, content.id, upsert_tag(db, name))
    db.expire(content, ["tags"])


def set_primary_tags(db: DBSession, content_id: str, primary_tag_names: Any) -> None:
    """Swap the content's primary tags for ``primary_tag_names``; regular tags stay."""
    if not isinstance(primary_tag_names, list):
        raise BadRequestError("Invalid input")
    content = db.get(Content, content_id)
    if content is None:
        raise NotFoundError("Not found")

    primary_ids = [row.id for row in db.query(Tag.id).filter(Tag.is_primary.is_(True)).all()]
    if primary_ids:
        db.query(ContentTag).filter(
            ContentTag.content_id == content_id, ContentTag.tag_id.in_(primary_ids)
        ).delete(synchronize_session="fetch")
        db.flush()
    for name in primary_tag_names:
        if isinstance(name, str) and name.strip():
            _link_tag(db, content_id, upsert_tag(db, name, primary=True))
    db.commit()


def list_tags(db: DBSession) -> list[dict[str, Any]]:
    rows = (
        db.query(Tag, func.count(ContentTag.content_id))
        .outerjoin(ContentTag, ContentTag.tag_id == Tag.id)
        .group_by(Tag.id)
        .order_by(Tag.is_primary.desc(), Tag.name.asc())
        .all()
    )
    return [{**serialize_tag(tag), "contentCount": count} for tag, count in rows]


def set_tag_primary(db: DBSession, tag_id: Any, is_primary: Any) -> dict[str, Any]:
    if not isinstance(tag_id, str) or not tag_id or not isinstance(is_primary, bool):
        raise BadRequestError("Invalid input")
    tag = db.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    tag.is_primary = is_primary
    db.commit()
    return {"id": tag.id, "isPrimary": tag.is_primary}


# --- Admin content CRUD ---------------------------------------------------


def _sync_collections(db: DBSession, content: Content, collection_ids: Iterable[str]) -> None:
    db.query(CollectionItem).filter(CollectionItem.content_id == content.id).delete(synchronize_session="fetch")
    for priority, collection_id in enumerate(dict.fromkeys(c for c in collection_ids if isinstance(c, str))):
        if db.get(Collection, collection_id) is None:
            raise BadRequestError(f"Unknown collection: {collection_id}")
        db.add(CollectionItem(collection_id=collection_id, content_id=content.id, priority=priority))
    db.flush()
    db.expire(content, ["collection_items"])


def _sync_related(db: DBSession, content: Content, related_ids: Iterable[str]) -> None:
    db.query(ContentRelation).filter(ContentRelation.from_content_id == content.id).delete(synchronize_session="fetch")
    for priority, related_id in enumerate(dict.fromkeys(r for r in related_ids if isinstance(r, str))):
        if related_id == content.id:
            continue
        if db.get(Content, related_id) is None:
            raise BadRequestError(f"Unknown related content: {related_id}")
        db.add(ContentRelation(from_content_id=content.id, to_content_id=related_id, priority=priority))
    db.flush()
    db.expire(content, ["related"])


def _apply_fields(content: Content, body: dict[str, Any]) -> None:
    for key, attr in _OPTIONAL_TEXT_FIELDS.items():
        if key in body:
            value = body[key]
            setattr(content, attr, value if value else None)
    if "geoScope" in body and content.geo_scope:
        content.geo_scope = content.geo_scope.upper()
    if "publishAt" in body:
        content.publish_at = parse_datetime(body["publishAt"])
    if "robotsNoIndex" in body:
        content.robots_no_index = bool(body["robotsNoIndex"])
    if "primaryCollectionId" in body:
        content.primary_collection_id = body["primaryCollectionId"] or None


def _require_status(status: Any) -> str:
    if not isinstance(status, str) or status not in CONTENT_STATUSES:
        raise BadRequestError(f"Invalid status: {status}")
    return status


def _require_optional_text(body: dict[str, Any], *fields: str) -> None:
    for field in fields:
        value = body.get(field)
        if value is not None and not isinstance(value, str):
            raise BadRequestError(f"{field} must be a string")


def list_admin_content(
    db: DBSession,
    content_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Content]:
    query = db.query(Content)
    if content_type:
        query = query.filter(Content.content_type == content_type)
    if status:
        query = query.filter(Content.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(func.lower(Content.title).like(pattern) | func.lower(Content.slug).like(pattern))
    return query.order_by(Content.updated_at.desc()).all()


def get_content(db: DBSession, content_id: str) -> Content:
    content = db.get(Content, content_id)
    if content is None:
        raise NotFoundError("Not found")
    return content


def create_content(db: DBSession, body: dict[str, Any]) -> Content:
    title = body.get("title")
    content_type = body.get("contentType")
    body_md = body.get("bodyMd")
    if not all(isinstance(value, str) and value for value in (title, content_type, body_md)):
        raise BadRequestError("title, contentType, and bodyMd are required")
    _require_optional_text(body, "slug")
    if content_type not in CONTENT_TYPES:
        raise BadRequestError(f"Invalid contentType: {content_type}")
    status = _require_status(body.get("status") or "DRAFT")

    slug = ensure_unique_slug(db, body.get("slug") or generate_slug(title))
    content = Content(
        title=title,
        slug=slug,
        content_type=content_type,
        body_md=body_md,
        status=status,
        published_at=utcnow() if status == "PUBLISHED" else None,
    )
    _apply_fields(content, body)
    db.add(content)
    db.flush()

    if body.get("tags") or body.get("primaryTags"):
        sync_tags(db, content, body.get("tags"), body.get("primaryTags"))
    if body.get("collectionIds"):
        _sync_collections(db, content, body["collectionIds"])
    if body.get("relatedIds"):
        _sync_related(db, content, body["relatedIds"])

    db.commit()
    db.refresh(content)
    return content


def update_content(db: DBSession, content_id: str, body: dict[str, Any]) -> Content:
    content = get_content(db, content_id)
    _require_optional_text(body, "title", "slug", "bodyMd", "contentType")

    if body.get("title") is not None:
        content.title = body["title"]
    if body.get("slug"):
        content.slug = ensure_unique_slug(db, body["slug"], existing_id=content.id)
    if body.get("bodyMd") is not None:
        content.body_md = body["bodyMd"]
    if body.get("contentType") is not None:
        if body["contentType"] not in CONTENT_TYPES:
            raise BadRequestError(f"Invalid contentType: {body['contentType']}")
        content.content_type = body["contentType"]
    if body.get("status") is not None:
        status = _require_status(body["status"])
        if status == "PUBLISHED" and content.status != "PUBLISHED":
            content.published_at = utcnow()
        content.status = status
    _apply_fields(content, body)
    db.flush()

    if "tags" in body or "primaryTags" in body:
        sync_tags(db, content, body.get("tags"), body.get("primaryTags"))
    if body.get("collectionIds") is not None:
        _sync_collections(db, content, body["collectionIds"])
    if body.get("relatedIds") is not None:
        _sync_related(db, content, body["relatedIds"])

    db.commit()
    db.refresh(content)
    return content


def delete_content(db: DBSession, content_id: str) -> None:
    content = get_content(db, content_id)
    db.delete(content)
    db.commit()


BULK_ACTIONS = frozenset({"PUBLISH", "DRAFT", "DELETE"})


def bulk_update_content(db: DBSession, ids: Any, action: Any) -> int:
    if not isinstance(ids, list) or not ids:
        raise BadRequestError("No items selected")
    if action not in BULK_ACTIONS:
        raise BadRequestError("Invalid action")

    rows = db.query(Content).filter(Content.id.in_([i for i in ids if isinstance(i, str)])).all()
    for content in rows:
        if action == "PUBLISH":
            content.status = "PUBLISHED"
            content.published_at = utcnow()
        elif action == "DRAFT":
            content.status = "DRAFT"
        else:
            db.delete(content)
    db.commit()
    return len(rows)


# --- Collections ----------------------------------------------------------


def list_collections(db: DBSession) -> list[dict[str, Any]]:
    rows = (
        db.query(Collection, func.count(CollectionItem.content_id))
        .outerjoin(CollectionItem, CollectionItem.collection_id == Collection.id)
        .group_by(Collection.id)
        .order_by(Collection.title.asc())
        .all()
    )
    return [
        {
            "id": collection.id,
            "slug": collection.slug,
            "title": collection.title,
            "description": collection.description,
            "layout": collection.layout,
            "itemCount": count,
        }
        for collection, count in rows
    ]


def create_collection(db: DBSession, body: dict[str, Any]) -> Collection:
    title = body.get("title")
    _require_optional_text(body, "slug", "layout")
    if not isinstance(title, str) or not title:
        raise BadRequestError("Title is required")
    slug = body.get("slug") or generate_slug(title)
    if db.query(Collection).filter(Collection.slug == slug).first() is not None:
        raise BadRequestError("Slug already exists")
    layout = body.get("layout") or "TILES"
    if layout not in COLLECTION_LAYOUTS:
        raise BadRequestError(f"Invalid layout: {layout}")

    collection = Collection(
        title=title,
        slug=slug,
        description=body.get("description") or None,
        hero_image_url=body.get("heroImageUrl") or None,
        layout=layout,
    )
    db.add(collection)
    db.commit()
    db.refresh(collection)
    return collection


def get_collection(db: DBSession, collection_id: str) -> Collection:
    collection = db.get(Collection, collection_id)
    if collection is None:
        raise NotFoundError("Not found")
    return collection


def update_collection(db: DBSession, collection_id: str, body: dict[str, Any]) -> Collection:
    collection = get_collection(db, collection_id)
    _require_optional_text(body, "title", "slug", "layout")
    if body.get("title") is not None:
        collection.title = body["title"]
    if body.get("slug") is not None and body["slug"] != collection.slug:
        clash = db.query(Collection).filter(Collection.slug == body["slug"], Collection.id != collection.id).first()
        if clash is not None:
            raise BadRequestError("Slug already exists")
        collection.slug = body["slug"]
    if "description" in body:
        collection.description = body["description"] or None
    if "heroImageUrl" in body:
        collection.hero_image_url = body["heroImageUrl"] or None
    if body.get("layout") is not None:
        if body["layout"] not in COLLECTION_LAYOUTS:
            raise BadRequestError(f"Invalid layout: {body['layout']}")
        collection.layout = body["layout"]

    items = body.get("items")
    if isinstance(items, list):
        db.query(CollectionItem).filter(CollectionItem.collection_id == collection.id).delete(synchronize_session="fetch")
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("contentId"), str):
                continue
            priority = item.get("priority")
            db.add(
                CollectionItem(
                    collection_id=collection.id,
                    content_id=item["contentId"],
                    priority=priority if isinstance(priority, int) else index,
                )
            )
        db.flush()
        db.expire(collection, ["items"])

    db.commit()
    db.refresh(collection)
    return collection


def delete_collection(db: DBSession, collection_id: str) -> None:
    collection = get_collection(db, collection_id)
    db.delete(collection)
    db.commit()
