"""Admin CMS endpoints. Any admin role (ADMIN or EDITOR) may use them."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_admin_user
from homecentral.db import get_db
from homecentral.db.models import Content, User
from homecentral.services import content_import, content_service, feedback_service, idea_pack_service
from homecentral.services.audit_service import audit_log_event

router = APIRouter(prefix="/api/admin", tags=["admin-content"])


class BulkRequest(BaseModel):
    ids: Any = None
    action: Any = None


class PrimaryTagRequest(BaseModel):
    primaryTagNames: Any = None


class TagUpdateRequest(BaseModel):
    id: Any = None
    isPrimary: Any = None


class ImportRequest(BaseModel):
    rows: Any = None


def _audit(db: DBSession, request: Request, admin: User, event_type: str, **data: Any) -> None:
    audit_log_event(db, event_type=event_type, user_id=admin.id, request=request, data=data or None)


# --- Content --------------------------------------------------------------


@router.get("/content")
async def list_content(
    type: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    items = content_service.list_admin_content(db, content_type=type, status=status_filter, search=search)
    return {"items": [content_service.serialize_content_summary(c) for c in items]}


@router.get("/content/search")
async def search_content(
    q: str = Query(default=""),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    """Title/slug lookup for the related-content picker."""
    if len(q) < 2:
        return []
    pattern = f"%{q.lower()}%"
    rows = (
        db.query(Content)
        .filter(func.lower(Content.title).like(pattern) | func.lower(Content.slug).like(pattern))
        .order_by(Content.title.asc())
        .limit(20)
        .all()
    )
    return [{"id": c.id, "title": c.title, "contentType": c.content_type, "slug": c.slug} for c in rows]


@router.post("/content", status_code=status.HTTP_201_CREATED)
async def create_content(
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    content = content_service.create_content(db, body)
    _audit(db, request, admin, "admin.content_create", content_id=content.id)
    return {"id": content.id, "slug": content.slug}


@router.post("/content/bulk")
async def bulk_content(
    body: BulkRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    affected = content_service.bulk_update_content(db, body.ids, body.action)
    _audit(db, request, admin, "admin.content_bulk", action=body.action, affected=affected)
    return {"affected": affected}


@router.get("/content/{content_id}")
async def get_content(
    content_id: str,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return content_service.serialize_content(content_service.get_content(db, content_id))


@router.put("/content/{content_id}")
async def update_content(
    content_id: str,
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    content = content_service.update_content(db, content_id, body)
    _audit(db, request, admin, "admin.content_update", content_id=content.id)
    return content_service.serialize_content(content)


@router.delete("/content/{content_id}")
async def delete_content(
    content_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    content_service.delete_content(db, content_id)
    _audit(db, request, admin, "admin.content_delete", content_id=content_id)
    return {"ok": True}


@router.patch("/content/{content_id}/primary-tag")
async def set_primary_tags(
    content_id: str,
    body: PrimaryTagRequest,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    content_service.set_primary_tags(db, content_id, body.primaryTagNames)
    return {"ok": True}


# --- Tags -----------------------------------------------------------------


@router.get("/tags")
async def list_tags(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return {"tags": content_service.list_tags(db)}


@router.patch("/tags")
async def update_tag(
    body: TagUpdateRequest,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return content_service.set_tag_primary(db, body.id, body.isPrimary)


# --- Collections ----------------------------------------------------------


@router.get("/collections")
async def list_collections(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return {"collections": content_service.list_collections(db)}


@router.post("/collections", status_code=status.HTTP_201_CREATED)
async def create_collection(
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    collection = content_service.create_collection(db, body)
    _audit(db, request, admin, "admin.collection_create", collection_id=collection.id)
    return {"id": collection.id, "slug": collection.slug}


@router.get("/collections/{collection_id}")
async def get_collection(
    collection_id: str,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return content_service.serialize_collection(content_service.get_collection(db, collection_id))


@router.put("/collections/{collection_id}")
async def update_collection(
    collection_id: str,
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    collection = content_service.update_collection(db, collection_id, body)
    _audit(db, request, admin, "admin.collection_update", collection_id=collection.id)
    return content_service.serialize_collection(collection)


@router.delete("/collections/{collection_id}")
async def delete_collection(
    collection_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    content_service.delete_collection(db, collection_id)
    _audit(db, request, admin, "admin.collection_delete", collection_id=collection_id)
    return {"ok": True}


# --- Feedback -------------------------------------------------------------


@router.get("/feedback")
async def feedback_dashboard(
    page: int = Query(default=1, ge=1),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return feedback_service.get_feedback_dashboard(db, page)


# --- Import / export ------------------------------------------------------


@router.post("/import/validate")
async def validate_import(
    body: ImportRequest,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return content_import.validate_rows(db, body.rows)


@router.post("/import")
async def run_import(
    body: ImportRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    result = content_import.import_rows(db, body.rows)
    _audit(db, request, admin, "admin.content_import", **result["summary"])
    return result


@router.get("/import/export")
async def export_content(
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return Response(
        content=content_import.export_csv(db),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={content_import.EXPORT_FILENAME}"},
    )


# --- Idea packs -----------------------------------------------------------


@router.get("/idea-packs")
async def list_idea_packs(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    packs = idea_pack_service.list_packs(db, status=status_filter)
    return {"packs": [idea_pack_service.serialize_pack(p) for p in packs]}


@router.post("/idea-packs", status_code=status.HTTP_201_CREATED)
async def create_idea_pack(
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    pack = idea_pack_service.create_pack(db, body)
    _audit(db, request, admin, "admin.idea_pack_create", pack_id=pack.pack_id)
    return idea_pack_service.serialize_pack(pack)


@router.get("/idea-packs/{pack_id}")
async def get_idea_pack(
    pack_id: str,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return idea_pack_service.serialize_pack(idea_pack_service.get_pack(db, pack_id))


@router.put("/idea-packs/{pack_id}")
async def update_idea_pack(
    pack_id: str,
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    pack = idea_pack_service.update_pack(db, pack_id, body)
    _audit(db, request, admin, "admin.idea_pack_update", pack_id=pack.pack_id)
    return idea_pack_service.serialize_pack(pack)


@router.delete("/idea-packs/{pack_id}")
async def delete_idea_pack(
    pack_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    idea_pack_service.delete_pack(db, pack_id)
    _audit(db, request, admin, "admin.idea_pack_delete", pack_id=pack_id)
    return {"ok": True}
