"""Public CMS endpoints: published content, collections, feedback and idea packs."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_optional_user
from homecentral.core.middleware import get_client_ip
from homecentral.db import get_db
from homecentral.db.models import User
from homecentral.services import content_service, feedback_service, idea_pack_service
from homecentral.services.site_settings import get_public_settings

router = APIRouter(prefix="/api", tags=["content"])


class VoteRequest(BaseModel):
    vote: Any = None
    anonId: Optional[str] = None


@router.get("/content")
async def list_content(
    type: Optional[str] = Query(default=None),
    tag: Optional[str] = Query(default=None),
    collection: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
):
    items = content_service.list_published_content(db, content_type=type, tag=tag, collection=collection)
    return {"items": [content_service.serialize_content_summary(c) for c in items]}


@router.get("/content/{slug}")
async def get_content(slug: str, db: DBSession = Depends(get_db)):
    content = content_service.get_published_content(db, slug)
    return content_service.serialize_content(content, published_related_only=True)


@router.get("/collections/{slug}")
async def get_collection(slug: str, db: DBSession = Depends(get_db)):
    collection = content_service.get_collection_by_slug(db, slug)
    return content_service.serialize_collection(collection, published_only=True)


@router.post("/content/{slug}/feedback")
async def vote(
    slug: str,
    body: VoteRequest,
    db: DBSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    feedback = feedback_service.record_vote(db, slug, body.vote, user=user, anon_id=body.anonId)
    return {"ok": True, "vote": feedback.vote}


@router.post("/content/{slug}/private-feedback", status_code=status.HTTP_201_CREATED)
async def private_feedback(
    slug: str,
    request: Request,
    body: dict[str, Any] = Body(default={}),
    db: DBSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    feedback_service.submit_private_feedback(
        db,
        slug,
        body,
        ip=get_client_ip(request)[0],
        user_agent=request.headers.get("user-agent"),
        page_url=request.headers.get("referer"),
        user=user,
    )
    return {"ok": True}


@router.get("/idea-packs")
async def list_idea_packs(db: DBSession = Depends(get_db)):
    return {"packs": [idea_pack_service.serialize_public_pack(p) for p in idea_pack_service.list_published_packs(db)]}


@router.get("/public/settings")
async def public_settings(
    keys: Optional[str] = Query(default=None),
    db: DBSession = Depends(get_db),
):
    """Only allowlisted keys are returned; anything else is silently dropped."""
    return get_public_settings(db, keys)
