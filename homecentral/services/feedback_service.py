"""Reader feedback: public votes, private messages and the admin dashboard."""

import hashlib
import math
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from homecentral.config import get_settings
from homecentral.core.exceptions import BadRequestError, RateLimitedError
from homecentral.core.logging import get_logger
from homecentral.core.time import isoformat, utcnow
from homecentral.db.models import Content, ContentFeedback, ContentPrivateFeedback, User
from homecentral.services.content_service import get_published_content

logger = get_logger(__name__)

VOTES = frozenset({"UP", "DOWN"})
PRIVATE_FEEDBACK_PAGE_SIZE = 20
MAX_MESSAGE_LENGTH = 5000


def hash_ip(ip: str) -> str:
    """Daily-salted IP hash; raw addresses are never stored."""
    day = utcnow().strftime("%Y-%m-%d")
    return hashlib.sha256(f"{ip}:{day}".encode()).hexdigest()


def record_vote(
    db: DBSession,
    slug: str,
    vote: Any,
    user: Optional[User] = None,
    anon_id: Optional[str] = None,
) -> ContentFeedback:
    """Upsert a vote keyed by user when signed in, otherwise by anonymous id."""
    if vote not in VOTES:
        raise BadRequestError("Invalid vote")
    content = get_published_content(db, slug)

    query = db.query(ContentFeedback).filter(ContentFeedback.content_id == content.id)
    if user is not None:
        query = query.filter(ContentFeedback.user_id == user.id)
    elif anon_id:
        query = query.filter(ContentFeedback.anon_id == anon_id, ContentFeedback.user_id.is_(None))
    else:
        raise BadRequestError("Missing identifier")

    feedback = query.first()
    if feedback is None:
        feedback = ContentFeedback(
            content_id=content.id,
            user_id=user.id if user is not None else None,
            anon_id=None if user is not None else anon_id,
            vote=vote,
        )
        db.add(feedback)
    else:
        feedback.vote = vote
    db.commit()
    return feedback


def submit_private_feedback(
    db: DBSession,
    slug: str,
    body: dict[str, Any],
    ip: str,
    user_agent: Optional[str] = None,
    page_url: Optional[str] = None,
    user: Optional[User] = None,
) -> ContentPrivateFeedback:
    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise BadRequestError("Message required")
    content = get_published_content(db, slug)

    ip_hash = hash_ip(ip)
    since = utcnow() - timedelta(hours=1)
    recent = (
        db.query(func.count(ContentPrivateFeedback.id))
        .filter(
            ContentPrivateFeedback.content_id == content.id,
            ContentPrivateFeedback.ip_hash == ip_hash,
            ContentPrivateFeedback.created_at >= since,
        )
        .scalar()
    )
    if recent >= get_settings().private_feedback_per_hour:
        logger.warning("Private feedback rate limited", data={"content_id": content.id})
        raise RateLimitedError("Too many submissions. Try again later.")

    vote_context = body.get("voteContext")
    feedback = ContentPrivateFeedback(
        content_id=content.id,
        user_id=user.id if user is not None else None,
        anon_id=body.get("anonId") if isinstance(body.get("anonId"), str) else None,
        message=message.strip()[:MAX_MESSAGE_LENGTH],
        name=(body.get("name") or None) if isinstance(body.get("name"), str) else None,
        email=(body.get("email") or None) if isinstance(body.get("email"), str) else None,
        vote_context=vote_context if vote_context in VOTES else None,
        ip_hash=ip_hash,
        user_agent=(user_agent or "")[:512] or None,
        page_url=(page_url or "")[:1024] or None,
    )
    db.add(feedback)
    db.commit()
    return feedback


def get_feedback_dashboard(db: DBSession, page: int = 1) -> dict[str, Any]:
    """Vote totals per content plus a page of private messages."""
    page = max(page, 1)
    counts: dict[str, dict[str, int]] = {}
    rows = (
        db.query(ContentFeedback.content_id, ContentFeedback.vote, func.count(ContentFeedback.id))
        .group_by(ContentFeedback.content_id, ContentFeedback.vote)
        .all()
    )
    for content_id, vote, count in rows:
        entry = counts.setdefault(content_id, {"up": 0, "down": 0})
        entry["up" if vote == "UP" else "down"] += count

    contents = {
        c.id: c for c in db.query(Content).filter(Content.id.in_(list(counts))).all()
    } if counts else {}
    aggregated = [
        {
            "content": {
                "id": content.id,
                "title": content.title,
                "slug": content.slug,
                "contentType": content.content_type,
            },
            **counts[content_id],
        }
        for content_id, content in contents.items()
    ]
    aggregated.sort(key=lambda entry: entry["up"] + entry["down"], reverse=True)

    total_private = db.query(func.count(ContentPrivateFeedback.id)).scalar() or 0
    private_rows = (
        db.query(ContentPrivateFeedback)
        .order_by(ContentPrivateFeedback.created_at.desc())
        .offset((page - 1) * PRIVATE_FEEDBACK_PAGE_SIZE)
        .limit(PRIVATE_FEEDBACK_PAGE_SIZE)
        .all()
    )
    return {
        "aggregated": aggregated,
        "privateFeedback": [
            {
                "id": fb.id,
                "message": fb.message,
                "name": fb.name,
                "email": fb.email,
                "voteContext": fb.vote_context,
                "pageUrl": fb.page_url,
                "createdAt": isoformat(fb.created_at),
                "content": {"id": fb.content.id, "title": fb.content.title, "slug": fb.content.slug}
                if fb.content
                else None,
            }
            for fb in private_rows
        ],
        "totalPrivate": total_private,
        "page": page,
        "totalPages": max(1, math.ceil(total_private / PRIVATE_FEEDBACK_PAGE_SIZE)),
    }
