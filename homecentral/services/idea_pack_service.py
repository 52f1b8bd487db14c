"""Admin-managed finish decision idea packs."""

from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from homecentral.core.exceptions import BadRequestError, ConflictError, NotFoundError
from homecentral.core.time import isoformat
from homecentral.db.models import IdeaPack

PACK_STATUSES = frozenset({"DRAFT", "PUBLISHED", "ARCHIVED"})


def serialize_pack(pack: IdeaPack) -> dict[str, Any]:
    return {
        "id": pack.id,
        "packId": pack.pack_id,
        "label": pack.label,
        "description": pack.description or "",
        "author": pack.author,
        "roomTypes": pack.room_types or [],
        "decisions": pack.decisions or [],
        "status": pack.status,
        "sortOrder": pack.sort_order,
        "createdAt": isoformat(pack.created_at),
        "updatedAt": isoformat(pack.updated_at),
    }


def serialize_public_pack(pack: IdeaPack) -> dict[str, Any]:
    decisions = pack.decisions or []
    return {
        "id": pack.pack_id,
        "label": pack.label,
        "description": pack.description or "",
        "author": (pack.author or "hhc").lower(),
        "roomTypes": pack.room_types or [],
        "decisionTitles": [d.get("title", "") for d in decisions if isinstance(d, dict)],
        "decisions": decisions,
    }


def list_packs(db: DBSession, status: Optional[str] = None) -> list[IdeaPack]:
    query = db.query(IdeaPack)
    if status:
        query = query.filter(IdeaPack.status == status)
    return query.order_by(IdeaPack.sort_order.asc(), IdeaPack.updated_at.desc()).all()


def list_published_packs(db: DBSession) -> list[IdeaPack]:
    return (
        db.query(IdeaPack)
        .filter(IdeaPack.status == "PUBLISHED")
        .order_by(IdeaPack.sort_order.asc())
        .all()
    )


def get_pack(db: DBSession, pack_id: str) -> IdeaPack:
    pack = db.get(IdeaPack, pack_id)
    if pack is None:
        raise NotFoundError("Idea pack not found")
    return pack


def _list_field(value: Any, name: str) -> list:
    if not isinstance(value, list):
        raise BadRequestError(f"{name} must be a list")
    return value


def _status_field(value: Any) -> str:
    if value not in PACK_STATUSES:
        raise BadRequestError(f"Invalid status: {value}")
    return value


def create_pack(db: DBSession, body: dict[str, Any]) -> IdeaPack:
    pack_key = body.get("packId")
    label = body.get("label")
    if not pack_key or not label:
        raise BadRequestError("packId and label are required")
    if db.query(IdeaPack).filter(IdeaPack.pack_id == pack_key).first() is not None:
        raise ConflictError(f'Pack with id "{pack_key}" already exists')

    pack = IdeaPack(
        pack_id=pack_key,
        label=label,
        description=body.get("description") or "",
        author=body.get("author") or "HHC",
        room_types=_list_field(body.get("roomTypes", []), "roomTypes"),
        decisions=_list_field(body.get("decisions", []), "decisions"),
        status=_status_field(body.get("status") or "DRAFT"),
        sort_order=body.get("sortOrder") if isinstance(body.get("sortOrder"), int) else 0,
    )
    db.add(pack)
    db.commit()
    db.refresh(pack)
    return pack


def update_pack(db: DBSession, pack_id: str, body: dict[str, Any]) -> IdeaPack:
    pack = get_pack(db, pack_id)
    if body.get("label") is not None:
        pack.label = body["label"]
    if "description" in body:
        pack.description = body["description"] or ""
    if body.get("author") is not None:
        pack.author = body["author"]
    if "roomTypes" in body:
        pack.room_types = _list_field(body["roomTypes"], "roomTypes")
    if "decisions" in body:
        pack.decisions = _list_field(body["decisions"], "decisions")
    if body.get("status") is not None:
        pack.status = _status_field(body["status"])
    if isinstance(body.get("sortOrder"), int):
        pack.sort_order = body["sortOrder"]
    db.commit()
    db.refresh(pack)
    return pack


def delete_pack(db: DBSession, pack_id: str) -> None:
    pack = get_pack(db, pack_id)
    db.delete(pack)
    db.commit()
