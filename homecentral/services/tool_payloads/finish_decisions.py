"""Finish decisions ("Selections Board") payload versions and migrations.

Three wire versions exist:

- V1: a flat ``items`` list, one item per product, grouped by free-text room
  and category.
- V2: normalized ``rooms``, ``decisions`` and ``options`` lists linked by id.
- V3 (current): rooms nest decisions, decisions nest options.

Each version is a pydantic model discriminated on ``version``. Migrations are
pure functions from one version to the next and ``upgrade_to_latest`` composes
them. A payload with no usable version is V1 if it carries ``items`` and V3
otherwise.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from homecentral.services.tool_payloads.common import (
    LenientModel,
    list_or_empty,
    nonempty_str_or_none,
    new_uuid,
    now_iso,
    objects_only,
    one_of,
    str_or,
)

LATEST_VERSION = 3

V1_STATUSES = frozenset({"deciding", "awaiting_approval", "final", "complete"})
V2_STATUSES = frozenset({"exploring", "comparing", "decided", "ordered", "complete"})
V3_STATUSES = frozenset({"deciding", "shortlist", "selected", "ordered", "done"})

V1_TO_V2_STATUS = {
    "deciding": "exploring",
    "awaiting_approval": "comparing",
    "final": "decided",
    "complete": "complete",
}

V2_TO_V3_STATUS = {
    "exploring": "deciding",
    "comparing": "shortlist",
    "decided": "selected",
    "ordered": "ordered",
    "complete": "done",
}

# V3 keeps these V2 room types; the rest collapse to "other".
V3_KEPT_ROOM_TYPES = frozenset({"kitchen", "bathroom"})


# --- V1 -------------------------------------------------------------------


class V1Item(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    room: Annotated[str, str_or(lambda: "")] = ""
    category: Annotated[str, str_or(lambda: "Other")] = "Other"
    name: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    specs: Annotated[str, str_or(lambda: "")] = ""
    where: Annotated[str, str_or(lambda: "")] = ""
    status: Annotated[str, one_of(V1_STATUSES, "deciding")] = "deciding"
    links: Annotated[list[dict[str, Any]], objects_only()] = Field(default_factory=list)
    notes: Annotated[str, str_or(lambda: "")] = ""
    created_at: Annotated[str, str_or(lambda: "")] = ""
    updated_at: Annotated[str, str_or(lambda: "")] = ""


class FinishDecisionsV1(LenientModel):
    version: Literal[1] = 1
    items: Annotated[list[V1Item], objects_only()] = Field(default_factory=list)


# --- V2 -------------------------------------------------------------------


class V2Room(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    name: Annotated[str, str_or(lambda: "Unnamed Room")] = "Unnamed Room"
    type: Annotated[str, str_or(lambda: "other")] = "other"
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class V2Decision(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    room_id: Annotated[str, str_or(lambda: "")] = ""
    category: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    status: Annotated[str, one_of(V2_STATUSES, "exploring")] = "exploring"
    selected_option_id: Annotated[Optional[str], nonempty_str_or_none()] = None
    notes: Annotated[str, str_or(lambda: "")] = ""
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class V2Option(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    decision_id: Annotated[str, str_or(lambda: "")] = ""
    name: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    specs: Annotated[str, str_or(lambda: "")] = ""
    where: Annotated[str, str_or(lambda: "")] = ""
    estimated_cost: Annotated[str, str_or(lambda: "")] = ""
    links: Annotated[list[dict[str, Any]], objects_only()] = Field(default_factory=list)
    notes: Annotated[str, str_or(lambda: "")] = ""
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class FinishDecisionsV2(LenientModel):
    version: Literal[2] = 2
    rooms: Annotated[list[V2Room], objects_only()] = Field(default_factory=list)
    decisions: Annotated[list[V2Decision], objects_only()] = Field(default_factory=list)
    options: Annotated[list[V2Option], objects_only()] = Field(default_factory=list)


# --- V3 -------------------------------------------------------------------


class OptionV3(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    name: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    notes: Annotated[str, str_or(lambda: "")] = ""
    urls: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class DecisionV3(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    title: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    status: Annotated[str, one_of(V3_STATUSES, "deciding")] = "deciding"
    notes: Annotated[str, str_or(lambda: "")] = ""
    options: Annotated[list[OptionV3], objects_only()] = Field(default_factory=list)
    comments: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class RoomV3(LenientModel):
    id: Annotated[str, str_or(new_uuid)] = Field(default_factory=new_uuid)
    type: Annotated[str, str_or(lambda: "other")] = "other"
    name: Annotated[str, str_or(lambda: "Unnamed Room")] = "Unnamed Room"
    decisions: Annotated[list[DecisionV3], objects_only()] = Field(default_factory=list)
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class FinishDecisionsV3(LenientModel):
    version: Literal[3] = 3
    rooms: Annotated[list[RoomV3], objects_only()] = Field(default_factory=list)
    # Idea packs the project has imported
    owned_kit_ids: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)


FinishDecisionsPayload = Annotated[
    Union[FinishDecisionsV1, FinishDecisionsV2, FinishDecisionsV3],
    Field(discriminator="version"),
]

_payload_adapter: TypeAdapter = TypeAdapter(FinishDecisionsPayload)


def detect_version(raw: dict[str, Any]) -> int:
    """Decide which schema version a raw payload follows."""
    version = raw.get("version")
    if isinstance(version, bool):
        version = None
    if isinstance(version, (int, float)):
        if version >= LATEST_VERSION:
            return LATEST_VERSION
        if version in (1, 2):
            return int(version)
    # Unversioned: legacy item lists are V1, everything else is treated as current.
    if isinstance(raw.get("items"), list) and "rooms" not in raw:
        return 1
    return LATEST_VERSION


def parse_payload(raw: dict[str, Any]) -> Union[FinishDecisionsV1, FinishDecisionsV2, FinishDecisionsV3]:
    """Validate a raw dict into the model for its detected version."""
    return _payload_adapter.validate_python({**raw, "version": detect_version(raw)})


# --- Migrations -----------------------------------------------------------


def _join_notes(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part).strip()


def _links_to_urls(links: list[dict[str, Any]]) -> list[dict[str, Any]]:
    urls = []
    for link in links:
        url = link.get("url")
        if not isinstance(url, str) or not url:
            continue
        link_id = link.get("id")
        urls.append({"id": link_id if isinstance(link_id, str) else new_uuid(), "url": url})
    return urls


def migrate_v1_to_v2(v1: FinishDecisionsV1) -> FinishDecisionsV2:
    """Group V1 items into rooms (by room name) and decisions (by category)."""
    rooms: dict[str, V2Room] = {}
    decisions: dict[tuple[str, str], V2Decision] = {}
    options: list[V2Option] = []

    for item in v1.items:
        room_name = item.room or "Other"
        room = rooms.get(room_name)
        if room is None:
            room = V2Room(name=room_name, type="other", created_at=item.created_at or now_iso())
            rooms[room_name] = room

        key = (room_name, item.category)
        decision = decisions.get(key)
        if decision is None:
            # The first item in a category decides the category's status.
            decision = V2Decision(
                room_id=room.id,
                category=item.category,
                status=V1_TO_V2_STATUS.get(item.status, "exploring"),
                created_at=item.created_at or now_iso(),
                updated_at=item.updated_at or now_iso(),
            )
            decisions[key] = decision

        options.append(
            V2Option(
                id=item.id,
                decision_id=decision.id,
                name=item.name,
                specs=item.specs,
                where=item.where,
                links=item.links,
                notes=item.notes,
                created_at=item.created_at or now_iso(),
                updated_at=item.updated_at or now_iso(),
            )
        )

    return FinishDecisionsV2(
        rooms=list(rooms.values()),
        decisions=list(decisions.values()),
        options=options,
    )


def migrate_v2_to_v3(v2: FinishDecisionsV2) -> FinishDecisionsV3:
    """Nest V2 decisions and options under their rooms."""
    options_by_decision: dict[str, list[V2Option]] = {}
    for option in v2.options:
        options_by_decision.setdefault(option.decision_id, []).append(option)

    decisions_by_room: dict[str, list[V2Decision]] = {}
    for decision in v2.decisions:
        decisions_by_room.setdefault(decision.room_id, []).append(decision)

    rooms: list[RoomV3] = []
    for room in v2.rooms:
        decisions: list[DecisionV3] = []
        for decision in decisions_by_room.get(room.id, []):
            options = []
            for option in options_by_decision.get(decision.id, []):
                migrated = OptionV3(
                    id=option.id,
                    name=option.name,
                    notes=_join_notes(
                        option.specs,
                        option.notes,
                        f"Where: {option.where}" if option.where else "",
                        f"Cost: {option.estimated_cost}" if option.estimated_cost else "",
                    ),
                    urls=_links_to_urls(option.links),
                    created_at=option.created_at,
                    updated_at=option.updated_at,
                    isSelected=decision.selected_option_id == option.id,
                )
                options.append(migrated)

            decisions.append(
                DecisionV3(
                    id=decision.id,
                    title=decision.category,
                    status=V2_TO_V3_STATUS.get(decision.status, "deciding"),
                    notes=decision.notes,
                    options=options,
                    created_at=decision.created_at,
                    updated_at=decision.updated_at,
                )
            )

        rooms.append(
            RoomV3(
                id=room.id,
                type=room.type if room.type in V3_KEPT_ROOM_TYPES else "other",
                name=room.name,
                decisions=decisions,
                created_at=room.created_at,
                updated_at=now_iso(),
            )
        )

    return FinishDecisionsV3(rooms=rooms)


def upgrade_to_latest(raw: dict[str, Any]) -> FinishDecisionsV3:
    """Parse any known version and run the migration chain up to V3."""
    payload = parse_payload(raw)
    if isinstance(payload, FinishDecisionsV1):
        payload = migrate_v1_to_v2(payload)
    if isinstance(payload, FinishDecisionsV2):
        payload = migrate_v2_to_v3(payload)
    return payload


def coerce_finish_decisions(raw: dict[str, Any]) -> dict[str, Any]:
    """Return a V3 payload dict for any finish decisions payload."""
    return upgrade_to_latest(raw).to_payload()
