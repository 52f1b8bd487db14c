"""Fix list ("punchlist") payload, version 3.

Items are kept as sent. Only the container shape and the item counter are
repaired.
"""

from typing import Any

PUNCHLIST_VERSION = 3
ITEM_STATUSES = frozenset({"OPEN", "ACCEPTED", "DONE"})


def _max_item_number(items: list[Any]) -> int:
    highest = 0
    for item in items:
        if isinstance(item, dict):
            number = item.get("itemNumber")
            if isinstance(number, int) and not isinstance(number, bool) and number > highest:
                highest = number
    return highest


def coerce_punchlist(raw: dict[str, Any]) -> dict[str, Any]:
    items = raw.get("items")
    if not isinstance(items, list):
        return {**raw, "items": [], "version": PUNCHLIST_VERSION, "nextItemNumber": 1}

    payload = dict(raw)
    # nextItemNumber must stay ahead of every number already handed out.
    next_number = payload.get("nextItemNumber")
    floor = _max_item_number(items) + 1
    if not isinstance(next_number, int) or isinstance(next_number, bool) or next_number < floor:
        payload["nextItemNumber"] = floor
    return payload
