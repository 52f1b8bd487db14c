"""Contract checklist ("before you sign") payload, version 1."""

from typing import Any

BEFORE_YOU_SIGN_VERSION = 1


def coerce_before_you_sign(raw: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(raw.get("contractors"), list):
        return {**raw, "contractors": [], "version": BEFORE_YOU_SIGN_VERSION}
    return raw
