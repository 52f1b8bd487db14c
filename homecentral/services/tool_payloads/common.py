"""Shared coercion helpers for tool payload models.

Every model here is lenient: unknown keys are kept, wrong-typed values fall
back to defaults instead of failing validation.
"""

from __future__ import annotations

import secrets
import time
import uuid
from typing import Any, Callable

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from homecentral.core.time import utcnow


def now_iso() -> str:
    return utcnow().isoformat(timespec="milliseconds") + "Z"


def new_uuid() -> str:
    return str(uuid.uuid4())


def prefixed_id(prefix: str) -> str:
    """``<prefix>_<epoch ms>_<4 random chars>``, the id shape used by boards and ideas."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(2)}"


def str_or(default: Callable[[], str]) -> BeforeValidator:
    return BeforeValidator(lambda v: v if isinstance(v, str) else default())


def nonempty_str_or_none() -> BeforeValidator:
    return BeforeValidator(lambda v: v if isinstance(v, str) and v != "" else None)


def list_or_empty() -> BeforeValidator:
    return BeforeValidator(lambda v: v if isinstance(v, list) else [])


def objects_only() -> BeforeValidator:
    """Keep only dict entries of a list; anything else becomes an empty list."""
    return BeforeValidator(lambda v: [x for x in v if isinstance(x, dict)] if isinstance(v, list) else [])


def one_of(valid: frozenset[str], default: str) -> BeforeValidator:
    return BeforeValidator(lambda v: v if isinstance(v, str) and v in valid else default)


class LenientModel(BaseModel):
    """camelCase wire model that round-trips unknown fields."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
