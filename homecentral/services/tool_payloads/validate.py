"""Per-tool payload validation and coercion for server-side writes.

- Coerce over reject: fix what can be fixed, only reject unusable shapes.
- Backward compatible: old payloads load and are upgraded in place.
- No user content in logs.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from homecentral.core.logging import get_logger
from homecentral.services.tool_payloads.before_you_sign import coerce_before_you_sign
from homecentral.services.tool_payloads.finish_decisions import coerce_finish_decisions
from homecentral.services.tool_payloads.mood_boards import coerce_mood_boards
from homecentral.services.tool_payloads.punchlist import coerce_punchlist

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    valid: bool
    payload: dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


Coercer = Callable[[dict[str, Any]], dict[str, Any]]

VALIDATORS: dict[str, Coercer] = {
    "finish_decisions": coerce_finish_decisions,
    "mood_boards": coerce_mood_boards,
    "punchlist": coerce_punchlist,
    "before_you_sign": coerce_before_you_sign,
}


def validate_and_coerce_tool_payload(tool_key: str, incoming: Any) -> ValidationResult:
    """Validate and coerce an incoming tool payload before persisting."""
    if not isinstance(incoming, dict):
        logger.info("Tool payload rejected", data={"tool_key": tool_key, "reason": "payload_not_object"})
        return ValidationResult(valid=False, reason="payload_not_object")

    coercer = VALIDATORS.get(tool_key)
    if coercer is None:
        return ValidationResult(valid=True, payload=incoming)

    return ValidationResult(valid=True, payload=coercer(incoming))
