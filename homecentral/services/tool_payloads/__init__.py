"""Tool payload validation, coercion and version migration."""

from homecentral.services.tool_payloads.finish_decisions import (
    FinishDecisionsV1,
    FinishDecisionsV2,
    FinishDecisionsV3,
    detect_version,
    migrate_v1_to_v2,
    migrate_v2_to_v3,
    upgrade_to_latest,
)
from homecentral.services.tool_payloads.validate import (
    ValidationResult,
    validate_and_coerce_tool_payload,
)

__all__ = [
    "FinishDecisionsV1",
    "FinishDecisionsV2",
    "FinishDecisionsV3",
    "ValidationResult",
    "detect_version",
    "migrate_v1_to_v2",
    "migrate_v2_to_v3",
    "upgrade_to_latest",
    "validate_and_coerce_tool_payload",
]
