"""Static tool and renovation-stage metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ToolRegistryEntry:
    tool_key: str
    href: str
    title: str
    description: str
    stage: str


@dataclass(frozen=True)
class StageOption:
    id: str
    label: str
    description: str


TOOL_REGISTRY: tuple[ToolRegistryEntry, ...] = (
    ToolRegistryEntry(
        tool_key="mood_boards",
        href="/app/tools/mood-boards",
        title="Mood Boards",
        description="Save ideas from anywhere and group them into boards for each space.",
        stage="Plan",
    ),
    ToolRegistryEntry(
        tool_key="before_you_sign",
        href="/app/tools/before-you-sign",
        title="Contract Checklist",
        description="Compare contractors and bids using the same criteria so nothing gets missed.",
        stage="Select the Right Pro",
    ),
    ToolRegistryEntry(
        tool_key="finish_decisions",
        href="/app/tools/finish-decisions",
        title="Selections Board",
        description="Track every finish selection, option, and status in one place.",
        stage="Choose Your Finishes",
    ),
    ToolRegistryEntry(
        tool_key="punchlist",
        href="/app/tools/punchlist",
        title="Fix List",
        description="Track fixes and share with your contractor.",
        stage="Build",
    ),
)

TOOL_KEYS: frozenset[str] = frozenset(entry.tool_key for entry in TOOL_REGISTRY)

# Tools whose state can be published through a public share link.
SHAREABLE_TOOL_KEYS: frozenset[str] = frozenset({"punchlist", "mood_boards", "finish_decisions"})

STAGE_OPTIONS: tuple[StageOption, ...] = (
    StageOption("plan", "Planning", "I'm figuring out what to do and how much to spend"),
    StageOption("hire-contract", "Hiring a Contractor", "I'm comparing bids or about to sign a contract"),
    StageOption("permits-schedule", "Permits & Scheduling", "I'm waiting on permits or setting the timeline"),
    StageOption("decide-order", "Choosing Finishes", "I'm selecting materials, fixtures, and colors"),
    StageOption("build-closeout", "Building", "Construction is underway or I'm doing my final walkthrough"),
)

VALID_STAGE_IDS: frozenset[str] = frozenset(option.id for option in STAGE_OPTIONS)

# First tool is the primary recommendation for the stage.
STAGE_TOOL_PRIORITY: dict[str, list[str]] = {
    "plan": ["mood_boards", "finish_decisions", "before_you_sign", "punchlist"],
    "hire-contract": ["before_you_sign", "mood_boards", "finish_decisions", "punchlist"],
    "permits-schedule": ["finish_decisions", "before_you_sign", "mood_boards", "punchlist"],
    "decide-order": ["finish_decisions", "mood_boards", "before_you_sign", "punchlist"],
    "build-closeout": ["punchlist", "finish_decisions", "mood_boards", "before_you_sign"],
}


def get_tool(tool_key: str) -> Optional[ToolRegistryEntry]:
    for entry in TOOL_REGISTRY:
        if entry.tool_key == tool_key:
            return entry
    return None


def is_valid_tool_key(tool_key: str) -> bool:
    return tool_key in TOOL_KEYS


def is_shareable_tool(tool_key: str) -> bool:
    return tool_key in SHAREABLE_TOOL_KEYS


def get_tool_priority(stage_id: Optional[str]) -> Optional[list[str]]:
    """Tool priority order for a stage, or None if the stage is unknown."""
    if not stage_id:
        return None
    priority = STAGE_TOOL_PRIORITY.get(stage_id)
    return list(priority) if priority is not None else None


def get_stage_label(stage_id: Optional[str]) -> Optional[str]:
    for option in STAGE_OPTIONS:
        if option.id == stage_id:
            return option.label
    return None
