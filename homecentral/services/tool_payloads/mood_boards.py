"""Mood boards payload (version 1): boards holding saved ideas."""

from typing import Annotated, Any, Literal, Optional

from pydantic import Field

from homecentral.services.tool_payloads.common import (
    LenientModel,
    list_or_empty,
    nonempty_str_or_none,
    now_iso,
    objects_only,
    prefixed_id,
    str_or,
)


def _idea_id() -> str:
    return prefixed_id("idea")


def _board_id() -> str:
    return prefixed_id("board")


class Idea(LenientModel):
    id: Annotated[str, str_or(_idea_id)] = Field(default_factory=_idea_id)
    name: Annotated[str, str_or(lambda: "Untitled")] = "Untitled"
    notes: Annotated[str, str_or(lambda: "")] = ""
    images: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)
    hero_image_id: Any = None
    source_url: Annotated[Optional[str], nonempty_str_or_none()] = None
    source_title: Annotated[Optional[str], nonempty_str_or_none()] = None
    tags: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class Board(LenientModel):
    id: Annotated[str, str_or(_board_id)] = Field(default_factory=_board_id)
    name: Annotated[str, str_or(lambda: "Untitled Board")] = "Untitled Board"
    ideas: Annotated[list[Idea], objects_only()] = Field(default_factory=list)
    comments: Annotated[list[Any], list_or_empty()] = Field(default_factory=list)
    created_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)
    updated_at: Annotated[str, str_or(now_iso)] = Field(default_factory=now_iso)


class MoodBoardsPayload(LenientModel):
    version: Literal[1] = 1
    boards: Annotated[list[Board], objects_only()] = Field(default_factory=list)


def coerce_mood_boards(raw: dict[str, Any]) -> dict[str, Any]:
    # Any incoming version is normalized to 1.
    return MoodBoardsPayload.model_validate({**raw, "version": 1}).to_payload()
