"""Python client helpers for the tool state API."""

from homecentral.client.tool_state import ToolStateSync

__all__ = ["ToolStateSync"]
