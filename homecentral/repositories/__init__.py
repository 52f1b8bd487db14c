"""Repository layer: Protocol interfaces plus SQLAlchemy implementations.

Repositories only ``flush``; services decide when to commit.
"""

from homecentral.repositories.invite_repo import InviteRepository, SQLAlchemyInviteRepository
from homecentral.repositories.project_repo import ProjectRepository, SQLAlchemyProjectRepository
from homecentral.repositories.share_token_repo import (
    ShareTokenRepository,
    SQLAlchemyShareTokenRepository,
)
from homecentral.repositories.tool_repo import SQLAlchemyToolRepository, StaleRevisionError, ToolRepository

__all__ = [
    "InviteRepository", "SQLAlchemyInviteRepository",
    "ProjectRepository", "SQLAlchemyProjectRepository",
    "ShareTokenRepository", "SQLAlchemyShareTokenRepository",
    "ToolRepository", "SQLAlchemyToolRepository", "StaleRevisionError",
]
