"""FastAPI dependency factories for repository injection."""

from fastapi import Depends
from sqlalchemy.orm import Session as DBSession

from homecentral.db import get_db
from homecentral.repositories.invite_repo import SQLAlchemyInviteRepository
from homecentral.repositories.project_repo import SQLAlchemyProjectRepository
from homecentral.repositories.share_token_repo import SQLAlchemyShareTokenRepository
from homecentral.repositories.tool_repo import SQLAlchemyToolRepository


def get_project_repo(session: DBSession = Depends(get_db)) -> SQLAlchemyProjectRepository:
    return SQLAlchemyProjectRepository(session)


def get_tool_repo(session: DBSession = Depends(get_db)) -> SQLAlchemyToolRepository:
    return SQLAlchemyToolRepository(session)


def get_share_token_repo(session: DBSession = Depends(get_db)) -> SQLAlchemyShareTokenRepository:
    return SQLAlchemyShareTokenRepository(session)


def get_invite_repo(session: DBSession = Depends(get_db)) -> SQLAlchemyInviteRepository:
    return SQLAlchemyInviteRepository(session)
