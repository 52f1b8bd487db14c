"""Public share token repository."""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy.orm import Session as DBSession

from homecentral.core.time import utcnow
from homecentral.db.models import ToolShareToken


@runtime_checkable
class ShareTokenRepository(Protocol):
    def create(
        self,
        token: str,
        project_id: str,
        tool_key: str,
        created_by_id: str,
        settings: dict[str, Any],
        expires_at: datetime,
    ) -> ToolShareToken: ...
    def get_by_token(self, token: str) -> Optional[ToolShareToken]: ...
    def get_for_tool(self, id: str, project_id: str, tool_key: str) -> Optional[ToolShareToken]: ...
    def list_active(self, project_id: str, tool_key: str) -> list[ToolShareToken]: ...
    def revoke(self, share_token: ToolShareToken) -> ToolShareToken: ...


class SQLAlchemyShareTokenRepository:
    def __init__(self, session: DBSession):
        self._session = session

    def create(
        self,
        token: str,
        project_id: str,
        tool_key: str,
        created_by_id: str,
        settings: dict[str, Any],
        expires_at: datetime,
    ) -> ToolShareToken:
        record = ToolShareToken(
            token=token,
            project_id=project_id,
            tool_key=tool_key,
            created_by_id=created_by_id,
            settings=settings,
            expires_at=expires_at,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get_by_token(self, token: str) -> Optional[ToolShareToken]:
        return self._session.query(ToolShareToken).filter(ToolShareToken.token == token).first()

    def get_for_tool(self, id: str, project_id: str, tool_key: str) -> Optional[ToolShareToken]:
        return (
            self._session.query(ToolShareToken)
            .filter(
                ToolShareToken.id == id,
                ToolShareToken.project_id == project_id,
                ToolShareToken.tool_key == tool_key,
            )
            .first()
        )

    def list_active(self, project_id: str, tool_key: str) -> list[ToolShareToken]:
        return (
            self._session.query(ToolShareToken)
            .filter(
                ToolShareToken.project_id == project_id,
                ToolShareToken.tool_key == tool_key,
                ToolShareToken.revoked_at.is_(None),
                ToolShareToken.expires_at > utcnow(),
            )
            .order_by(ToolShareToken.created_at.desc())
            .all()
        )

    def revoke(self, share_token: ToolShareToken) -> ToolShareToken:
        share_token.revoked_at = utcnow()
        self._session.flush()
        return share_token
