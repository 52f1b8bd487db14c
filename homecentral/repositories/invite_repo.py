"""Project invite repository."""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from homecentral.db.models import ProjectInvite


@runtime_checkable
class InviteRepository(Protocol):
    def create(
        self,
        token: str,
        project_id: str,
        tool_key: str,
        email: str,
        level: str,
        invited_by_id: str,
        expires_at: datetime,
    ) -> ProjectInvite: ...
    def get_by_id(self, id: str) -> Optional[ProjectInvite]: ...
    def get_by_token(self, token: str) -> Optional[ProjectInvite]: ...
    def find_pending(self, project_id: str, tool_key: str, email: str) -> Optional[ProjectInvite]: ...
    def list_pending(self, project_id: str, tool_key: str) -> list[ProjectInvite]: ...
    def count_pending_edit(self, project_id: str, tool_key: str) -> int: ...
    def set_status(self, invite: ProjectInvite, status: str) -> ProjectInvite: ...


class SQLAlchemyInviteRepository:
    def __init__(self, session: DBSession):
        self._session = session

    def create(
        self,
        token: str,
        project_id: str,
        tool_key: str,
        email: str,
        level: str,
        invited_by_id: str,
        expires_at: datetime,
    ) -> ProjectInvite:
        invite = ProjectInvite(
            token=token,
            project_id=project_id,
            tool_key=tool_key,
            email=email,
            level=level,
            status="PENDING",
            invited_by_id=invited_by_id,
            expires_at=expires_at,
        )
        self._session.add(invite)
        self._session.flush()
        return invite

    def get_by_id(self, id: str) -> Optional[ProjectInvite]:
        return self._session.get(ProjectInvite, id)

    def get_by_token(self, token: str) -> Optional[ProjectInvite]:
        return self._session.query(ProjectInvite).filter(ProjectInvite.token == token).first()

    def find_pending(self, project_id: str, tool_key: str, email: str) -> Optional[ProjectInvite]:
        return (
            self._session.query(ProjectInvite)
            .filter(
                ProjectInvite.project_id == project_id,
                ProjectInvite.tool_key == tool_key,
                ProjectInvite.email == email,
                ProjectInvite.status == "PENDING",
            )
            .first()
        )

    def list_pending(self, project_id: str, tool_key: str) -> list[ProjectInvite]:
        return (
            self._session.query(ProjectInvite)
            .filter(
                ProjectInvite.project_id == project_id,
                ProjectInvite.tool_key == tool_key,
                ProjectInvite.status == "PENDING",
            )
            .order_by(ProjectInvite.created_at.asc())
            .all()
        )

    def count_pending_edit(self, project_id: str, tool_key: str) -> int:
        return (
            self._session.query(func.count(ProjectInvite.id))
            .filter(
                ProjectInvite.project_id == project_id,
                ProjectInvite.tool_key == tool_key,
                ProjectInvite.level == "EDIT",
                ProjectInvite.status == "PENDING",
            )
            .scalar()
            or 0
        )

    def set_status(self, invite: ProjectInvite, status: str) -> ProjectInvite:
        invite.status = status
        self._session.flush()
        return invite
