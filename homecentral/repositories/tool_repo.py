"""Tool instance repository."""

from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from homecentral.core.time import utcnow
from homecentral.db.models import ToolInstance


class StaleRevisionError(Exception):
    """A conditional tool write found a different revision than expected.

    The session holds a failed statement afterwards; callers roll back.
    """


@runtime_checkable
class ToolRepository(Protocol):
    def get(self, project_id: str, tool_key: str) -> Optional[ToolInstance]: ...
    def list_for_project(self, project_id: str) -> list[ToolInstance]: ...
    def save(
        self,
        project_id: str,
        tool_key: str,
        payload: Any,
        updated_by_id: Optional[str],
        expected_revision: Optional[int] = None,
    ) -> ToolInstance: ...


class SQLAlchemyToolRepository:
    def __init__(self, session: DBSession):
        self._session = session

    def get(self, project_id: str, tool_key: str) -> Optional[ToolInstance]:
        return (
            self._session.query(ToolInstance)
            .filter(ToolInstance.project_id == project_id, ToolInstance.tool_key == tool_key)
            .first()
        )

    def list_for_project(self, project_id: str) -> list[ToolInstance]:
        return (
            self._session.query(ToolInstance)
            .filter(ToolInstance.project_id == project_id)
            .order_by(ToolInstance.tool_key.asc())
            .all()
        )

    def save(
        self,
        project_id: str,
        tool_key: str,
        payload: Any,
        updated_by_id: Optional[str],
        expected_revision: Optional[int] = None,
    ) -> ToolInstance:
        """Write the instance as a compare-and-swap on ``revision``.

        ``expected_revision`` of 0 means no instance may exist yet; ``None``
        overwrites whatever is stored. The revision is bumped in the UPDATE
        statement itself, so two writers holding the same revision can never
        both succeed. Raises StaleRevisionError when the condition fails.
        """
        if expected_revision != 0:
            query = self._session.query(ToolInstance).filter(
                ToolInstance.project_id == project_id,
                ToolInstance.tool_key == tool_key,
            )
            if expected_revision is not None:
                query = query.filter(ToolInstance.revision == expected_revision)
            updated = query.update(
                {
                    ToolInstance.payload: payload,
                    ToolInstance.revision: ToolInstance.revision + 1,
                    ToolInstance.updated_by_id: updated_by_id,
                    ToolInstance.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
            if updated:
                return (
                    self._session.query(ToolInstance)
                    .populate_existing()
                    .filter(ToolInstance.project_id == project_id, ToolInstance.tool_key == tool_key)
                    .one()
                )
            if expected_revision is not None:
                raise StaleRevisionError(f"{tool_key} is no longer at revision {expected_revision}")

        instance = ToolInstance(
            project_id=project_id,
            tool_key=tool_key,
            payload=payload,
            revision=1,
            updated_by_id=updated_by_id,
        )
        self._session.add(instance)
        try:
            self._session.flush()
        except IntegrityError as exc:
            # Another writer created the instance first.
            raise StaleRevisionError(f"{tool_key} was created concurrently") from exc
        return instance
