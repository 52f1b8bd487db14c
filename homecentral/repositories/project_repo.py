"""Project, membership and tool access repository."""

from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from homecentral.db.models import Project, ProjectMember, ProjectToolAccess


@runtime_checkable
class ProjectRepository(Protocol):
    def get_by_id(self, id: str) -> Optional[Project]: ...
    def create(self, owner_id: str, name: str) -> Project: ...
    def update(self, id: str, **kwargs: Any) -> Optional[Project]: ...
    def delete(self, id: str) -> bool: ...
    def list_memberships(self, user_id: str) -> list[ProjectMember]: ...
    def get_membership(self, project_id: str, user_id: str) -> Optional[ProjectMember]: ...
    def add_member(self, project_id: str, user_id: str, role: str) -> ProjectMember: ...
    def remove_member(self, project_id: str, user_id: str) -> bool: ...
    def get_tool_access(self, project_id: str, tool_key: str, user_id: str) -> Optional[ProjectToolAccess]: ...
    def list_tool_access(self, project_id: str, tool_key: str) -> list[ProjectToolAccess]: ...
    def upsert_tool_access(
        self, project_id: str, tool_key: str, user_id: str, level: str, granted_by_id: Optional[str]
    ) -> ProjectToolAccess: ...
    def remove_tool_access(self, project_id: str, tool_key: str, user_id: str) -> bool: ...
    def count_tool_access_for_user(self, project_id: str, user_id: str) -> int: ...
    def count_edit_shares(self, project_id: str, tool_key: str) -> int: ...


class SQLAlchemyProjectRepository:
    def __init__(self, session: DBSession):
        self._session = session

    def get_by_id(self, id: str) -> Optional[Project]:
        return self._session.get(Project, id)

    def create(self, owner_id: str, name: str) -> Project:
        """Create a project together with its OWNER membership."""
        project = Project(user_id=owner_id, name=name, status="ACTIVE")
        self._session.add(project)
        self._session.flush()
        self._session.add(ProjectMember(project_id=project.id, user_id=owner_id, role="OWNER"))
        self._session.flush()
        return project

    def update(self, id: str, **kwargs: Any) -> Optional[Project]:
        project = self.get_by_id(id)
        if not project:
            return None
        for key, value in kwargs.items():
            if hasattr(project, key):
                setattr(project, key, value)
        self._session.flush()
        return project

    def delete(self, id: str) -> bool:
        project = self.get_by_id(id)
        if not project:
            return False
        self._session.delete(project)
        self._session.flush()
        return True

    def list_memberships(self, user_id: str) -> list[ProjectMember]:
        """Memberships of a user, oldest project first."""
        return (
            self._session.query(ProjectMember)
            .join(Project, Project.id == ProjectMember.project_id)
            .filter(ProjectMember.user_id == user_id)
            .order_by(Project.created_at.asc(), Project.id.asc())
            .all()
        )

    def get_membership(self, project_id: str, user_id: str) -> Optional[ProjectMember]:
        return (
            self._session.query(ProjectMember)
            .filter(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            .first()
        )

    def add_member(self, project_id: str, user_id: str, role: str) -> ProjectMember:
        member = ProjectMember(project_id=project_id, user_id=user_id, role=role)
        self._session.add(member)
        self._session.flush()
        return member

    def remove_member(self, project_id: str, user_id: str) -> bool:
        member = self.get_membership(project_id, user_id)
        if not member:
            return False
        self._session.delete(member)
        self._session.flush()
        return True

    def get_tool_access(self, project_id: str, tool_key: str, user_id: str) -> Optional[ProjectToolAccess]:
        return (
            self._session.query(ProjectToolAccess)
            .filter(
                ProjectToolAccess.project_id == project_id,
                ProjectToolAccess.tool_key == tool_key,
                ProjectToolAccess.user_id == user_id,
            )
            .first()
        )

    def list_tool_access(self, project_id: str, tool_key: str) -> list[ProjectToolAccess]:
        return (
            self._session.query(ProjectToolAccess)
            .filter(ProjectToolAccess.project_id == project_id, ProjectToolAccess.tool_key == tool_key)
            .order_by(ProjectToolAccess.created_at.asc())
            .all()
        )

    def upsert_tool_access(
        self, project_id: str, tool_key: str, user_id: str, level: str, granted_by_id: Optional[str]
    ) -> ProjectToolAccess:
        access = self.get_tool_access(project_id, tool_key, user_id)
        if access is None:
            access = ProjectToolAccess(
                project_id=project_id,
                tool_key=tool_key,
                user_id=user_id,
                level=level,
                granted_by_id=granted_by_id,
            )
            self._session.add(access)
        else:
            access.level = level
            access.granted_by_id = granted_by_id
        self._session.flush()
        return access

    def remove_tool_access(self, project_id: str, tool_key: str, user_id: str) -> bool:
        access = self.get_tool_access(project_id, tool_key, user_id)
        if not access:
            return False
        self._session.delete(access)
        self._session.flush()
        return True

    def count_tool_access_for_user(self, project_id: str, user_id: str) -> int:
        return (
            self._session.query(func.count(ProjectToolAccess.id))
            .filter(ProjectToolAccess.project_id == project_id, ProjectToolAccess.user_id == user_id)
            .scalar()
            or 0
        )

    def count_edit_shares(self, project_id: str, tool_key: str) -> int:
        """MEMBER users holding EDIT on a tool. Owners never count."""
        return (
            self._session.query(func.count(ProjectToolAccess.id))
            .join(
                ProjectMember,
                (ProjectMember.project_id == ProjectToolAccess.project_id)
                & (ProjectMember.user_id == ProjectToolAccess.user_id),
            )
            .filter(
                ProjectToolAccess.project_id == project_id,
                ProjectToolAccess.tool_key == tool_key,
                ProjectToolAccess.level == "EDIT",
                ProjectMember.role == "MEMBER",
            )
            .scalar()
            or 0
        )
