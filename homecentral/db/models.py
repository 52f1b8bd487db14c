"""SQLAlchemy database models."""

import secrets

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from homecentral.core.time import utcnow
from homecentral.db.database import Base


def generate_id() -> str:
    """Generate a unique ID."""
    return secrets.token_urlsafe(16)


# --- Accounts -------------------------------------------------------------


class User(Base):
    """User account, created on first Google sign-in."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    image = Column(String(1024), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Not a foreign key: membership is re-checked on every read.
    current_project_id = Column(String(32), nullable=True)
    onboarding_completed_at = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("ProjectMember", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.id[:8]}...>"


class Session(Base):
    """User session model for authentication."""

    __tablename__ = "sessions"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    csrf_token = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="sessions")

    def __repr__(self) -> str:
        return f"<Session {self.id[:8]}...>"


class AdminAllowlist(Base):
    """Database-managed admin access (in addition to ADMIN_ALLOWLIST)."""

    __tablename__ = "admin_allowlist"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(16), nullable=False, default="EDITOR")
    added_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class EarlyAccessAllowlist(Base):
    """Emails allowed to sign in while REQUIRE_WHITELIST is on."""

    __tablename__ = "early_access_allowlist"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    note = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AuditLog(Base):
    """Persistent audit log entries."""

    __tablename__ = "audit_logs"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    path = Column(String(512), nullable=True)
    method = Column(String(16), nullable=True)
    data_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)


# --- Projects and tools ---------------------------------------------------


class Project(Base):
    """A renovation project owning tool instances."""

    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    status = Column(String(16), nullable=False, default="ACTIVE")
    current_stage = Column(String(32), nullable=True)
    active_tool_keys = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    tool_access = relationship("ProjectToolAccess", cascade="all, delete-orphan")
    invites = relationship("ProjectInvite", back_populates="project", cascade="all, delete-orphan")
    tool_instances = relationship("ToolInstance", back_populates="project", cascade="all, delete-orphan")
    share_tokens = relationship("ToolShareToken", back_populates="project", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Project {self.id[:8]}...>"


class ProjectMember(Base):
    """Membership of a user in a project (OWNER or MEMBER)."""

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),)

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default="MEMBER")
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="memberships")


class ProjectToolAccess(Base):
    """Per-tool access level for a MEMBER (owners have implicit EDIT)."""

    __tablename__ = "project_tool_access"
    __table_args__ = (
        UniqueConstraint("project_id", "tool_key", "user_id", name="uq_project_tool_access"),
    )

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    tool_key = Column(String(64), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(String(8), nullable=False, default="VIEW")
    granted_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", foreign_keys=[user_id])


class ProjectInvite(Base):
    """Email invite granting tool access once accepted."""

    __tablename__ = "project_invites"
    __table_args__ = (Index("ix_project_invites_lookup", "project_id", "tool_key", "email", "status"),)

    id = Column(String(32), primary_key=True, default=generate_id)
    token = Column(String(128), unique=True, index=True, nullable=False)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    tool_key = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False)
    level = Column(String(8), nullable=False, default="EDIT")
    status = Column(String(16), nullable=False, default="PENDING")
    invited_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    accepted_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="invites")
    invited_by = relationship("User", foreign_keys=[invited_by_id])


class ToolInstance(Base):
    """Persisted JSON state of one tool in one project."""

    __tablename__ = "tool_instances"
    __table_args__ = (UniqueConstraint("project_id", "tool_key", name="uq_tool_instances_project_tool"),)

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    tool_key = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    # Incremented on every write; clients send it back as baseRevision.
    revision = Column(Integer, nullable=False, default=1)
    updated_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="tool_instances")
    updated_by = relationship("User", foreign_keys=[updated_by_id])


class ToolShareToken(Base):
    """Read-only public link to a tool instance."""

    __tablename__ = "tool_share_tokens"

    id = Column(String(32), primary_key=True, default=generate_id)
    token = Column(String(128), unique=True, index=True, nullable=False)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    tool_key = Column(String(64), nullable=False)
    created_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="share_tokens")


# --- CMS ------------------------------------------------------------------


class Collection(Base):
    """Curated, ordered group of content."""

    __tablename__ = "collections"

    id = Column(String(32), primary_key=True, default=generate_id)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    hero_image_url = Column(String(1024), nullable=True)
    layout = Column(String(16), nullable=False, default="TILES")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "CollectionItem",
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="CollectionItem.priority",
    )


class Content(Base):
    """Article, guide or story."""

    __tablename__ = "content"

    id = Column(String(32), primary_key=True, default=generate_id)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    content_type = Column(String(16), nullable=False, default="GUIDE")
    status = Column(String(16), nullable=False, default="DRAFT", index=True)
    dek = Column(Text, nullable=True)
    body_md = Column(Text, nullable=False, default="")
    author_name = Column(String(255), nullable=True)
    publish_at = Column(DateTime, nullable=True)
    published_at = Column(DateTime, nullable=True)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    canonical_url = Column(String(1024), nullable=True)
    og_image_url = Column(String(1024), nullable=True)
    geo_scope = Column(String(32), nullable=True)
    geo_place = Column(String(255), nullable=True)
    robots_no_index = Column(Boolean, nullable=False, default=False)
    primary_collection_id = Column(
        String(32), ForeignKey("collections.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tags = relationship("ContentTag", back_populates="content", cascade="all, delete-orphan")
    collection_items = relationship("CollectionItem", back_populates="content", cascade="all, delete-orphan")
    related = relationship(
        "ContentRelation",
        foreign_keys="ContentRelation.from_content_id",
        cascade="all, delete-orphan",
        order_by="ContentRelation.priority",
    )
    primary_collection = relationship("Collection", foreign_keys=[primary_collection_id])


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(32), primary_key=True, default=generate_id)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    content_tags = relationship("ContentTag", back_populates="tag", cascade="all, delete-orphan")


class ContentTag(Base):
    __tablename__ = "content_tags"

    content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(String(32), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    content = relationship("Content", back_populates="tags")
    tag = relationship("Tag", back_populates="content_tags")


class CollectionItem(Base):
    __tablename__ = "collection_items"

    collection_id = Column(String(32), ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True)
    content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), primary_key=True)
    priority = Column(Integer, nullable=False, default=0)

    collection = relationship("Collection", back_populates="items")
    content = relationship("Content", back_populates="collection_items")


class ContentRelation(Base):
    __tablename__ = "content_relations"

    from_content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), primary_key=True)
    to_content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), primary_key=True)
    priority = Column(Integer, nullable=False, default=0)

    to_content = relationship("Content", foreign_keys=[to_content_id])


class ContentFeedback(Base):
    """Public helpful/not-helpful vote."""

    __tablename__ = "content_feedback"
    __table_args__ = (
        UniqueConstraint("content_id", "user_id", name="uq_content_feedback_user"),
        UniqueConstraint("content_id", "anon_id", name="uq_content_feedback_anon"),
    )

    id = Column(String(32), primary_key=True, default=generate_id)
    content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    anon_id = Column(String(64), nullable=True)
    vote = Column(String(8), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ContentPrivateFeedback(Base):
    """Free-text feedback visible only to admins."""

    __tablename__ = "content_private_feedback"

    id = Column(String(32), primary_key=True, default=generate_id)
    content_id = Column(String(32), ForeignKey("content.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    anon_id = Column(String(64), nullable=True)
    message = Column(Text, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    vote_context = Column(String(8), nullable=True)
    ip_hash = Column(String(64), nullable=True, index=True)
    user_agent = Column(String(512), nullable=True)
    page_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    content = relationship("Content")


class IdeaPack(Base):
    """Pre-built finish decisions a user can import into a room."""

    __tablename__ = "idea_packs"

    id = Column(String(32), primary_key=True, default=generate_id)
    pack_id = Column(String(128), unique=True, index=True, nullable=False)
    label = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    author = Column(String(255), nullable=True)
    room_types = Column(JSON, nullable=False, default=list)
    decisions = Column(JSON, nullable=False, default=list)
    status = Column(String(16), nullable=False, default="DRAFT")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SiteSetting(Base):
    """Key/value site configuration editable by admins."""

    __tablename__ = "site_settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_by_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
