"""Database module for the Hawaii Home Central backend."""

from homecentral.db.database import (
    Base,
    dispose_engine,
    get_db,
    get_engine,
    get_session_local,
    verify_database_connection,
)
from homecentral.db.models import (
    AdminAllowlist,
    AuditLog,
    Collection,
    CollectionItem,
    Content,
    ContentFeedback,
    ContentPrivateFeedback,
    ContentRelation,
    ContentTag,
    EarlyAccessAllowlist,
    IdeaPack,
    Project,
    ProjectInvite,
    ProjectMember,
    ProjectToolAccess,
    Session,
    SiteSetting,
    Tag,
    ToolInstance,
    ToolShareToken,
    User,
)

__all__ = [
    # Database infrastructure
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "dispose_engine",
    "verify_database_connection",
    # Accounts
    "User",
    "Session",
    "AdminAllowlist",
    "EarlyAccessAllowlist",
    "AuditLog",
    # Projects & tools
    "Project",
    "ProjectMember",
    "ProjectToolAccess",
    "ProjectInvite",
    "ToolInstance",
    "ToolShareToken",
    # CMS
    "Content",
    "Tag",
    "ContentTag",
    "Collection",
    "CollectionItem",
    "ContentRelation",
    "ContentFeedback",
    "ContentPrivateFeedback",
    "IdeaPack",
    "SiteSetting",
]
