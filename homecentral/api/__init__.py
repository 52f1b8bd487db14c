"""API routers."""

from homecentral.api.admin import router as admin_router
from homecentral.api.admin_content import router as admin_content_router
from homecentral.api.auth import router as auth_router
from homecentral.api.content import router as content_router
from homecentral.api.health import router as health_router
from homecentral.api.projects import router as projects_router
from homecentral.api.share import router as share_router
from homecentral.api.tools import router as tools_router
from homecentral.api.user import router as user_router

__all__ = [
    "admin_router",
    "admin_content_router",
    "auth_router",
    "content_router",
    "health_router",
    "projects_router",
    "share_router",
    "tools_router",
    "user_router",
]
