"""
Hawaii Home Central backend application.

FastAPI application with structured logging, error handling,
and security middleware.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homecentral import __version__
from homecentral.api import (
    admin_content_router,
    admin_router,
    auth_router,
    content_router,
    health_router,
    projects_router,
    share_router,
    tools_router,
    user_router,
)
from homecentral.auth.bootstrap import BootstrapRefusedError, ensure_bootstrap_admin
from homecentral.auth.session import cleanup_expired_sessions
from homecentral.config import get_settings
from homecentral.core import (
    CSRFMiddleware,
    HotPathRateLimitMiddleware,
    RateLimitMiddleware,
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    TrustedHostMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from homecentral.core.startup_checks import run_startup_validations
from homecentral.db import dispose_engine, verify_database_connection
from homecentral.db.database import get_session_local

logger = get_logger(__name__)


def _purge_expired_sessions() -> None:
    db = get_session_local()()
    try:
        removed = cleanup_expired_sessions(db)
        if removed:
            logger.info("Expired sessions removed", data={"count": removed})
    except Exception as exc:
        db.rollback()
        logger.error("Session cleanup failed", data={"error": str(exc)})
    finally:
        db.close()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Startup
    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting Hawaii Home Central backend",
        data={
            "host": settings.host,
            "port": settings.port,
            "debug": settings.debug,
            "environment": settings.environment,
            "cors_origins": settings.cors_origins_list,
        },
    )

    run_startup_validations(settings)

    # Verify database connectivity (does NOT run migrations)
    if verify_database_connection():
        logger.info("Database connection verified")
        try:
            ensure_bootstrap_admin(settings)
        except BootstrapRefusedError:
            raise
        except Exception as exc:
            logger.error("Bootstrap admin failed", data={"error": str(exc)})
        _purge_expired_sessions()
    else:
        logger.warning("Database connection failed - run 'alembic upgrade head' to initialize")

    if not settings.google_oauth_configured:
        logger.warning("Google OAuth is not configured; sign-in is disabled")

    _app.state.start_time = datetime.now(UTC)

    yield

    # Shutdown
    logger.info("Shutting down Hawaii Home Central backend")
    dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Hawaii Home Central",
        description="Renovation planning tools, project sharing and CMS back-office",
        version=__version__,
        lifespan=lifespan,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )

    # Setup exception handlers (must be before middleware)
    setup_exception_handlers(app)

    # Add middleware (order matters - last added = first executed)
    # 1. Trusted host validation (reject Host header injection early)
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.allowed_hosts_list,
    )

    # 2. Request size limit (reject oversized requests early)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)

    # 3. Rate limiting (per-IP + per-user, in-memory)
    app.add_middleware(
        RateLimitMiddleware,
        ip_requests_per_minute=settings.rate_limit_rpm,
        user_requests_per_minute=settings.rate_limit_user_rpm,
    )

    # 3b. Stricter limits for OAuth and public token endpoints
    app.add_middleware(HotPathRateLimitMiddleware)

    # 4. Request context (inject request ID, log requests)
    app.add_middleware(RequestContextMiddleware)

    # 5. Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # 6. CSRF for cookie-authenticated writes
    app.add_middleware(CSRFMiddleware)

    # 7. CORS
    allow_origin_regex = None
    if not settings.is_prod_like:
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*", settings.csrf_header_name],
        expose_headers=["X-Request-ID"],
        allow_origin_regex=allow_origin_regex,
    )

    # Register routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(projects_router)
    app.include_router(tools_router)
    app.include_router(share_router)
    app.include_router(content_router)
    app.include_router(admin_router)
    app.include_router(admin_content_router)

    return app


# Create application instance
app = create_app()
