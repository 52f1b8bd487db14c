"""
Health check endpoints.

Provides liveness and readiness probes for monitoring.
"""

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from homecentral import __version__
from homecentral.config import get_settings
from homecentral.db import verify_database_connection

router = APIRouter(tags=["health"])


def _safe_env_string(name: str) -> str:
    raw = (os.getenv(name) or "").strip()
    return raw if raw else "unknown"


@router.get("/health")
@router.get("/healthz")
async def healthcheck() -> dict[str, Any]:
    """
    Health check endpoint.

    Returns basic service health status. Used by load balancers,
    orchestrators, and monitoring systems.
    """
    settings = get_settings()
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "build_sha": _safe_env_string("BUILD_SHA"),
        "build_time": _safe_env_string("BUILD_TIME"),
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("/readyz")
async def readiness() -> JSONResponse:
    """
    Readiness check endpoint.

    Returns 503 until the database answers, so orchestrators hold traffic.
    """
    settings = get_settings()
    checks: dict[str, bool] = {
        "database": verify_database_connection(),
        "config": True,
        "google_oauth": settings.google_oauth_configured or not settings.is_prod_like,
    }
    all_ready = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
