"""Core module with logging, middleware, and exception handling."""

from homecentral.core.exceptions import setup_exception_handlers
from homecentral.core.logging import get_logger, setup_logging
from homecentral.core.middleware import (
    CSRFMiddleware,
    HotPathRateLimitMiddleware,
    RateLimitMiddleware,
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    TrustedHostMiddleware,
    get_client_ip,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "CSRFMiddleware",
    "HotPathRateLimitMiddleware",
    "RateLimitMiddleware",
    "RequestContextMiddleware",
    "RequestSizeLimitMiddleware",
    "SecurityHeadersMiddleware",
    "TrustedHostMiddleware",
    "get_client_ip",
    "setup_exception_handlers",
]
