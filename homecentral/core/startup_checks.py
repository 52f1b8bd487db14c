"""Production startup configuration checks.

Run at application startup; production and staging refuse to start when any
check fails.
"""

import logging
from typing import List
from urllib.parse import urlparse

from homecentral.config import Settings

logger = logging.getLogger(__name__)

MIN_SECRET_KEY_LENGTH = 32


class ProductionConfigError(Exception):
    """Raised when production configuration fails validation."""


def _is_https(origin: str) -> bool:
    parsed = urlparse(origin.strip())
    return parsed.scheme == "https" and bool(parsed.hostname)


def validate_production_settings(settings: Settings) -> List[str]:
    """Collect every production configuration violation.

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []

    # A generated key changes on every restart and would sign everyone out.
    if "secret_key" not in settings.model_fields_set:
        errors.append("SECRET_KEY must be set explicitly in production")
    elif len(settings.secret_key) < MIN_SECRET_KEY_LENGTH:
        errors.append(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters")

    if not settings.cookie_secure:
        errors.append("COOKIE_SECURE must be true in production for secure cookies")

    if not settings.google_oauth_configured:
        errors.append("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required in production")
    elif not _is_https(settings.google_redirect_uri):
        errors.append("GOOGLE_REDIRECT_URI must be https in production")

    for host in settings.allowed_hosts_list:
        if host == "*" or host.startswith("*."):
            errors.append(f"Wildcard host '{host}' is not allowed in production. Use exact hostnames.")

    if "*" in settings.cors_origins:
        errors.append("CORS_ORIGINS must not contain wildcard '*' in production")
    for origin in settings.cors_origins_list:
        if not _is_https(origin):
            errors.append(f"CORS_ORIGINS must be https-only in production; found '{origin}'")

    if not _is_https(settings.public_base_url):
        errors.append("PUBLIC_BASE_URL must be https in production")

    return errors


def assert_production_settings(settings: Settings) -> None:
    """Raise ProductionConfigError listing every violation."""
    errors = validate_production_settings(settings)

    if errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        logger.error(f"Production configuration validation failed:\n{error_msg}")
        raise ProductionConfigError(f"Production configuration errors:\n{error_msg}")

    logger.info("Production configuration validation passed")


def validate_test_settings(settings: Settings) -> List[str]:
    """Warnings for a test run pointed at a non-test database."""
    warnings: List[str] = []

    if settings.database_url.startswith("sqlite://"):
        if "test" not in settings.database_url.lower() and "tmp" not in settings.database_url.lower():
            warnings.append(
                "DATABASE_URL appears to be a non-test SQLite database. "
                "Consider using a separate test database to avoid data corruption."
            )

    return warnings


def run_startup_validations(settings: Settings) -> None:
    """Run all startup validations based on environment."""
    if settings.is_prod_like:
        assert_production_settings(settings)
    elif settings.is_test:
        for warning in validate_test_settings(settings):
            logger.warning(f"Test configuration warning: {warning}")
