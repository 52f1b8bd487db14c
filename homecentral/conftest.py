"""Pytest configuration for Home Central tests.

Environment variables are set here, before any test module imports the app,
so that cached settings are built for the test context.
"""

import os

import pytest


def pytest_configure(config):
    """Configure the test environment before any tests run.

    ENVIRONMENT=test (not development) so production-only checks still run
    and nothing relies on dev permissiveness.

    - ALLOWED_HOSTS includes testserver for TestClient
    - CORS_ORIGINS includes localhost:3000, the Origin used by CSRF tests
    - BOOTSTRAP_ADMIN_EMAIL is cleared so startup never seeds an admin row
    """
    config.addinivalue_line("markers", "security: Security-related tests (required gate)")
    config.addinivalue_line("markers", "csrf: CSRF protection tests (required gate)")
    config.addinivalue_line("markers", "slow: Slow-running tests (excluded from fast)")
    config.addinivalue_line("markers", "integration: Integration tests requiring external services")

    os.environ.setdefault("ENVIRONMENT", "test")

    allowed_hosts = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1")
    if "testserver" not in allowed_hosts:
        os.environ["ALLOWED_HOSTS"] = f"{allowed_hosts},testserver"

    cors_origins = os.environ.get("CORS_ORIGINS", "")
    if "localhost:3000" not in cors_origins:
        cors_origins = f"{cors_origins},http://localhost:3000" if cors_origins else "http://localhost:3000"
        os.environ["CORS_ORIGINS"] = cors_origins

    os.environ["BOOTSTRAP_ADMIN_EMAIL"] = ""


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings after each test so monkeypatched env never leaks."""
    yield
    from homecentral.config import get_settings

    get_settings.cache_clear()
