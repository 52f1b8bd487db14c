import pytest
from pydantic import ValidationError

from homecentral.config import Settings, get_settings
from homecentral.core.startup_checks import (
    ProductionConfigError,
    assert_production_settings,
    run_startup_validations,
    validate_production_settings,
    validate_test_settings,
)

pytestmark = pytest.mark.security


def _production_env(monkeypatch, **overrides):
    env = {
        "ENVIRONMENT": "production",
        "SECRET_KEY": "k" * 48,
        "COOKIE_SECURE": "true",
        "COOKIE_SAMESITE": "lax",
        "GOOGLE_CLIENT_ID": "client-id",
        "GOOGLE_CLIENT_SECRET": "client-secret",
        "GOOGLE_REDIRECT_URI": "https://api.hawaiihomecentral.test/api/auth/google/callback",
        "ALLOWED_HOSTS": "api.hawaiihomecentral.test",
        "CORS_ORIGINS": "https://hawaiihomecentral.test",
        "PUBLIC_BASE_URL": "https://hawaiihomecentral.test",
    }
    env.update(overrides)
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    return get_settings()


def test_valid_production_config_passes(monkeypatch):
    settings = _production_env(monkeypatch)
    assert validate_production_settings(settings) == []
    assert_production_settings(settings)


def test_generated_secret_key_is_rejected(monkeypatch):
    settings = _production_env(monkeypatch, SECRET_KEY=None)
    errors = validate_production_settings(settings)
    assert "SECRET_KEY must be set explicitly in production" in errors


def test_short_secret_key_is_rejected(monkeypatch):
    settings = _production_env(monkeypatch, SECRET_KEY="too-short")
    errors = validate_production_settings(settings)
    assert any("at least 32 characters" in err for err in errors)


def test_insecure_cookies_and_http_urls_are_rejected(monkeypatch):
    settings = _production_env(
        monkeypatch,
        COOKIE_SECURE="false",
        GOOGLE_REDIRECT_URI="http://api.hawaiihomecentral.test/api/auth/google/callback",
        PUBLIC_BASE_URL="http://hawaiihomecentral.test",
    )
    errors = validate_production_settings(settings)
    assert any("COOKIE_SECURE" in err for err in errors)
    assert "GOOGLE_REDIRECT_URI must be https in production" in errors
    assert "PUBLIC_BASE_URL must be https in production" in errors


def test_missing_google_credentials_are_rejected(monkeypatch):
    settings = _production_env(monkeypatch, GOOGLE_CLIENT_SECRET="")
    errors = validate_production_settings(settings)
    assert "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required in production" in errors


def test_wildcard_hosts_and_origins_are_rejected(monkeypatch):
    settings = _production_env(monkeypatch, ALLOWED_HOSTS="*", CORS_ORIGINS="*")
    errors = validate_production_settings(settings)
    assert any("Wildcard host '*'" in err for err in errors)
    assert "CORS_ORIGINS must not contain wildcard '*' in production" in errors


def test_http_cors_origin_fails_settings_validation(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("CORS_ORIGINS", "http://hawaiihomecentral.test")
    with pytest.raises(ValidationError):
        Settings()


def test_samesite_none_requires_secure_cookie(monkeypatch):
    monkeypatch.setenv("COOKIE_SAMESITE", "None")
    monkeypatch.setenv("COOKIE_SECURE", "false")
    with pytest.raises(ValidationError):
        Settings()

    monkeypatch.setenv("COOKIE_SECURE", "true")
    assert Settings().cookie_samesite == "none"


def test_share_limits_must_be_positive(monkeypatch):
    monkeypatch.setenv("MAX_EDIT_SHARES", "0")
    with pytest.raises(ValidationError):
        Settings()


def test_run_startup_validations_raises_for_bad_production(monkeypatch):
    settings = _production_env(monkeypatch, COOKIE_SECURE="false")
    with pytest.raises(ProductionConfigError):
        run_startup_validations(settings)


def test_staging_is_checked_like_production(monkeypatch):
    settings = _production_env(monkeypatch, ENVIRONMENT="staging", GOOGLE_CLIENT_ID="")
    with pytest.raises(ProductionConfigError):
        run_startup_validations(settings)


def test_test_settings_warn_on_non_test_sqlite(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/homecentral.db")
    settings = Settings()
    assert validate_test_settings(settings)

    monkeypatch.setenv("DATABASE_URL", "sqlite:////tmp/pytest-of-ci/homecentral.db")
    assert validate_test_settings(Settings()) == []
