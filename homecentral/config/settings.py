"""Application settings using Pydantic BaseSettings."""

import os
import secrets
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    config_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(config_dir)
    db_path = os.path.join(package_dir, "data", "homecentral.db")
    return f"sqlite:///{db_path}"


def _split_csv(value: str) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    # Bind to 127.0.0.1 by default. Use 0.0.0.0 only in containers.
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    allowed_hosts: str = Field(
        default="localhost,127.0.0.1",
        description="Comma-separated allowed Host headers.",
    )
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    public_base_url: str = Field(default="http://localhost:3000")

    # Security
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(64))
    cors_origins: str = Field(default="http://localhost:3000")
    rate_limit_rpm: int = Field(default=120)
    rate_limit_user_rpm: int = Field(default=120)
    max_request_bytes: int = Field(default=2097152)

    # Sessions
    session_cookie_name: str = Field(default="hhc_session")
    session_ttl_seconds: int = Field(default=2592000)
    cookie_secure: bool = Field(default=False)
    cookie_samesite: str = Field(default="lax")
    cookie_domain: str = Field(default="")
    csrf_header_name: str = Field(default="X-CSRF-Token")
    csrf_cookie_name: str = Field(default="hhc_csrf")
    oauth_state_cookie_name: str = Field(default="hhc_oauth_state")

    # Google OAuth
    google_client_id: str = Field(default="")
    google_client_secret: str = Field(default="")
    google_redirect_uri: str = Field(default="http://localhost:8000/api/auth/google/callback")
    google_auth_url: str = Field(default="https://accounts.google.com/o/oauth2/v2/auth")
    google_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    google_userinfo_url: str = Field(default="https://openidconnect.googleapis.com/v1/userinfo")
    oauth_timeout_seconds: int = Field(default=10)
    # Where the browser lands after a successful sign-in
    post_login_redirect: str = Field(default="/app")

    # Access gating
    maintenance_mode: bool = Field(default=False)
    require_whitelist: bool = Field(default=False)
    admin_allowlist: str = Field(default="")
    early_access_allowlist: str = Field(default="")

    # Sharing
    share_link_ttl_days: int = Field(default=30)
    invite_ttl_days: int = Field(default=7)
    max_edit_shares: int = Field(default=3)
    private_feedback_per_hour: int = Field(default=5)

    # Bootstrap admin (startup-only, env-driven)
    bootstrap_admin_email: str = Field(default="")

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)
    database_url_postgres: str = Field(default="")

    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL (Postgres takes precedence if set)."""
        return self.database_url_postgres or self.database_url

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Parse allowed hosts from comma-separated string."""
        return _split_csv(self.allowed_hosts)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return _split_csv(self.cors_origins)

    @property
    def admin_allowlist_list(self) -> List[str]:
        """Admin emails from the environment, lower-cased."""
        return [e.lower() for e in _split_csv(self.admin_allowlist)]

    @property
    def early_access_allowlist_list(self) -> List[str]:
        """Early access emails from the environment, lower-cased."""
        return [e.lower() for e in _split_csv(self.early_access_allowlist)]

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.environment == "test"

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.environment == "staging"

    @property
    def is_prod_like(self) -> bool:
        """Check if running in production or staging mode."""
        return self.is_production or self.is_staging

    @property
    def docs_url(self) -> str | None:
        """Return docs URL if not in prod-like environment, else None."""
        return None if self.is_prod_like else "/docs"

    @property
    def redoc_url(self) -> str | None:
        return None if self.is_prod_like else "/redoc"

    @property
    def openapi_url(self) -> str | None:
        return None if self.is_prod_like else "/openapi.json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("cookie_samesite")
    @classmethod
    def validate_cookie_samesite(cls, v: str) -> str:
        """Normalize + validate SameSite cookie attribute."""
        vv = (v or "").strip().lower()
        if vv not in {"lax", "strict", "none"}:
            raise ValueError("COOKIE_SAMESITE must be one of: lax, strict, none")
        return vv

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: str, info):  # type: ignore[override]
        env = (info.data.get("environment") or "development").strip().lower()
        origins = _split_csv(v)
        if env == "production":
            bad = [o for o in origins if o.startswith("http://")]
            if bad:
                raise ValueError(f"In production, CORS_ORIGINS must be https-only; got: {bad}")
        return v

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        # SameSite=None requires Secure=true.
        if self.cookie_samesite == "none" and not self.cookie_secure:
            raise ValueError("COOKIE_SECURE must be true when COOKIE_SAMESITE=none")

        if self.is_production:
            for host in self.allowed_hosts_list:
                if host.startswith("*."):
                    raise ValueError(
                        f"Wildcard hosts (*.{host[2:]}) are not allowed in production."
                    )

        for name in ("share_link_ttl_days", "invite_ttl_days", "max_edit_shares"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name.upper()} must be at least 1")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
