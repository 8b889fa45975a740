# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Application Settings

Configuration management using pydantic-settings.
Supports environment variables and .env files.

Engine classes never read settings on their own; they are handed a
SecuritySettings instance by whoever constructs them.
"""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure values that must never sign or key anything
INSECURE_SECRETS = frozenset(
    {
        "change_me_in_production",
        "change_me",
        "changeme",
        "secret",
        "jwt_secret",
        "your_secret_key",
        "supersecret",
        "password",
        "123456",
        "development",
        "dev_secret",
        "test_secret",
        "placeholder",
    }
)


def _check_secret(name: str, value: str) -> str:
    if value.lower().replace("-", "_") in INSECURE_SECRETS:
        raise ValueError(
            f"{name} is set to an insecure default. "
            'Generate one with: python -c "import secrets; print(secrets.token_urlsafe(64))"'
        )

    if len(value) < 32:
        raise ValueError(f"{name} must be at least 32 characters (got {len(value)})")

    if len(set(value)) < 10:
        raise ValueError(
            f"{name} appears to have low entropy (too many repeated characters). "
            "Use a cryptographically secure random string."
        )

    return value


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./turnstile.db",
        description="SQLAlchemy async connection URL",
    )
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    echo: bool = Field(default=False, description="Echo SQL queries")


class SecuritySettings(BaseSettings):
    """Secrets, token lifetimes and security policy."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    # JWT signing (two distinct secrets)
    jwt_access_secret: str = Field(description="Secret for signing access tokens")
    jwt_refresh_secret: str = Field(description="Secret for signing refresh tokens")
    jwt_algorithm: str = Field(default="HS256")

    # HMAC key for stored refresh-token digests and device fingerprints
    refresh_token_hmac_secret: str = Field(description="HMAC key for token digests")

    # Lifetimes
    access_token_ttl_minutes: int = Field(default=15, ge=1)
    refresh_token_ttl_days: int = Field(default=7, ge=1)
    password_reset_ttl_minutes: int = Field(default=60, ge=1)
    revoked_token_retention_days: int = Field(default=90, ge=1)

    # Reuse escalation
    reuse_incident_window_minutes: int = Field(default=60, ge=1)
    reuse_escalation_threshold: int = Field(default=3, ge=1)

    # Password hashing cost (12 ~ 150-250ms on commodity hardware)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Base URL for password reset links
    frontend_url: str | None = Field(default=None)

    @field_validator("jwt_access_secret", "jwt_refresh_secret", "refresh_token_hmac_secret")
    @classmethod
    def validate_secret(cls, v: str, info) -> str:
        """
        Validate signing/HMAC secrets.

        CRITICAL: This prevents deployment with insecure defaults.
        """
        return _check_secret(info.field_name, v)

    @model_validator(mode="after")
    def secrets_are_distinct(self) -> "SecuritySettings":
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("Access and refresh tokens must be signed with different secrets")
        return self


class NotificationSettings(BaseSettings):
    """Outbound email configuration."""

    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str | None = Field(default=None)
    port: int = Field(default=587)
    user: str | None = Field(default=None)
    password: str | None = Field(default=None)
    use_tls: bool = Field(default=True)
    from_email: str | None = Field(default=None)
    from_name: str = Field(default="Turnstile")


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    service_name: str = Field(default="turnstile")
    metrics_namespace: str = Field(default="turnstile")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or human


class Settings(BaseSettings):
    """
    Main application settings.

    Usage:
        settings = get_settings()
        print(settings.database.url)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Turnstile")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")  # development, staging, production

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Only entry points (CLI, app factory) should call this. Library code
    takes its settings as constructor arguments.
    """
    return Settings()


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Settings",
    "DatabaseSettings",
    "SecuritySettings",
    "NotificationSettings",
    "ObservabilitySettings",
    "get_settings",
]
