"""Auth configuration management."""

from __future__ import annotations

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

MAGIC_LINK_PATH = "/api/auth/verify-magic-link"
CALLBACK_PATH = "/api/auth/callback"


class AuthSettings(BaseSettings):
    """Settings for the passwordless flow, validated once at startup."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev", description="Application environment")
    APP_URL: str = Field(description="Public base URL of this application")
    LOG_LEVEL: str = Field(default="INFO", description="Root logger level")
    CORS_ORIGINS: str = Field(default="*", description="Comma-separated list of allowed origins")

    # Verification provider
    AUTH_PROVIDER: Literal["scalekit", "memory"] = Field(
        default="scalekit", description="'scalekit' for the hosted provider, 'memory' for local development"
    )
    SCALEKIT_ENVIRONMENT_URL: str | None = Field(default=None, description="Scalekit environment URL")
    SCALEKIT_CLIENT_ID: str | None = Field(default=None, description="Scalekit client ID")
    SCALEKIT_CLIENT_SECRET: str | None = Field(default=None, description="Scalekit client secret")
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for provider HTTP calls")
    CODE_EXPIRES_IN: int = Field(default=100, description="Lifetime of a one-time code in seconds")
    MAX_CODE_ATTEMPTS: int = Field(default=5, description="Code attempts allowed by the memory provider")
    FIXED_OTP: str | None = Field(default="", description="Fixed code for the memory provider (empty for random)")

    # Session cookie
    SESSION_SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Key used to sign the session cookie",
    )
    SESSION_ALGORITHM: str = Field(default="HS256", description="JWT algorithm for the session cookie")
    SESSION_EXPIRE_SECONDS: int = Field(default=3600, description="Session lifetime in seconds")
    AUTH_REQUEST_COOKIE_MAX_AGE: int = Field(default=300, description="Lifetime of the auth-request-id cookie")

    COOKIE_SAME_SITE: Literal["lax", "strict", "none"] = Field(default="lax", description="SameSite policy for cookies")
    COOKIE_HTTP_ONLY: bool = Field(default=True, description="HttpOnly flag for cookies")
    COOKIE_DOMAIN: str | None = Field(default=None, description="Optional cookie domain")

    @field_validator("APP_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("APP_URL must not be empty")
        return v

    @field_validator("SESSION_EXPIRE_SECONDS", "AUTH_REQUEST_COOKIE_MAX_AGE", "CODE_EXPIRES_IN")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1 second")
        return v

    @model_validator(mode="after")
    def validate_provider_and_environment(self):
        """Fail fast on missing provider credentials or weak production settings."""
        if self.AUTH_PROVIDER == "scalekit":
            missing = [
                name
                for name in ("SCALEKIT_ENVIRONMENT_URL", "SCALEKIT_CLIENT_ID", "SCALEKIT_CLIENT_SECRET")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Missing required environment variable(s): {', '.join(missing)}")

        if self.ENVIRONMENT == "prod":
            if self.AUTH_PROVIDER == "memory":
                raise ValueError("The memory provider cannot be used in production")
            if "SESSION_SECRET_KEY" not in self.model_fields_set:
                raise ValueError("SESSION_SECRET_KEY must be set explicitly in production")
            if len(self.SESSION_SECRET_KEY) < 32:
                raise ValueError("SESSION_SECRET_KEY must be at least 32 characters long in production")
            if not self.APP_URL.startswith("https://"):
                raise ValueError("APP_URL must use HTTPS in production")
        return self

    @computed_field
    @property
    def magic_link_uri(self) -> str:
        return f"{self.APP_URL}{MAGIC_LINK_PATH}"

    @computed_field
    @property
    def redirect_uri(self) -> str:
        return f"{self.APP_URL}{CALLBACK_PATH}"

    @property
    def cookie_secure(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> AuthSettings:
    """Load settings once; raises ``pydantic.ValidationError`` when required values are missing."""
    settings = AuthSettings()
    logger.info("Loaded auth settings (provider=%s, environment=%s)", settings.AUTH_PROVIDER, settings.ENVIRONMENT)
    return settings
