"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEVELOPMENT_SECRET_KEY = "popfix-development-secret"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="PopFix", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./popfix.db", alias="DATABASE_URL"
    )

    pexels_api_key: str | None = Field(default=None, alias="PEXELS_API_KEY")
    pexels_api_url: HttpUrl = Field(
        default="https://api.pexels.com", alias="PEXELS_API_URL"
    )

    secret_key: str = Field(
        default=DEVELOPMENT_SECRET_KEY,
        alias="SECRET_KEY",
        validation_alias=AliasChoices("SECRET_KEY", "JWT_SECRET"),
    )
    session_token_ttl_seconds: int = Field(
        default=7_200, alias="SESSION_TOKEN_TTL", ge=60
    )
    reset_token_ttl_seconds: int = Field(
        default=900, alias="RESET_TOKEN_TTL", ge=60
    )

    frontend_url: str = Field(
        default="http://localhost:5173", alias="FRONTEND_URL"
    )
    smtp_host: str | None = Field(default=None, alias="EMAIL_HOST")
    smtp_port: int = Field(default=587, alias="EMAIL_PORT", ge=1, le=65_535)
    smtp_user: str | None = Field(default=None, alias="EMAIL_USER")
    smtp_password: str | None = Field(
        default=None,
        alias="EMAIL_PASS",
        validation_alias=AliasChoices("EMAIL_PASS", "EMAIL_PASSWORD"),
    )
    smtp_use_tls: bool = Field(default=False, alias="EMAIL_SECURE")

    mixed_default_limit: int = Field(default=25, alias="MIXED_LIMIT", ge=1, le=80)
    genre_default_limit: int = Field(default=12, alias="GENRE_LIMIT", ge=1, le=80)
    search_default_limit: int = Field(
        default=50, alias="SEARCH_LIMIT", ge=1, le=200
    )

    @model_validator(mode="after")
    def _require_secret_in_production(self) -> "Settings":
        """Refuse to sign tokens with the development key in production."""

        if self.environment == "production" and (
            not self.secret_key.strip() or self.secret_key == DEVELOPMENT_SECRET_KEY
        ):
            raise ValueError("SECRET_KEY must be configured in production")
        return self

    @property
    def mail_configured(self) -> bool:
        return bool(self.smtp_host)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
