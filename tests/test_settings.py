"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import DEVELOPMENT_SECRET_KEY, Settings


def test_defaults_are_usable_for_development() -> None:
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.secret_key == DEVELOPMENT_SECRET_KEY
    assert settings.server_port == 3000
    assert settings.session_token_ttl_seconds == 7_200
    assert settings.reset_token_ttl_seconds == 900
    assert settings.mixed_default_limit == 25
    assert str(settings.pexels_api_url).startswith("https://api.pexels.com")


def test_legacy_environment_names_are_accepted() -> None:
    settings = Settings(
        _env_file=None,
        JWT_SECRET="legacy-secret",
        EMAIL_PASSWORD="hunter2",
        EMAIL_HOST="smtp.example.com",
    )

    assert settings.secret_key == "legacy-secret"
    assert settings.smtp_password == "hunter2"
    assert settings.mail_configured is True


def test_mail_is_disabled_without_host() -> None:
    assert Settings(_env_file=None, EMAIL_HOST=None).mail_configured is False


def test_production_requires_a_real_secret() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ENVIRONMENT="production")

    settings = Settings(_env_file=None, ENVIRONMENT="production", SECRET_KEY="prod-secret")
    assert settings.secret_key == "prod-secret"


def test_limits_are_bounded() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, MIXED_LIMIT=500)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SESSION_TOKEN_TTL=5)
