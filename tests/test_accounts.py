from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.config import Settings
from app.database import Database
from app.errors import AuthenticationError, ConflictError, UserNotFoundError
from app.models import RegisterRequest, UserUpdateRequest
from app.security import RESET_PURPOSE, SESSION_PURPOSE, TokenSigner
from app.services.accounts import AccountService
from app.services.mailer import MailNotConfiguredError, ResetMailer


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_reset(self, recipient: str, token: str) -> None:
        self.sent.append((recipient, token))


def build_settings(**overrides: Any) -> Settings:
    base = {"SECRET_KEY": "unit-test-secret"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def _register_request(**overrides: Any) -> RegisterRequest:
    payload = {
        "email": "  Ana@Example.com ",
        "name": "Ana",
        "surname": "Ruiz",
        "age": 31,
        "password": "Secret123",
    }
    payload.update(overrides)
    return RegisterRequest(**payload)


async def _service(tmp_path, mailer=None) -> tuple[Database, AccountService]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")
    await database.create_all()
    return database, AccountService(build_settings(), database.session_factory, mailer)


def test_register_and_login(tmp_path) -> None:
    async def runner() -> None:
        database, accounts = await _service(tmp_path)
        try:
            user = await accounts.register(_register_request())
            assert user.email == "ana@example.com"
            assert user.password_hash != "Secret123"

            token, logged_in = await accounts.login("ANA@example.com", "Secret123")
            assert logged_in.id == user.id

            claims = accounts.authenticate(token)
            assert claims.subject == user.id
            assert claims.email == "ana@example.com"
            assert claims.purpose == SESSION_PURPOSE

            with pytest.raises(AuthenticationError):
                await accounts.login("ana@example.com", "Wrong1234")
            with pytest.raises(UserNotFoundError):
                await accounts.login("nobody@example.com", "Secret123")
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_register_rejects_duplicate_email(tmp_path) -> None:
    async def runner() -> None:
        database, accounts = await _service(tmp_path)
        try:
            await accounts.register(_register_request())
            with pytest.raises(ConflictError):
                await accounts.register(_register_request(email="ana@example.com"))
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_update_and_delete_user(tmp_path) -> None:
    async def runner() -> None:
        database, accounts = await _service(tmp_path)
        try:
            user = await accounts.register(_register_request())
            updated = await accounts.update_user(
                user.id, UserUpdateRequest(name="Ana María", password="Changed999")
            )
            assert updated.name == "Ana María"
            assert updated.surname == "Ruiz"
            await accounts.login("ana@example.com", "Changed999")

            await accounts.delete_user(user.id)
            with pytest.raises(UserNotFoundError):
                await accounts.get_user(user.id)
            with pytest.raises(UserNotFoundError):
                await accounts.delete_user(user.id)
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_change_password_requires_current_password(tmp_path) -> None:
    async def runner() -> None:
        database, accounts = await _service(tmp_path)
        try:
            user = await accounts.register(_register_request())
            with pytest.raises(AuthenticationError):
                await accounts.change_password(user.id, "Nope12345", "Another456")

            await accounts.change_password(user.id, "Secret123", "Another456")
            await accounts.login("ana@example.com", "Another456")
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_password_reset_flow(tmp_path) -> None:
    async def runner() -> None:
        mailer = RecordingMailer()
        database, accounts = await _service(tmp_path, mailer)
        try:
            user = await accounts.register(_register_request())
            await accounts.forgot_password("ana@example.com")
            assert len(mailer.sent) == 1
            recipient, token = mailer.sent[0]
            assert recipient == "ana@example.com"

            # a reset token cannot be used as a session token
            with pytest.raises(AuthenticationError):
                accounts.authenticate(token)

            await accounts.reset_password(token, "Fresh2024x")
            _, logged_in = await accounts.login("ana@example.com", "Fresh2024x")
            assert logged_in.id == user.id

            with pytest.raises(UserNotFoundError):
                await accounts.forgot_password("ghost@example.com")
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_reset_password_rejects_session_tokens(tmp_path) -> None:
    async def runner() -> None:
        database, accounts = await _service(tmp_path)
        try:
            await accounts.register(_register_request())
            token, _ = await accounts.login("ana@example.com", "Secret123")
            with pytest.raises(AuthenticationError):
                await accounts.reset_password(token, "Fresh2024x")
            with pytest.raises(AuthenticationError):
                await accounts.reset_password("not-a-token", "Fresh2024x")
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_token_signer_rejects_foreign_secret() -> None:
    token = TokenSigner("first-secret").issue("user-1", "a@b.co", RESET_PURPOSE)

    assert TokenSigner("first-secret").verify(token, RESET_PURPOSE, 60).subject == "user-1"
    with pytest.raises(AuthenticationError):
        TokenSigner("second-secret").verify(token, RESET_PURPOSE, 60)
    with pytest.raises(AuthenticationError):
        TokenSigner("first-secret").verify("", RESET_PURPOSE, 60)


def test_reset_mailer_builds_link() -> None:
    mailer = ResetMailer(build_settings(FRONTEND_URL="https://popfix.example/"))

    assert mailer.reset_url("abc=") == "https://popfix.example/reset-password?token=abc%3D"
    message = mailer.build_message("ana@example.com", "abc")
    assert message["To"] == "ana@example.com"
    assert "reset-password?token=abc" in message.get_content()
    assert "15 minutes" in message.get_content()


@pytest.mark.anyio("asyncio")
async def test_reset_mailer_requires_smtp_host() -> None:
    mailer = ResetMailer(build_settings(EMAIL_HOST=None))
    with pytest.raises(MailNotConfiguredError):
        await mailer.send_reset("ana@example.com", "abc")
