"""User accounts: registration, login tokens and password management."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import User
from ..errors import AuthenticationError, ConflictError, UserNotFoundError
from ..models import RegisterRequest, UserUpdateRequest
from ..security import (
    RESET_PURPOSE,
    SESSION_PURPOSE,
    TokenClaims,
    TokenSigner,
    hash_password,
    verify_password,
)
from ..utils import normalize_email
from .mailer import ResetMailer

logger = logging.getLogger(__name__)


class AccountService:
    """Coordinates user rows, password hashes and signed tokens."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        mailer: ResetMailer | None = None,
    ):
        self._settings = settings
        self._session_factory = session_factory
        self._signer = TokenSigner(settings.secret_key)
        self._mailer = mailer or ResetMailer(settings)

    async def list_users(self) -> list[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User).order_by(User.created_at))
            return list(result.scalars())

    async def get_user(self, user_id: str) -> User:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def find_by_email(self, email: str) -> User | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == normalized))
            return result.scalar_one_or_none()

    async def register(self, request: RegisterRequest) -> User:
        if await self.find_by_email(request.email) is not None:
            raise ConflictError("Email is already registered")
        user = User(
            email=request.email,
            name=request.name,
            surname=request.surname,
            age=request.age,
            password_hash=hash_password(request.password),
        )
        async with self._session_factory() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                raise ConflictError("Email is already registered") from exc
        logger.info("Registered user %s", user.id)
        return user

    async def login(self, email: str, password: str) -> tuple[str, User]:
        """Return a session token and the user for valid credentials."""

        user = await self.find_by_email(email)
        if user is None:
            raise UserNotFoundError("User not found")
        if not verify_password(user.password_hash, password):
            raise AuthenticationError("Incorrect password")
        token = self._signer.issue(user.id, user.email, SESSION_PURPOSE)
        return token, user

    def authenticate(self, token: str) -> TokenClaims:
        return self._signer.verify(
            token, SESSION_PURPOSE, self._settings.session_token_ttl_seconds
        )

    async def update_user(self, user_id: str, request: UserUpdateRequest) -> User:
        changes = request.model_dump(exclude_unset=True, exclude={"password"})
        changes = {key: value for key, value in changes.items() if value is not None}
        if request.password:
            changes["password_hash"] = hash_password(request.password)

        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            for field, value in changes.items():
                setattr(user, field, value)
            try:
                await session.commit()
            except IntegrityError as exc:
                raise ConflictError("Email is already registered") from exc
        return user

    async def delete_user(self, user_id: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(delete(User).where(User.id == user_id))
            await session.commit()
        if not result.rowcount:
            raise UserNotFoundError(f"User {user_id} not found")
        logger.info("Deleted user %s", user_id)

    async def change_password(
        self, user_id: str, old_password: str, new_password: str
    ) -> None:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            if not verify_password(user.password_hash, old_password):
                raise AuthenticationError("Incorrect password")
            user.password_hash = hash_password(new_password)
            await session.commit()

    def issue_reset_token(self, user: User) -> str:
        return self._signer.issue(user.id, user.email, RESET_PURPOSE)

    async def forgot_password(self, email: str) -> None:
        """Email a reset link to the account owner."""

        user = await self.find_by_email(email)
        if user is None:
            raise UserNotFoundError("User not found")
        token = self.issue_reset_token(user)
        await self._mailer.send_reset(user.email, token)
        logger.info("Issued password reset for user %s", user.id)

    async def reset_password(self, token: str, new_password: str) -> None:
        claims = self._signer.verify(
            token, RESET_PURPOSE, self._settings.reset_token_ttl_seconds
        )
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == claims.email))
            user = result.scalar_one_or_none()
            if user is None or user.id != claims.subject:
                raise AuthenticationError("Invalid or expired token")
            user.password_hash = hash_password(new_password)
            await session.commit()
