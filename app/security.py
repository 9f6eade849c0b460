"""Password hashing and signed token helpers."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_PURPOSE = "session"
RESET_PURPOSE = "reset"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


@dataclass(frozen=True, slots=True)
class TokenClaims:
    subject: str
    email: str
    purpose: str


class TokenSigner:
    """Issues and verifies Fernet tokens keyed off the application secret."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("A secret key is required to sign tokens")
        digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def issue(self, subject: str, email: str, purpose: str) -> str:
        document = {"sub": subject, "email": email, "purpose": purpose}
        encoded = self._fernet.encrypt(
            json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
        )
        return encoded.decode("utf-8")

    def verify(self, token: str, purpose: str, ttl_seconds: int) -> TokenClaims:
        """Decode ``token``; reject it when expired or issued for another purpose."""

        if not token:
            raise AuthenticationError("Token required")
        try:
            decrypted = self._fernet.decrypt(token.encode("utf-8"), ttl=ttl_seconds)
        except InvalidToken as exc:
            logger.info("Rejected invalid or expired %s token", purpose)
            raise AuthenticationError("Invalid or expired token") from exc

        try:
            payload: dict[str, Any] = json.loads(decrypted.decode("utf-8"))
        except json.JSONDecodeError as exc:  # pragma: no cover - we only sign JSON
            raise AuthenticationError("Invalid token payload") from exc

        if payload.get("purpose") != purpose:
            raise AuthenticationError("Invalid or expired token")
        subject = payload.get("sub")
        email = payload.get("email")
        if not isinstance(subject, str) or not isinstance(email, str):
            raise AuthenticationError("Invalid token payload")
        return TokenClaims(subject=subject, email=email, purpose=purpose)
