"""Utility helpers for the PopFix service."""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FORBIDDEN_PASSWORD_PATTERNS = (
    re.compile(r"(\bSELECT\b|\bINSERT\b|\bUPDATE\b|\bDELETE\b|\bDROP\b|\bCREATE\b)", re.I),
    re.compile(r"(\bUNION\b|\bOR\b.*=.*\b|\bAND\b.*=.*\b)", re.I),
    re.compile(r"['\"`;\\]"),
    re.compile(r"^\s+$"),
)
PASSWORD_MIN_LENGTH = 8


def round_one_decimal(value: float) -> float:
    """Round half away from zero to one decimal place (``3.25`` -> ``3.3``)."""

    quantized = Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(quantized)


def coerce_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or ``None`` when it does not parse."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_nullable_bool(value: Any) -> bool | None:
    """Interpret client supplied favorite flags (``"true"``, ``1``, ``None``...)."""

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def is_explicit_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip().lower() == "null")


def normalize_email(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip().lower()
    return cleaned or None


def password_problem(password: str) -> str | None:
    """Return a human readable reason the password is rejected, if any."""

    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
    if any(pattern.search(password) for pattern in FORBIDDEN_PASSWORD_PATTERNS):
        return "Password contains forbidden characters or patterns"
    if not (re.search(r"[a-zA-Z]", password) and re.search(r"\d", password)):
        return "Password must contain at least one letter and one number"
    return None


def initials(*names: str | None) -> str:
    """Build the comment avatar from the first letter of each name part."""

    letters = [part.strip()[0] for part in names if part and part.strip()]
    if len(letters) == 1 and names[0]:
        # Single-word names fall back to their first two letters.
        letters = list(names[0].strip()[:2])
    return "".join(letters[:2]).upper() or "?"
