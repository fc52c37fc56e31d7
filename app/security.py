"""Password hashing and access token helpers for SmartStudy."""

from __future__ import annotations

import datetime
from typing import Any

import bcrypt
import jwt

from config.settings import get_settings


class TokenError(Exception):
    """Raised when an access token is missing, expired or malformed."""


def hash_password(plaintext: str) -> str:
    """Return a bcrypt hash for the provided password."""
    if not plaintext:
        raise ValueError("Password must be provided.")

    password_bytes = plaintext.encode("utf-8")
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plaintext: str, password_hash: str | None) -> bool:
    """Verify that the supplied plaintext password matches a stored hash."""
    if not password_hash or not plaintext:
        return False

    try:
        return bcrypt.checkpw(
            plaintext.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # bcrypt raises ValueError when hashes are invalid or incorrectly formatted.
        return False


def create_access_token(
    user_id: str,
    role: str,
    *,
    now: datetime.datetime | None = None,
) -> str:
    """Return a signed HS256 token carrying the user id and role."""
    settings = get_settings()
    issued_at = now or datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": issued_at,
        "exp": issued_at + datetime.timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict[str, Any]:
    if not token:
        raise TokenError("Access token required.")
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid token.") from exc
