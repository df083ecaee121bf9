"""Password hashing and bearer token helpers."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from helpline.config import get_settings
from helpline.utils.time import utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=get_settings().BCRYPT_ROUNDS
)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""

    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its stored bcrypt hash."""

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Unverifiable password hash encountered")
        return False


def create_access_token(user_id: int, *, expires_delta: timedelta | None = None) -> str:
    """Issue a signed JWT whose ``id`` claim identifies the user."""

    settings = get_settings()
    expire = utcnow() + (expires_delta or timedelta(days=settings.JWT_EXPIRE_DAYS))
    claims = {"id": user_id, "exp": expire}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Return the token claims, or ``None`` when the signature or expiry is invalid."""

    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.info("Bearer token rejected", extra={"reason": str(exc)})
        return None


__all__ = ["hash_password", "verify_password", "create_access_token", "decode_access_token"]
