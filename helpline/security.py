"""Access gate dependencies: bearer token, account checks and rate limits."""
from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from helpline.config import get_settings
from helpline.db import get_db
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.services.rate_limit import get_rate_limit_store
from helpline.utils.errors import error_response, http_error
from helpline.utils.tokens import decode_access_token

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR


def _extract_token(authorization: str | None = Header(default=None)) -> str | None:
    """Return the token from ``Authorization: Bearer ...``."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1].strip()
        return token or None
    return None


def get_current_user(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_token),
) -> User:
    """Resolve the bearer token to an active user."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NOT_AUTHORIZED_NO_TOKEN", "Not authorized, no token."),
        )

    claims = decode_access_token(token)
    user_id = claims.get("id") if claims else None
    if not isinstance(user_id, int):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NOT_AUTHORIZED_TOKEN_FAILED", "Not authorized, token failed."),
        )

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("USER_NOT_FOUND", "User not found."),
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("USER_DEACTIVATED", "User account is deactivated."),
        )
    return user


def require_verified_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response(
                "ACCOUNT_NOT_VERIFIED",
                "Account not verified. Please verify your Purdue email address.",
            ),
        )
    return user


def require_health_profile(
    user: User = Depends(require_verified_user),
    db: Session = Depends(get_db),
) -> HealthProfile:
    """Return the caller's health profile, failing with 404 when it does not exist yet."""
    profile = db.scalars(select(HealthProfile).where(HealthProfile.user_id == user.id)).first()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response(
                "HEALTH_PROFILE_NOT_FOUND",
                "Health profile not found. Please complete your health information first.",
            ),
        )
    return profile


def enforce_rate_limit(identity: str, action: str, max_attempts: int, window_seconds: int) -> None:
    """Count one call of ``action`` for ``identity``; raise 429 once the window is full."""

    decision = get_rate_limit_store().hit(f"{identity}:{action}", max_attempts, window_seconds)
    if not decision.allowed:
        logger.warning(
            "Rate limit exceeded",
            extra={"identity": identity, "action": action, "retry_after": decision.retry_after},
        )
        raise http_error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "RATE_LIMITED",
            f"Too many {action} attempts. Please try again later.",
            headers={"Retry-After": str(decision.retry_after)},
        )


def rate_limit(
    action: str,
    max_attempts: int,
    window_seconds: int,
    *,
    after: Callable[..., Any] = require_verified_user,
) -> Callable[..., Any]:
    """Per-user limit evaluated once ``after`` has passed; returns whatever ``after`` returns."""

    if max_attempts < 1 or window_seconds < 1:
        raise RuntimeError("rate_limit needs a positive limit and window")

    def _dep(gated: Any = Depends(after), user: User = Depends(get_current_user)) -> Any:
        enforce_rate_limit(f"user:{user.id}", action, max_attempts, window_seconds)
        return gated

    return _dep


def client_ip(request: Request) -> str:
    """Caller address; the forwarded header counts only behind a trusted proxy."""

    if get_settings().TRUSTED_PROXY:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.client.host if request.client else "unknown"


def ip_rate_limit(action: str, max_attempts: int, window_seconds: int) -> Callable[..., None]:
    """Limit keyed by client IP, for routes called before a user is known."""

    def _dep(request: Request) -> None:
        enforce_rate_limit(f"ip:{client_ip(request)}", action, max_attempts, window_seconds)

    return _dep


def log_user_action(action: str, *, after: Callable[..., Any] = get_current_user) -> Callable[..., Any]:
    """Log the action once ``after`` has passed; returns whatever ``after`` returns."""

    def _dep(gated: Any = Depends(after), user: User = Depends(get_current_user)) -> Any:
        logger.info(
            "User %s (%s) performed action: %s",
            user.id,
            user.email,
            action,
            extra={"user_id": user.id, "action": action},
        )
        return gated

    return _dep


__all__ = [
    "DAY",
    "HOUR",
    "client_ip",
    "enforce_rate_limit",
    "get_current_user",
    "ip_rate_limit",
    "log_user_action",
    "rate_limit",
    "require_health_profile",
    "require_verified_user",
]
