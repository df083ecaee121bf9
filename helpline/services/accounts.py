"""Account services: registration, login lockout and profile maintenance."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from helpline.config import get_settings
from helpline.models.user import User
from helpline.schemas.user import (
    MIN_PASSWORD_LENGTH,
    PURDUE_ID_RE,
    EmailVerification,
    PasswordChange,
    UserLogin,
    UserProfileUpdate,
    UserRegister,
)
from helpline.utils.audit import actor_for_user, log_audit
from helpline.utils.errors import error_response
from helpline.utils.time import utcnow
from helpline.utils.tokens import hash_password, verify_password

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.scalars(select(User).where(User.email == email.strip().lower())).first()


def _user_exists() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error_response("USER_EXISTS", "User already exists with this Purdue ID or email."),
    )


def register_user(db: Session, payload: UserRegister) -> User:
    """Create an unverified student account."""

    settings = get_settings()
    existing = db.scalars(
        select(User).where(or_(User.purdue_id == payload.purdue_id, User.email == payload.email))
    ).first()
    if existing is not None:
        raise _user_exists()

    if not payload.email.endswith(f"@{settings.ALLOWED_EMAIL_DOMAIN}"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("INVALID_EMAIL_DOMAIN", "Please use your Purdue University email address."),
        )
    if not PURDUE_ID_RE.match(payload.purdue_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("INVALID_PURDUE_ID", "Invalid Purdue ID format."),
        )
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "PASSWORD_TOO_SHORT",
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            ),
        )

    user = User(
        purdue_id=payload.purdue_id,
        email=payload.email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        major=payload.major,
        year=payload.year,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise _user_exists() from exc

    log_audit(
        db,
        actor=actor_for_user(user),
        action="USER_REGISTERED",
        entity="User",
        entity_id=user.id,
        data={"email": user.email, "purdue_id": user.purdue_id},
    )
    db.commit()
    db.refresh(user)
    logger.info("User registered", extra={"user_id": user.id})
    return user


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error_response("INVALID_CREDENTIALS", "Invalid credentials."),
    )


def record_failed_login(user: User, *, now: datetime) -> None:
    """Count a failed login; the attempt that reaches the limit locks the account.

    A lock that has already run out starts a fresh count at one.
    """

    settings = get_settings()
    if user.lock_until is not None and not user.is_locked(now):
        user.lock_until = None
        user.login_attempts = 1
        return

    user.login_attempts = (user.login_attempts or 0) + 1
    if user.login_attempts >= settings.LOGIN_MAX_ATTEMPTS and not user.is_locked(now):
        user.lock_until = now + timedelta(seconds=settings.LOCKOUT_SECONDS)


def authenticate(db: Session, payload: UserLogin, *, now: datetime | None = None) -> User:
    now = now or utcnow()
    user = find_user_by_email(db, payload.email)
    if user is None:
        raise _invalid_credentials()

    if user.is_locked(now):
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail=error_response(
                "ACCOUNT_LOCKED",
                "Account is temporarily locked due to multiple failed login attempts. Please try again later.",
            ),
        )

    if not verify_password(payload.password, user.password_hash):
        record_failed_login(user, now=now)
        if user.lock_until is not None:
            log_audit(
                db,
                actor="system",
                action="USER_LOCKED",
                entity="User",
                entity_id=user.id,
                data={"lock_until": user.lock_until.isoformat()},
            )
            logger.warning("Account locked after failed logins", extra={"user_id": user.id})
        db.commit()
        raise _invalid_credentials()

    user.login_attempts = 0
    user.lock_until = None
    user.last_login = now
    db.commit()
    db.refresh(user)
    logger.info("User logged in", extra={"user_id": user.id})
    return user


def update_profile(db: Session, user: User, payload: UserProfileUpdate) -> User:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        setattr(user, field, value)

    log_audit(
        db,
        actor=actor_for_user(user),
        action="USER_PROFILE_UPDATED",
        entity="User",
        entity_id=user.id,
        data={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, payload: PasswordChange) -> None:
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "PASSWORD_TOO_SHORT",
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            ),
        )
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("INVALID_CURRENT_PASSWORD", "Current password is incorrect."),
        )

    user.password_hash = hash_password(payload.new_password)
    log_audit(
        db,
        actor=actor_for_user(user),
        action="USER_PASSWORD_CHANGED",
        entity="User",
        entity_id=user.id,
    )
    db.commit()
    logger.info("Password changed", extra={"user_id": user.id})


def verify_email(db: Session, payload: EmailVerification) -> User:
    """Mark the account as verified.

    No code is checked yet: any request naming an unverified account verifies it.
    """

    user = find_user_by_email(db, payload.email)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("USER_NOT_FOUND", "User not found."),
        )
    if user.is_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("ALREADY_VERIFIED", "Email already verified."),
        )

    user.is_verified = True
    log_audit(
        db,
        actor=actor_for_user(user),
        action="USER_VERIFIED",
        entity="User",
        entity_id=user.id,
    )
    db.commit()
    db.refresh(user)
    return user


def forgot_password(db: Session, email: str) -> str:
    user = find_user_by_email(db, email)
    if user is not None:
        logger.info("Password reset requested", extra={"user_id": user.id})
    return FORGOT_PASSWORD_MESSAGE


__all__ = [
    "FORGOT_PASSWORD_MESSAGE",
    "authenticate",
    "change_password",
    "find_user_by_email",
    "forgot_password",
    "record_failed_login",
    "register_user",
    "update_profile",
    "verify_email",
]
