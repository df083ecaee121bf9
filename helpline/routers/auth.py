"""Account endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from helpline.db import get_db
from helpline.models.user import User
from helpline.schemas.user import (
    AuthTokenRead,
    EmailVerification,
    ForgotPassword,
    PasswordChange,
    UserLogin,
    UserProfileUpdate,
    UserRead,
    UserRegister,
)
from helpline.security import (
    HOUR,
    get_current_user,
    ip_rate_limit,
    log_user_action,
    rate_limit,
)
from helpline.services import accounts
from helpline.utils.tokens import create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])

password_change_gate = log_user_action(
    "password_change",
    after=rate_limit("password_change", 3, HOUR, after=get_current_user),
)


def _with_token(user: User) -> AuthTokenRead:
    profile = UserRead.model_validate(user).model_dump()
    return AuthTokenRead(**profile, token=create_access_token(user.id))


@router.post(
    "/register",
    response_model=AuthTokenRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(ip_rate_limit("registration", 3, HOUR))],
)
def register(payload: UserRegister, db: Session = Depends(get_db)) -> AuthTokenRead:
    user = accounts.register_user(db, payload)
    return _with_token(user)


@router.post(
    "/login",
    response_model=AuthTokenRead,
    dependencies=[Depends(ip_rate_limit("login", 5, 15 * 60))],
)
def login(payload: UserLogin, db: Session = Depends(get_db)) -> AuthTokenRead:
    user = accounts.authenticate(db, payload)
    return _with_token(user)


@router.get("/profile", response_model=UserRead)
def get_profile(user: User = Depends(get_current_user)) -> User:
    return user


@router.put("/profile", response_model=UserRead)
def update_profile(
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("profile_update")),
) -> User:
    return accounts.update_profile(db, user, payload)


@router.put("/change-password")
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    user: User = Depends(password_change_gate),
) -> dict[str, str]:
    accounts.change_password(db, user, payload)
    return {"message": "Password updated successfully"}


@router.post("/verify-email")
def verify_email(payload: EmailVerification, db: Session = Depends(get_db)) -> dict[str, object]:
    accounts.verify_email(db, payload)
    return {"message": "Email verified successfully", "isVerified": True}


@router.post(
    "/forgot-password",
    dependencies=[Depends(ip_rate_limit("forgot_password", 3, HOUR))],
)
def forgot_password(payload: ForgotPassword, db: Session = Depends(get_db)) -> dict[str, str]:
    return {"message": accounts.forgot_password(db, payload.email)}


@router.post("/refresh", response_model=AuthTokenRead)
def refresh(user: User = Depends(get_current_user)) -> AuthTokenRead:
    return _with_token(user)
