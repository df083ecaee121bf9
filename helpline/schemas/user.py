"""Account schemas."""
import re

from pydantic import Field, field_validator

from helpline.models.user import AcademicYear
from helpline.schemas.common import CamelModel

PURDUE_ID_RE = re.compile(r"^[A-Z0-9]{10}$")
MIN_PASSWORD_LENGTH = 8


class UserRegister(CamelModel):
    purdue_id: str
    email: str
    password: str
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    major: str | None = Field(default=None, max_length=120)
    year: AcademicYear = AcademicYear.FRESHMAN

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_names(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be blank")
        return cleaned


class UserLogin(CamelModel):
    email: str
    password: str


class UserProfileUpdate(CamelModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    major: str | None = Field(default=None, max_length=120)
    year: AcademicYear | None = None


class PasswordChange(CamelModel):
    current_password: str
    new_password: str


class EmailVerification(CamelModel):
    email: str
    verification_code: str | None = None


class ForgotPassword(CamelModel):
    email: str


class UserRead(CamelModel):
    id: int
    purdue_id: str
    email: str
    first_name: str
    last_name: str
    major: str | None = None
    year: AcademicYear
    is_verified: bool


class AuthTokenRead(UserRead):
    token: str
