"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session, sessionmaker

# --- Default env before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./helpline_test.db")
os.environ.setdefault("HELPLINE_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from helpline.main import app  # noqa: E402
from helpline import db  # noqa: E402
from helpline.config import get_settings  # noqa: E402
from helpline.core.runtime_state import reset_job_failures  # noqa: E402
from helpline.db import get_db  # noqa: E402
from helpline.models import HealthProfile, User  # noqa: E402
from helpline.schemas.health_profile import HealthProfileCreate  # noqa: E402
from helpline.services import health_profiles  # noqa: E402
from helpline.services.rate_limit import reset_rate_limit_store  # noqa: E402
from helpline.utils.tokens import create_access_token, hash_password  # noqa: E402

DB_PATH = Path("./helpline_test.db")
DEFAULT_PASSWORD = "Boilermaker1!"


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file per test session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = db.build_engine(os.environ["DATABASE_URL"])
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                                   future=True, expire_on_commit=False)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture(scope="session", autouse=True)
def startup_app() -> Iterator[None]:
    db.init_engine()
    yield
    db.close_engine()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def fresh_runtime_state() -> Iterator[None]:
    reset_rate_limit_store()
    reset_job_failures()
    yield
    reset_rate_limit_store()
    reset_job_failures()


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def trusted_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run the test as if a reverse proxy sets X-Forwarded-For."""

    monkeypatch.setattr(get_settings(), "TRUSTED_PROXY", True)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def profile_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "dateOfBirth": "2004-05-01",
        "bloodType": "O+",
        "height": 175,
        "weight": 70,
        "allergies": [{"name": "Peanuts", "severity": "Severe", "reaction": "Anaphylaxis"}],
        "medications": [{"name": "Albuterol", "dosage": "90mcg", "frequency": "as needed"}],
        "medicalConditions": [{"name": "Asthma"}],
        "campusLocation": "Academic Campus",
        "residence": "Cary Quadrangle",
        "emergencyContacts": {
            "primary": {
                "name": "Pat Doe",
                "relationship": "Parent",
                "phone": "+17655550100",
                "email": "pat.doe@example.com",
            }
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory for student accounts; verified unless told otherwise."""

    def _factory(
        *,
        verified: bool = True,
        active: bool = True,
        password: str = DEFAULT_PASSWORD,
        first_name: str = "Jordan",
        last_name: str = "Lee",
    ) -> User:
        suffix = uuid4().hex[:8]
        user = User(
            purdue_id=f"00{uuid4().hex[:8].upper()}",
            email=f"student-{suffix}@purdue.edu",
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_verified=verified,
            is_active=active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _factory


@pytest.fixture
def make_profile(db_session: Session) -> Callable[..., HealthProfile]:
    def _factory(user: User, **overrides: Any) -> HealthProfile:
        payload = HealthProfileCreate.model_validate(profile_payload(**overrides))
        return health_profiles.create_profile(db_session, user, payload)

    return _factory


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def student(make_user: Callable[..., User], make_profile: Callable[..., HealthProfile]) -> User:
    """Verified student with a health profile."""

    user = make_user()
    make_profile(user)
    return user


@pytest.fixture
def student_headers(student: User) -> dict[str, str]:
    return bearer(student)


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    return bearer


@pytest.fixture
def health_payload() -> Callable[..., dict[str, Any]]:
    return profile_payload
