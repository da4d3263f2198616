"""Shared fixtures: isolated in-memory database, fast bcrypt, controllable clocks."""

import asyncio
import os

# Settings are read once and cached, so the environment must be in place
# before anything under app/ is imported.
os.environ.update(
    {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
        "BCRYPT_ROUNDS": "4",
        "RATE_LIMIT_BACKEND": "memory",
        "ADMIN_USERNAME": "admin",
        "ADMIN_PASSWORD": "AdminPass123",
        "ADMIN_EMAIL": "admin@example.com",
        "APP_ENV": "test",
    }
)

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.core.security import Principal, TokenService
from app.db.database import AsyncSessionLocal, drop_db, init_db
from app.db.repositories import AccountRepository, CommentRepository
from app.main import app
from app.models.schemas import Role
from app.services.auth_service import AuthenticationService, AuthTrackers
from app.services.comment_service import CommentModerationEngine
from app.services.credential_store import CredentialStore
from app.services.lockout_store import InMemoryLockoutStore
from app.services.rate_limiter import LockoutPolicy, LockoutTracker

TEST_SECRET = "test-secret-key-with-enough-length-for-hs256"


class FakeClock:
    """Seconds-since-epoch clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> None:
        self.now += seconds + minutes * 60


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lockout_store() -> InMemoryLockoutStore:
    return InMemoryLockoutStore()


@pytest.fixture
def login_tracker(lockout_store, clock) -> LockoutTracker:
    return LockoutTracker(
        "login", LockoutPolicy(max_attempts=5, window=timedelta(minutes=15)), lockout_store, clock
    )


@pytest.fixture
def trackers(lockout_store, clock, login_tracker) -> AuthTrackers:
    return AuthTrackers(
        login=login_tracker,
        admin_login=LockoutTracker(
            "admin-login", LockoutPolicy(5, timedelta(minutes=15)), lockout_store, clock
        ),
        register=LockoutTracker(
            "register", LockoutPolicy(3, timedelta(minutes=60)), lockout_store, clock
        ),
    )


@pytest.fixture
def token_service(clock) -> TokenService:
    return TokenService(secret=TEST_SECRET, clock=clock)


@pytest.fixture
async def db_session():
    await init_db()
    async with AsyncSessionLocal() as session:
        yield session
        await session.rollback()
    await drop_db()


@pytest.fixture
def credentials(db_session) -> CredentialStore:
    return CredentialStore(AccountRepository(db_session))


@pytest.fixture
def auth_service(db_session, credentials, token_service, trackers) -> AuthenticationService:
    return AuthenticationService(
        credentials=credentials,
        accounts=AccountRepository(db_session),
        tokens=token_service,
        trackers=trackers,
    )


@pytest.fixture
def engine(db_session) -> CommentModerationEngine:
    return CommentModerationEngine(CommentRepository(db_session))


@pytest.fixture
def admin() -> Principal:
    return Principal(role=Role.ADMIN, subject_id="1", username="admin")


@pytest.fixture
def reader() -> Principal:
    return Principal(role=Role.USER, subject_id="2", username="reader")


# ── HTTP fixtures ─────────────────────────────────────────


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    asyncio.run(drop_db())


@pytest.fixture
def admin_headers(client) -> dict:
    resp = client.post("/api/auth/admin/login", json={"username": "admin", "password": "AdminPass123"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def user_headers(client) -> dict:
    resp = client.post(
        "/api/auth/register",
        json={"username": "reader", "email": "reader@example.com", "password": "ReaderPass1"},
    )
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}
