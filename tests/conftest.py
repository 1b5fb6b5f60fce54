"""Test fixtures — in-memory database, controllable clocks, fresh app per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (StaticPool keeps the one
   connection alive, so every session sees the same database)
2. The app's get_db dependency is overridden to hand out that session
3. A fresh app is built per test with its own TokenCodec and RateLimiter,
   so token clocks and bucket state never leak between tests
"""

import os

# Must be set before ecovale_hr.config builds its settings singleton
os.environ.setdefault("ECOVALE_BCRYPT_ROUNDS", "4")
os.environ.setdefault("ECOVALE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ECOVALE_LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ecovale_hr.auth.jwt import TokenCodec
from ecovale_hr.auth.password import hash_password
from ecovale_hr.auth.revocation import TokenDenylist
from ecovale_hr.config import settings
from ecovale_hr.db.engine import get_db
from ecovale_hr.db.models import Base, User
from ecovale_hr.main import create_app
from ecovale_hr.middleware.rate_limit import BucketStore, RateLimiter

TEST_SECRET = "test-secret-key-that-is-comfortably-longer-than-32-bytes"
USER_PASSWORD = "correct-password-123"


class FakeClock:
    """Wall clock for the token codec. Call to read, advance() to move."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Monotonic clock (float seconds) for bucket refill."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def codec(clock):
    return TokenCodec(TEST_SECRET, clock=clock)


@pytest.fixture()
def bucket_clock():
    return FakeMonotonic()


@pytest.fixture()
def rate_limiter(bucket_clock):
    return RateLimiter.from_settings(settings, store=BucketStore(clock=bucket_clock))


@pytest.fixture()
def denylist():
    return TokenDenylist()


@pytest_asyncio.fixture()
async def db_session():
    """Per-test in-memory database with the schema created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
    await engine.dispose()


@pytest.fixture()
def app(codec, rate_limiter, denylist, db_session):
    """Fresh application wired to the test codec, limiter and database."""
    application = create_app(codec=codec, rate_limiter=rate_limiter, denylist=denylist)

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _add_user(db: AsyncSession, username: str, roles: list[str]) -> User:
    user = User(
        username=username,
        email=f"{username}@ecovale.test",
        full_name=username.title(),
        password_hash=hash_password(USER_PASSWORD),
        roles=roles,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture()
async def user(db_session):
    return await _add_user(db_session, "alice", ["ROLE_USER"])


@pytest_asyncio.fixture()
async def admin(db_session):
    return await _add_user(db_session, "root", ["ROLE_ADMIN", "ROLE_USER"])


@pytest.fixture()
def auth_header(codec):
    """Build an Authorization header for a subject/roles pair."""

    def _make(subject: str = "alice", roles=("ROLE_USER",)) -> dict:
        return {"Authorization": f"Bearer {codec.issue(subject, roles)}"}

    return _make
