"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite). StaticPool
   keeps a single connection so every session sees the same data.
2. Tables are created from the ORM metadata, so there is nothing to
   roll back — the database vanishes with the engine.
3. The app's get_db and registration lock dependencies are overridden so
   requests run against that database and a lock private to the test.

Environment variables are set before anything from qureka is imported,
because Settings is read once at import time.
"""

import os

os.environ.setdefault("QUREKA_ENVIRONMENT", "test")
os.environ.setdefault("QUREKA_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("QUREKA_BCRYPT_ROUNDS", "4")
os.environ.setdefault(
    "QUREKA_ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef0123456789"
)
os.environ.setdefault(
    "QUREKA_REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef012345678"
)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qureka.auth.jwt import TokenCodec
from qureka.auth.locks import RegistrationLock, get_registration_lock
from qureka.config import settings
from qureka.db.engine import get_db
from qureka.db.models import Base
from qureka.main import app
from qureka.services.credential_store import CredentialStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def codec():
    """Codec with the same secrets as the app."""
    return TokenCodec.from_settings(settings)


@pytest.fixture()
def lock():
    return RegistrationLock(timeout=5.0)


@pytest_asyncio.fixture()
async def client(db_session, lock):
    """HTTP client with the app's get_db and registration lock overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registration_lock] = lambda: lock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def make_user(db_session):
    """Factory: create a user directly in the credential store."""
    counter = {"n": 0}

    async def _make(username: str = None, password: str = "password_123", **fields):
        counter["n"] += 1
        n = counter["n"]
        return await CredentialStore(db_session).create(
            username=username or f"user{n}",
            password=password,
            name=fields.get("name", f"User {n}"),
            age=fields.get("age", 20),
            gender=fields.get("gender", "F"),
            phone=fields.get("phone", f"010-0000-{n:04d}"),
            email=fields.get("email"),
        )

    return _make
