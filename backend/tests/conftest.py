"""Shared fixtures for the onboarding test suite.

Two kinds of API client are provided:
- client / unauthenticated_client: state lives in an InMemoryProgressStore
- db_client: requests run against the PostgreSQL test database

Database fixtures skip when PostgreSQL is not reachable.
"""

import socket
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Iterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.models.base import Base
from app.services.onboarding_store import InMemoryProgressStore

TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Session owner for every authenticated client
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# Second provider, for username collisions
USER_B_ID = uuid.UUID("00000000-0000-0000-0000-000000000099")

# Security: test-only signing key
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a session token the way the auth service does.

    Args:
        user_id: Value of the sub claim.
        secret: HS256 key. Pass a different one to forge a bad signature.
        expires_delta: Lifetime; negative for an already-expired token.
            Defaults to one hour.

    Returns:
        Encoded JWT string.
    """
    issued_at = datetime.now(UTC)
    claims = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(hours=1)),
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def _postgres_reachable() -> bool:
    try:
        with socket.create_connection(
            ("127.0.0.1", settings.database_port), timeout=1
        ):
            return True
    except OSError:
        return False


_POSTGRES_AVAILABLE = _postgres_reachable()


@asynccontextmanager
async def _api_client(*, authenticated: bool = True) -> AsyncIterator[AsyncClient]:
    """AsyncClient bound to the app, with the session cookie when asked."""
    from app.main import app

    cookies = {}
    if authenticated:
        cookies[settings.auth_cookie_name] = create_test_jwt(TEST_USER_ID)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies,
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


def _override(dependency, replacement) -> None:
    from app.main import app

    app.dependency_overrides[dependency] = replacement


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """Engine on the test database with a fresh schema per test."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on port {settings.database_port}. "
            "Start database with: docker compose up -d"
        )

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


async def _insert_user(db: AsyncSession, user_id: uuid.UUID, email: str):
    from app.models import User

    user = User(id=user_id, email=email)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession):
    """The session owner as a users row."""
    return await _insert_user(db_session, TEST_USER_ID, "test@example.com")


@pytest_asyncio.fixture
async def user_b(db_session: AsyncSession):
    """A second users row, for uniqueness tests."""
    return await _insert_user(db_session, USER_B_ID, "userb@example.com")


# =============================================================================
# API clients
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryProgressStore:
    """In-memory progress store that knows both test users."""
    return InMemoryProgressStore(known_owners={TEST_USER_ID, USER_B_ID})


@pytest.fixture
def enable_test_auth() -> Iterator[None]:
    """Turn on JWT auth with the test secret for one test."""
    saved = (settings.auth_enabled, settings.auth_secret)
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    yield
    settings.auth_enabled, settings.auth_secret = saved


@pytest_asyncio.fixture
async def client(
    memory_store: InMemoryProgressStore,
    enable_test_auth,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client for TEST_USER_ID, state in memory_store."""
    from app.api.deps import get_progress_store

    _override(get_progress_store, lambda: memory_store)
    async with _api_client() as ac:
        yield ac


@pytest_asyncio.fixture
async def unauthenticated_client(
    memory_store: InMemoryProgressStore,
    enable_test_auth,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient, None]:
    """Auth is on but no session cookie is sent."""
    from app.api.deps import get_progress_store

    _override(get_progress_store, lambda: memory_store)
    async with _api_client(authenticated=False) as ac:
        yield ac


@pytest_asyncio.fixture
async def db_client(
    session_factory: async_sessionmaker[AsyncSession],
    test_user,  # noqa: ARG001
    enable_test_auth,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client whose requests use the real SqlProgressStore.

    get_db is replaced with the same commit-or-rollback boundary as
    production, bound to the test database.
    """
    from app.core.database import get_db

    async def get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    _override(get_db, get_test_db)
    async with _api_client() as ac:
        yield ac


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Rate limits are only on in the tests that enforce them."""
    from app.core.rate_limiting import limiter

    saved = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = saved
