"""
Test infrastructure for the Pandamarket API.

Strategy
--------
- SQLite in-memory via aiosqlite; StaticPool makes every session share the
  one connection that holds the in-memory database.
- The app's get_db dependency is overridden with the test session factory.
- Tables are created before each test and dropped after it.
- Redis is disabled with cache._redis = None; CacheManager treats that as
  a miss on every read and a no-op on every write.
- bcrypt runs at its minimum cost so registration does not dominate the
  suite's runtime.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from pandamarket.config import settings
from pandamarket.database import Base, get_db
from pandamarket.main import app
from pandamarket.cache import cache
from pandamarket.middleware import install_query_counter

settings.BCRYPT_ROUNDS = 4

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            cache.discard_pending(session)
            raise
        await cache.flush_pending(session)


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that seed or inspect rows directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

async def register_user(
    client: AsyncClient,
    email: str,
    nickname: str | None = None,
    password: str = "secret123",
) -> tuple[int, dict]:
    """
    Register a user and return ``(user_id, headers)``.

    The client's cookie jar is cleared afterwards, so each request picks its
    caller explicitly through the returned Cookie header.
    """
    resp = await client.post("/api/v1/auth/register", json={
        "email": email,
        "nickname": nickname or email.split("@")[0],
        "password": password,
    })
    assert resp.status_code == 201, resp.text
    token = resp.cookies[settings.ACCESS_TOKEN_COOKIE_NAME]
    client.cookies.clear()
    return resp.json()["id"], {"Cookie": f"{settings.ACCESS_TOKEN_COOKIE_NAME}={token}"}


@pytest_asyncio.fixture
async def seller(async_client: AsyncClient) -> tuple[int, dict]:
    return await register_user(async_client, "seller@example.com", "seller")


@pytest_asyncio.fixture
async def buyer(async_client: AsyncClient) -> tuple[int, dict]:
    return await register_user(async_client, "buyer@example.com", "buyer")
