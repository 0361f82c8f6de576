"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite with a StaticPool, so every session in a
  test sees the same connection (an in-memory database is
  connection-scoped).  Foreign keys are switched on per connection so
  ON DELETE CASCADE behaves as it does on PostgreSQL.
- The app's get_db dependency is overridden with the test session
  factory; tables are created before and dropped after every test.
- Redis is disabled (``cache._redis = None``); the cache then reports
  misses and skips writes, so every request exercises the database path.
- bcrypt runs at its minimum cost to keep signup/login tests fast.
"""
import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DEBUG", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.cache import cache  # noqa: E402
from app.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Category, Role, User  # noqa: E402
from app.security import create_session_token, generate_opaque_token, hash_password  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEFAULT_PASSWORD = "passw0rd123"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine_test)

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
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user():
    """
    Factory inserting a user straight into the database.

    Returns ``(user, headers)`` where *headers* carries a valid session
    token in the ``authorization`` header.
    """

    async def _make(
        username: str = "writer",
        *,
        role: Role = Role.USER,
        verified: bool = True,
        password: str = DEFAULT_PASSWORD,
    ) -> tuple[User, dict]:
        async with async_session_test() as session:
            user = User(
                username=username,
                email=f"{username}@example.com",
                password_hash=hash_password(password),
                role=role,
                is_verified=verified,
                verification_id=generate_opaque_token(),
            )
            session.add(user)
            await session.commit()
        return user, {"authorization": create_session_token(user.id)}

    return _make


@pytest.fixture
def make_category():
    async def _make(name: str = "technology") -> Category:
        async with async_session_test() as session:
            category = Category(name=name)
            session.add(category)
            await session.commit()
        return category

    return _make


@pytest.fixture
def test_engine():
    return engine_test


@pytest.fixture
def session_factory():
    return async_session_test
