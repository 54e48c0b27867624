"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Settings are read once at import, so the environment is pointed at
   SQLite and given a test signing secret BEFORE promptdex is imported.
2. Each test gets its own in-memory SQLite engine (StaticPool keeps the one
   connection alive, so every session sees the same database) and the
   schema is created from the ORM models.
3. The app's get_db dependency is overridden to hand out that session.

Unlike a savepoint-per-test setup, commits here are real commits — which
is what the UNIQUE-constraint retry logic needs to be exercised properly.
"""

import os

os.environ["PROMPTDEX_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PROMPTDEX_JWT_SECRET"] = "test-secret-0123456789abcdef0123456789abcdef"
os.environ["PROMPTDEX_AUTHORIZED_REDIRECT_URIS"] = (
    '["http://localhost:5173/oauth2/redirect", "https://app.promptdex.dev/oauth2/redirect"]'
)

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from promptdex.auth.password import hash_password  # noqa: E402
from promptdex.auth.principal import Principal  # noqa: E402
from promptdex.auth.tokens import get_token_service  # noqa: E402
from promptdex.db.engine import get_db  # noqa: E402
from promptdex.db.models import Base, User  # noqa: E402
from promptdex.main import app  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    """Per-test session on the per-test database."""
    session = AsyncSession(bind=db_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client running the real app with get_db overridden.

    Learn: Nothing auth-related is mocked — every request goes through the
    real security gate, so tests must log in (or mint a token) to reach
    protected routes.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Account helpers ────────────────────────────────────


async def create_user(
    db: AsyncSession,
    username: str,
    *,
    email: str | None = None,
    password: str | None = TEST_PASSWORD,
    provider: str = "LOCAL",
    roles: list[str] | None = None,
) -> User:
    """Insert an account directly, bypassing the API."""
    user = User(
        username=username,
        email=email or f"{username}@example.com",
        password_hash=hash_password(password) if password else None,
        provider=provider,
        roles=roles or ["USER"],
    )
    db.add(user)
    await db.commit()
    return user


def bearer(user: User) -> dict[str, str]:
    """Authorization header carrying a freshly issued token for `user`."""
    token = get_token_service().issue(Principal.from_user(user))
    return {"Authorization": f"Bearer {token}"}
