"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

# Must be set before settings are first read
_TMPDIR = tempfile.mkdtemp(prefix="pointsbook_test_")
os.environ.setdefault("PB_DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMPDIR, 'test.db')}")
os.environ.setdefault("PB_REDIS_URL", "")
os.environ.setdefault("PB_LOG_FORMAT", "console")
os.environ.setdefault("PB_ATOMIC_RETRY_BACKOFF_MS", "5")

from pointsbook.auth.jwt import create_access_token  # noqa: E402
from pointsbook.auth.password import hash_password  # noqa: E402
from pointsbook.config import get_settings  # noqa: E402
from pointsbook.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from pointsbook.db.base import Base  # noqa: E402
from pointsbook.db.models import Transaction, User  # noqa: E402
from pointsbook.ledger.atomic import SessionFactory  # noqa: E402
from pointsbook.ledger.roles import Role  # noqa: E402
from pointsbook.main import create_app  # noqa: E402

get_settings.cache_clear()

TEST_PASSWORD = "secret-pass"

MakeUser = Callable[..., Awaitable[User]]


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[SessionFactory, None]:
    """Fresh schema per test; yields the factory used to open atomic units."""
    settings = get_settings()
    await init_db(settings.database_url)
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield get_session_factory()
    await close_db()


@pytest.fixture(scope="session")
def password_hash() -> str:
    """One argon2 hash shared by every helper-created account."""
    return hash_password(TEST_PASSWORD)


@pytest_asyncio.fixture
async def make_user(session_factory: SessionFactory, password_hash: str) -> MakeUser:
    """Insert an account directly, bypassing role checks."""
    counter = 0

    async def _make(
        role: Role = Role.USER,
        *,
        points: int = 0,
        admin_wallet: int = 0,
        admin_used: int = 0,
        key: str | None = None,
        phone: str | None = None,
        blocked: bool = False,
    ) -> User:
        nonlocal counter
        counter += 1
        now = datetime.now(timezone.utc)
        user = User(
            key=key or f"{role.value[0].upper()}{counter:04d}",
            role=role.value,
            name=f"{role.value} {counter}",
            phone=phone,
            points=points,
            admin_wallet=admin_wallet,
            admin_used=admin_used,
            password_hash=password_hash,
            is_blocked=blocked,
            created_at=now,
            updated_at=now,
        )
        async with session_factory() as db, db.begin():
            db.add(user)
        return user

    return _make


async def read_user(session_factory: SessionFactory, key: str) -> User | None:
    async with session_factory() as db:
        return await db.get(User, key)


async def read_transactions(session_factory: SessionFactory, key: str) -> list[Transaction]:
    """All of a user's transactions, oldest first."""
    async with session_factory() as db:
        rows = await db.execute(
            select(Transaction).where(Transaction.user_key == key).order_by(Transaction.id)
        )
        return list(rows.scalars().all())


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.key, user.role)}"}


@pytest_asyncio.fixture
async def app(session_factory: SessionFactory) -> FastAPI:
    """Application wired to the test database. The lifespan is not run."""
    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
