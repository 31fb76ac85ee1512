"""
Shared pytest configuration for mtgleader tests.

Every test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection through StaticPool) with tables built from ``Base.metadata``.
Environment variables are pinned before any mtgleader module is imported.
"""

import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENABLE_EMAIL"] = "false"
os.environ["FCM_CREDENTIALS_PATH"] = ""
os.environ.setdefault("PUBLIC_URL", "https://mtgleader.test")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")

from datetime import datetime  # noqa: E402

import pytest_asyncio  # noqa: E402
import pytz  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from mtgleader.database.db import Base, get_db_session  # noqa: E402
from mtgleader.database import models  # noqa: E402, F401
from mtgleader.database.models import User, UserStatus  # noqa: E402
from mtgleader.services import auth_service  # noqa: E402

# Watermark every test user starts from
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=pytz.UTC)


@pytest_asyncio.fixture
async def test_engine():
    """In-memory database engine, dropped after the test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker):
    """A session for service-level tests. Nothing is committed implicitly."""
    async with session_maker() as session:
        yield session
        await session.rollback()


async def create_user(
    session,
    username,
    email=None,
    display_name="",
    password="password123",
    status=UserStatus.ACTIVE,
    updated_at=BASE_TIME,
):
    """Helper: insert a user with an explicit watermark and return it."""
    user = User(
        email=email or f"{username.lower()}@example.com",
        username=username,
        display_name=display_name,
        status=status.value,
        password_hash=auth_service.hash_password(password),
        created_at=BASE_TIME,
        updated_at=updated_at,
    )
    session.add(user)
    await session.flush()
    return user


@pytest_asyncio.fixture
async def users(db_session):
    """Alice, Bob, Carol and Dave, all active."""
    alice = await create_user(db_session, "alice", display_name="Alice")
    bob = await create_user(db_session, "bob", display_name="Bob")
    carol = await create_user(db_session, "carol", display_name="Carol")
    dave = await create_user(db_session, "dave")
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave}


# ──────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_maker):
    """AsyncClient over the app with the DB session pointed at the test engine."""
    from mtgleader.api.main import app

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user_with_token(session_maker, username, **kwargs):
    """Helper: commit a user plus a bearer session; return (user, auth headers)."""
    async with session_maker() as session:
        user = await create_user(session, username, **kwargs)
        token = await auth_service.create_session(session, user.id)
        await session.commit()
    return user, {"Authorization": f"Bearer {token}"}
