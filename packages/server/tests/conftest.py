"""
Shared fixtures: in-memory SQLite database, API client, auth helpers.
"""

import os

# Settings are cached on first import, so the environment must be set first
os.environ.setdefault("TS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TS_EMAIL_BACKEND", "console")
os.environ.setdefault("TS_FRONTEND_URL", "https://app.example.com")
os.environ.setdefault("TS_LOG_JSON", "false")
os.environ.setdefault("TS_LOG_LEVEL", "WARNING")

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core import dispatch
from app.core.auth import create_jwt
from app.core.database import get_session
from app.main import app as fastapi_app
from app.services import accounts


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """A session for service-level tests (flushed, never committed)."""
    async with session_factory() as s:
        yield s


@pytest.fixture(autouse=True)
async def email_sender():
    """Replace the outbound email backend; pending sends are drained after each test."""
    sender = MagicMock()
    sender.send_email_with_template = AsyncMock(return_value=None)
    with patch("app.services.memberships.get_email_sender", return_value=sender):
        yield sender
        await dispatch.drain(timeout=5)


@pytest.fixture
async def client(session_factory):
    async def _override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Create a committed user with one email address. Returns the user id."""

    async def _make(email: str, name: str | None = None) -> str:
        async with session_factory() as s:
            user = await accounts.signup(s, ip_address="127.0.0.1", email=email, name=name)
            await s.commit()
            return user.id

    return _make


@pytest.fixture
def auth_headers():
    """Build Bearer headers for a user id."""

    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_jwt(user_id)}"}

    return _headers
