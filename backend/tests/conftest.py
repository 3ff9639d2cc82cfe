"""
NoteKeep Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own SQLite database file under tmp_path, created
       from Base.metadata. Service tests use a session directly; API tests
       run the real app over httpx's ASGITransport with get_db_session
       pointed at the test database.

Fixture Hierarchy (all function-scoped):
    test_engine ── session_factory ─┬─ db_session ── make_user / make_note
                                    └─ app ── client ── register_user
    webhook_calls: requests captured by the notifier's MockTransport
    mock_db_session: AsyncMock session for failure-path unit tests
"""

import os

# Override settings for testing BEFORE any notekeep imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["BCRYPT_ROUNDS"] = "4"  # fastest allowed work factor
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["INVITATION_SWEEP_INTERVAL_MINUTES"] = "0"

from typing import AsyncGenerator, Callable, List  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import notekeep.models  # noqa: E402,F401
from notekeep.database import Base, get_db_session  # noqa: E402
from notekeep.main import create_app  # noqa: E402
from notekeep.models.note import Note  # noqa: E402
from notekeep.models.user import User  # noqa: E402
from notekeep.schemas.note import CheckboxIn, NoteCreate  # noqa: E402
from notekeep.services.note_service import note_service  # noqa: E402
from notekeep.services.quota_service import InstanceConfig  # noqa: E402
from notekeep.services.webhook_service import WebhookNotifier  # noqa: E402

TEST_PASSWORD = "correct-horse"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notekeep_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    A mock async session for failure paths a real SQLite file can't produce.

    Usage:
        mock_db_session.execute.side_effect = OperationalError(...)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Domain Factories (service tests)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(db_session) -> Callable:
    """Inserts a user directly; no password hashing needed for service tests."""

    async def _make_user(email: str) -> User:
        user = User(email=email, password_hash="not-a-real-hash")
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


@pytest.fixture
def make_note(db_session) -> Callable:
    async def _make_note(owner: User, title: str = "Groceries", checkboxes: List[str] = ()) -> Note:
        data = NoteCreate(
            title=title,
            content="milk, eggs",
            checkboxes=[CheckboxIn(label=label) for label in checkboxes],
        )
        return await note_service.create_note(db_session, owner.id, data)

    return _make_note


# ══════════════════════════════════════════════════════════════════════════
# HTTP (API tests)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def webhook_calls() -> List[httpx.Request]:
    return []


@pytest.fixture
def instance_config() -> InstanceConfig:
    """Self-hosted defaults; override in a test module for plan limits."""
    return InstanceConfig()


@pytest.fixture
def app(session_factory, webhook_calls, instance_config):
    def record(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(request)
        return httpx.Response(200)

    notifier = WebhookNotifier(
        session_factory,
        timeout=1.0,
        min_interval=0,
        transport=httpx.MockTransport(record),
    )
    application = create_app(instance_config=instance_config, notifier=notifier)

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_db_session
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX AsyncClient talking to the app in-process.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register_user(client) -> Callable:
    """
    Registers an account through the API.

    Returns a dict with `id`, `email` and ready-to-use auth `headers`.
    """

    async def _register(email: str) -> dict:
        response = await client.post(
            "/auth/register", json={"email": email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return {
            "id": body["user"]["id"],
            "email": email,
            "headers": {"Authorization": f"Bearer {body['token']['access_token']}"},
        }

    return _register
