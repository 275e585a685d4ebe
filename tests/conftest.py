"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile
import uuid
from collections.abc import AsyncIterator, Callable, Coroutine, Generator
from typing import Any

# Settings are read at import time; point them at throwaway locations first
_TMP_DIR = tempfile.mkdtemp(prefix="flashgen-tests-")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("JWT_PRIVATE_KEY_PATH", os.path.join(_TMP_DIR, "jwt_rsa_key.pem"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'app.db')}"
os.environ["MODE"] = "dev"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from flashgen.apis.deps import current_user_or_query_token, get_generation_queue  # noqa: E402
from flashgen.core.db.base import (  # noqa: E402
    Base,
    build_engine,
    build_session_maker,
    get_session,
    get_session_factory,
)
from flashgen.core.db.schemas import User  # noqa: E402
from flashgen.modules.auth import current_active_user  # noqa: E402
from main import app  # noqa: E402

SOURCE_TEXT = (
    "Photosynthesis is the process by which green plants convert light energy "
    "into chemical energy stored in glucose. "
) * 10


class FakeGenerationQueue:
    """Records enqueued generations instead of running the model."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.enqueued: list[uuid.UUID] = []

    def enqueue_generation(self, generation_id: uuid.UUID) -> None:
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.enqueued.append(generation_id)


async def _create_user(
    session_factory: async_sessionmaker[AsyncSession], email: str
) -> User:
    async with session_factory() as session:
        user = User(email=email, hashed_password="not-a-real-hash", is_active=True)
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def engine(db_url: str) -> Generator[AsyncEngine, None, None]:
    """Fresh database file with all tables, for sync (TestClient) tests."""
    test_engine = build_engine(db_url)

    async def _create() -> None:
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield test_engine
    asyncio.run(test_engine.dispose())


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(engine)


@pytest.fixture
def run() -> Callable[[Coroutine[Any, Any, Any]], Any]:
    """Run a coroutine to completion from a sync test."""
    return asyncio.run


@pytest.fixture
def test_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return asyncio.run(_create_user(session_factory, "owner@example.com"))


@pytest.fixture
def other_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return asyncio.run(_create_user(session_factory, "someone-else@example.com"))


@pytest.fixture
def fake_queue() -> FakeGenerationQueue:
    return FakeGenerationQueue()


def _override_session(session_factory: async_sessionmaker[AsyncSession]):
    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return override_get_session


@pytest.fixture
def client(
    session_factory: async_sessionmaker[AsyncSession],
    test_user: User,
    fake_queue: FakeGenerationQueue,
) -> Generator[TestClient, Any, None]:
    """Test client authenticated as ``test_user``."""
    app.dependency_overrides[get_session] = _override_session(session_factory)
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_generation_queue] = lambda: fake_queue
    app.dependency_overrides[current_active_user] = lambda: test_user
    app.dependency_overrides[current_user_or_query_token] = lambda: test_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> Generator[TestClient, Any, None]:
    """Test client with the real fastapi-users authentication in place."""
    app.dependency_overrides[get_session] = _override_session(session_factory)
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def async_session_factory(
    db_url: str,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Fresh database file with all tables, for async service tests."""
    test_engine = build_engine(db_url)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_maker(test_engine)
    await test_engine.dispose()


@pytest.fixture
async def owner(async_session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await _create_user(async_session_factory, "owner@example.com")
