from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardkeeper.db.database import get_session
from cardkeeper.main import app
from cardkeeper.models.card import Card
from cardkeeper.models.db import Base
from cardkeeper.services.locks import user_locks


@pytest.fixture(autouse=True)
def clear_user_locks():
    """Drop per-user locks between tests.

    Each test runs on its own event loop; a lock created on one loop must
    not be reused on the next.
    """
    user_locks.clear()
    yield
    user_locks.clear()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_engine(tmp_path):
    """SQLite file engine; separate sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cards.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def make_card() -> Callable[..., Card]:
    """Build cards with sensible defaults; later cards get later timestamps."""
    counter = {"n": 0}
    base_time = datetime(2024, 1, 1, tzinfo=UTC)

    def _make(card_id: str | None = None, **overrides: Any) -> Card:
        counter["n"] += 1
        n = counter["n"]
        stamp = base_time + timedelta(minutes=n)
        fields: dict[str, Any] = {
            "id": card_id or f"card-{n}",
            "user_id": "user-a",
            "player": f"Player {n}",
            "team": "Team",
            "year": 2020,
            "brand": "Topps",
            "category": "Baseball",
            "card_number": str(n),
            "purchase_price": 10.0,
            "current_value": 25.0,
            "created_at": stamp,
            "updated_at": stamp,
        }
        fields.update(overrides)
        return Card(**fields)

    return _make


@pytest.fixture
async def client(session_factory):
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
