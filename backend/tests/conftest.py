"""
tests/conftest.py

Fixtures partagées de la suite de tests.

- Horloge figée (NOW) : validation et receivedTime deviennent déterministes.
- make_event : fabrique d’EventIn valides, surchargeables champ par champ.
- memory_store : InMemoryEventStore vide.
- sqlite_session : AsyncSession sur une base SQLite fichier (aiosqlite), schéma créé
  depuis la metadata ORM, pour tester SqlAlchemyEventStore sans PostgreSQL.
"""

from __future__ import annotations

import os

# Avant tout import applicatif : l’engine global ne doit pas viser PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from factory_events.core.clock import fixed_clock
from factory_events.db.base import Base
from factory_events.models import Event  # noqa: F401
from factory_events.schemas.events import EventIn
from factory_events.services.store import InMemoryEventStore

NOW = datetime(2026, 1, 16, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def make_event() -> Callable[..., EventIn]:
    def _make(event_id: str = "event-001", **overrides: Any) -> EventIn:
        fields = {
            "event_id": event_id,
            "event_time": NOW - timedelta(hours=1),
            "machine_id": "machine-1",
            "line_id": "line-1",
            "factory_id": "factory-1",
            "duration_ms": 1000,
            "defect_count": 0,
        }
        fields.update(overrides)
        return EventIn(**fields)

    return _make


@pytest.fixture
def memory_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'events.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sqlite_sessionmaker(sqlite_engine):
    return async_sessionmaker(bind=sqlite_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def sqlite_session(sqlite_sessionmaker):
    async with sqlite_sessionmaker() as session:
        yield session
