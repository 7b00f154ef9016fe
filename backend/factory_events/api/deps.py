from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from factory_events.db.event_store import SqlAlchemyEventStore
from factory_events.db.session import get_db
from factory_events.services.ingestion_service import IngestionService
from factory_events.services.stats_service import StatsService
from factory_events.services.store import EventStore

"""
Dépendances API.

Rôle (fonctionnel) :
- Centralise la construction des services à partir de la session DB de la requête.
- Point d’injection unique du store : les tests remplacent `get_event_store`
  (app.dependency_overrides) par un InMemoryEventStore.
"""


async def get_event_store(db: AsyncSession = Depends(get_db)) -> EventStore:
    return SqlAlchemyEventStore(db)


async def get_ingestion_service(store: EventStore = Depends(get_event_store)) -> IngestionService:
    return IngestionService(store)


async def get_stats_service(store: EventStore = Depends(get_event_store)) -> StatsService:
    return StatsService(store)
