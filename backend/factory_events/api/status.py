from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from factory_events.core.clock import as_utc
from factory_events.core.settings import settings
from factory_events.db.session import get_db
from factory_events.models.event import Event

"""
API System Status.

Rôle (fonctionnel) :
- Healthcheck “profond” : vérifie la disponibilité de la base (requête minimale).
- Fournit une information de fraîcheur : dernier receivedTime ingéré.
- Expose les bornes d’ingestion actives (durée max, tolérance d’horloge, taille de batch).
"""

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status")
async def system_status(db: AsyncSession = Depends(get_db)):
    # 1) DB check
    db_ok = True
    try:
        await db.execute(text("SELECT 1"))
    except (DBAPIError, OSError):
        db_ok = False

    # 2) Fraîcheur (dernière ingestion)
    last_received = None
    if db_ok:
        try:
            value = (await db.execute(select(func.max(Event.received_time)))).scalar()
            last_received = as_utc(value).isoformat() if value else None
        except (DBAPIError, OSError):
            last_received = None

    return {
        "ok": db_ok,
        "db": {"ok": db_ok},
        "ingestion": {
            "max_duration_ms": settings.MAX_DURATION_MS,
            "future_skew_tolerance_ms": settings.FUTURE_SKEW_TOLERANCE_MS,
            "max_batch_size": settings.MAX_BATCH_SIZE,
        },
        "last_received_time": last_received,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
