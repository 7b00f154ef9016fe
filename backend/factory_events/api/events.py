from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Body, Depends

from factory_events.api.deps import get_ingestion_service
from factory_events.core.errors import AppHTTPException
from factory_events.core.settings import settings
from factory_events.schemas.events import BatchIngestionOut, EventIn
from factory_events.services.ingestion_service import IngestionService

"""
API Events.

Rôle (fonctionnel) :
- Ingestion d’un batch d’événements machine (POST /events/batch).
- Répond toujours 200 avec le bilan (accepted / deduped / updated / rejected + motifs),
  sauf batch trop volumineux (413) ou store indisponible (503, voir main.py).
"""

router = APIRouter(prefix="/events", tags=["events"])

log = logging.getLogger("factory_events.api")


@router.post("/batch", response_model=BatchIngestionOut)
async def ingest_batch(
    events: List[EventIn] = Body(...),
    service: IngestionService = Depends(get_ingestion_service),
):
    # Les appelants doivent découper en amont : pas d’annulation en cours de batch
    if len(events) > settings.MAX_BATCH_SIZE:
        raise AppHTTPException(
            413,
            "BATCH_TOO_LARGE",
            f"Batch trop volumineux (max: {settings.MAX_BATCH_SIZE} événements).",
            details={"size": len(events), "max": settings.MAX_BATCH_SIZE},
        )

    log.info("Received batch ingestion request", extra={"batch_size": len(events)})
    return await service.process_batch(events)
