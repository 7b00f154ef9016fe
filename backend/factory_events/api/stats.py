from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query

from factory_events.api.deps import get_stats_service
from factory_events.core.settings import settings
from factory_events.schemas.stats import StatsOut, TopDefectLineOut
from factory_events.services.stats_service import StatsService

"""
API Stats.

Rôle (fonctionnel) :
- GET /stats : synthèse d’une machine sur [start, end) (volumes, défauts, taux, statut).
- GET /stats/top-defect-lines : lignes les plus défectueuses d’une usine sur [from, to).

Notes :
- Paramètres en camelCase (machineId, factoryId) comme le reste du contrat.
- Les dates sont en ISO-8601 ; sans fuseau, elles sont lues en UTC.
"""

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StatsOut)
async def machine_stats(
    machine_id: str = Query(..., alias="machineId", min_length=1),
    start: datetime = Query(...),
    end: datetime = Query(...),
    service: StatsService = Depends(get_stats_service),
):
    return await service.get_machine_stats(machine_id, start, end)


@router.get("/top-defect-lines", response_model=List[TopDefectLineOut])
async def top_defect_lines(
    factory_id: str = Query(..., alias="factoryId", min_length=1),
    date_from: datetime = Query(..., alias="from"),
    date_to: datetime = Query(..., alias="to"),
    limit: int = Query(settings.TOP_LINES_DEFAULT_LIMIT, ge=1, le=1000),
    service: StatsService = Depends(get_stats_service),
):
    return await service.get_top_defect_lines(factory_id, date_from, date_to, limit)
