from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from factory_events.core.clock import as_utc
from factory_events.core.settings import settings
from factory_events.schemas.stats import StatsOut, TopDefectLineOut
from factory_events.services.store import EventStore

"""
Stats Service.

Rôle (fonctionnel) :
- Calcule, en lecture seule, les statistiques servies aux écrans de supervision :
  - synthèse d’une machine sur une fenêtre [start, end),
  - top N des lignes les plus défectueuses d’une usine.

Règles :
- eventsCount compte TOUS les événements de la fenêtre (sentinelles comprises).
- defectsCount / totalDefects excluent les defectCount négatifs (“non mesuré”).
- avgDefectRate = défauts / heures de fenêtre (secondes entières / 3600),
  arrondi au dixième (demi vers le haut) ; 0.0 si la fenêtre est vide ou inversée.
- status = "Warning" si le taux brut (avant arrondi) >= seuil, sinon "Healthy".
- Top lignes : tri défauts décroissants puis lineId croissant (ordre stable),
  defectsPercent = défauts * 100 / événements, arrondi au centième (demi vers le haut).
"""

log = logging.getLogger("factory_events.stats")

HEALTHY = "Healthy"
WARNING = "Warning"


def round_half_up(value: float, places: int) -> float:
    """Arrondi commercial (2.25 -> 2.3), indépendant de l’arrondi bancaire de round()."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def window_hours(start: datetime, end: datetime) -> float:
    seconds = (end - start) // timedelta(seconds=1)
    return seconds / 3600.0


class StatsService:
    def __init__(self, store: EventStore, *, warning_threshold: Optional[float] = None) -> None:
        self.store = store
        self.warning_threshold = settings.WARNING_DEFECT_RATE if warning_threshold is None else warning_threshold

    async def get_machine_stats(self, machine_id: str, start: datetime, end: datetime) -> StatsOut:
        log.debug("Getting machine stats", extra={"machine_id": machine_id})
        start, end = as_utc(start), as_utc(end)

        events_count = await self.store.count_in_window(machine_id, start, end)
        defects_count = await self.store.sum_defects_in_window(machine_id, start, end)

        hours = window_hours(start, end)
        raw_rate = defects_count / hours if hours > 0 else 0.0

        # Seuil appliqué au taux brut, seule la valeur renvoyée est arrondie
        status = WARNING if raw_rate >= self.warning_threshold else HEALTHY
        avg_defect_rate = round_half_up(raw_rate, 1)

        return StatsOut(
            machine_id=machine_id,
            start=start,
            end=end,
            events_count=events_count,
            defects_count=defects_count,
            avg_defect_rate=avg_defect_rate,
            status=status,
        )

    async def get_top_defect_lines(
        self,
        factory_id: str,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> List[TopDefectLineOut]:
        log.debug("Getting top defect lines", extra={"factory_id": factory_id})

        if limit <= 0:
            return []

        groups = await self.store.group_defects_by_line(factory_id, as_utc(start), as_utc(end))
        ranked = sorted(groups, key=lambda g: (-g.total_defects, g.line_id))[:limit]

        return [
            TopDefectLineOut(
                line_id=g.line_id,
                total_defects=g.total_defects,
                event_count=g.event_count,
                defects_percent=(
                    round_half_up(g.total_defects * 100.0 / g.event_count, 2) if g.event_count > 0 else 0.0
                ),
            )
            for g in ranked
        ]
