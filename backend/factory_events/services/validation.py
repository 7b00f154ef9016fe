from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from factory_events.core.clock import as_utc
from factory_events.schemas.events import EventIn

"""
Validation des événements.

Rôle (fonctionnel) :
- Prédicat d’acceptation par enregistrement, sans effet de bord.
- Renvoie None si l’enregistrement est acceptable, sinon un code de rejet stable.

Ordre des contrôles (le premier qui échoue gagne) :
1) eventId manquant          -> MISSING_EVENT_ID
2) eventTime manquant        -> MISSING_EVENT_TIME
3) machineId manquant        -> MISSING_MACHINE_ID
4) durationMs manquant       -> MISSING_DURATION
5) defectCount manquant      -> MISSING_DEFECT_COUNT
6) durationMs hors [0, max]  -> INVALID_DURATION
7) eventTime > now + tolérance -> FUTURE_EVENT_TIME (pile sur la tolérance : accepté)
"""

MISSING_EVENT_ID = "MISSING_EVENT_ID"
MISSING_EVENT_TIME = "MISSING_EVENT_TIME"
MISSING_MACHINE_ID = "MISSING_MACHINE_ID"
MISSING_DURATION = "MISSING_DURATION"
MISSING_DEFECT_COUNT = "MISSING_DEFECT_COUNT"
INVALID_DURATION = "INVALID_DURATION"
FUTURE_EVENT_TIME = "FUTURE_EVENT_TIME"

REJECT_REASONS = (
    MISSING_EVENT_ID,
    MISSING_EVENT_TIME,
    MISSING_MACHINE_ID,
    MISSING_DURATION,
    MISSING_DEFECT_COUNT,
    INVALID_DURATION,
    FUTURE_EVENT_TIME,
)

DEFAULT_MAX_DURATION_MS = 21_600_000
DEFAULT_FUTURE_SKEW = timedelta(minutes=15)


def validate_event(
    event: EventIn,
    now: datetime,
    *,
    max_duration_ms: int = DEFAULT_MAX_DURATION_MS,
    future_skew: timedelta = DEFAULT_FUTURE_SKEW,
) -> Optional[str]:
    if not event.event_id:
        return MISSING_EVENT_ID
    if event.event_time is None:
        return MISSING_EVENT_TIME
    if not event.machine_id:
        return MISSING_MACHINE_ID
    if event.duration_ms is None:
        return MISSING_DURATION
    if event.defect_count is None:
        return MISSING_DEFECT_COUNT

    if event.duration_ms < 0 or event.duration_ms > max_duration_ms:
        return INVALID_DURATION

    if as_utc(event.event_time) > as_utc(now) + future_skew:
        return FUTURE_EVENT_TIME

    return None
