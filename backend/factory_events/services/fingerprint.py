from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Optional

from factory_events.core.clock import as_utc
from factory_events.schemas.events import EventIn

"""
Empreinte de contenu (fingerprint).

Rôle (fonctionnel) :
- Calcule un SHA-256 (hex) sur les champs sémantiques d’un événement :
  eventTime, machineId, lineId, factoryId, durationMs, defectCount.
- Sert uniquement à comparer deux soumissions d’un même eventId
  (doublon exact vs correction), jamais comme secret.

Normalisation :
- eventTime rendu en ISO-8601 UTC (microsecondes) : deux écritures du même instant
  dans des fuseaux différents donnent la même empreinte.
- lineId / factoryId : None et "" sont équivalents.
- Les champs sont séparés par \\x1f (unit separator) : pas d’ambiguïté de concaténation.
"""

_SEP = "\x1f"


def compute_fingerprint(
    event_time: datetime,
    machine_id: str,
    line_id: Optional[str],
    factory_id: Optional[str],
    duration_ms: int,
    defect_count: int,
) -> str:
    parts = (
        as_utc(event_time).isoformat(timespec="microseconds"),
        machine_id,
        line_id or "",
        factory_id or "",
        str(int(duration_ms)),
        str(int(defect_count)),
    )
    return hashlib.sha256(_SEP.join(parts).encode("utf-8")).hexdigest()


def fingerprint_event(event: EventIn) -> str:
    """Empreinte d’un enregistrement déjà validé (champs requis présents)."""
    return compute_fingerprint(
        event.event_time,
        event.machine_id,
        event.line_id,
        event.factory_id,
        event.duration_ms,
        event.defect_count,
    )
