from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

"""
Schemas Events (Pydantic).

Rôle (fonctionnel) :
- Définit le contrat HTTP de l’ingestion par batch (POST /events/batch).
- Entrée volontairement permissive : les champs requis sont Optional ici, car un champ
  manquant ne doit PAS faire échouer tout le batch (422) mais produire un rejet
  par enregistrement (MISSING_EVENT_ID, MISSING_MACHINE_ID, …) dans le bilan.
- Les noms JSON sont en camelCase (eventId, eventTime…) ; le snake_case est aussi accepté.

Notes :
- receivedTime envoyé par le producteur est ignoré : le service attribue le sien.
- Les champs inconnus sont ignorés (extra="ignore") : les producteurs évoluent plus vite que nous.
"""


def _parse_iso_datetime(value: str) -> datetime:
    """
    Parse robuste de datetime ISO (producteurs variés).

    Accepte :
    - "2026-01-16T08:00:00Z"
    - "2026-01-16T08:00:00.1234567Z" (7 digits -> tronqué à 6)
    - "2026-01-16T08:00:00.123+00:00"

    Si tzinfo absent : UTC par défaut.
    """
    s = value.strip()

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    # Tronquer la fraction de secondes à 6 digits si besoin
    if "." in s:
        head, rest = s.split(".", 1)
        frac = rest
        tz = ""
        if "+" in rest:
            frac, tz = rest.split("+", 1)
            tz = "+" + tz
        elif "-" in rest[1:]:
            frac, tz = rest.split("-", 1)
            tz = "-" + tz

        frac_digits = "".join(ch for ch in frac if ch.isdigit())[:6]
        s = f"{head}.{frac_digits}{tz}" if frac_digits else f"{head}{tz}"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt


class EventIn(BaseModel):
    """Un enregistrement brut d’un batch (avant validation métier)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    event_id: Optional[str] = None
    event_time: Optional[datetime] = None

    # Ignoré : remplacé par l’heure de traitement du service
    received_time: Optional[Any] = Field(default=None, exclude=True)

    machine_id: Optional[str] = None
    line_id: Optional[str] = None
    factory_id: Optional[str] = None
    duration_ms: Optional[int] = None
    defect_count: Optional[int] = None

    @field_validator("event_time", mode="before")
    @classmethod
    def _event_time_parse(cls, v: Any) -> Any:
        if isinstance(v, str):
            if not v.strip():
                return None
            return _parse_iso_datetime(v)
        return v

    @field_validator("event_time")
    @classmethod
    def _event_time_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("event_id", "machine_id", "line_id", "factory_id", mode="before")
    @classmethod
    def _strip_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


class _CamelOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RejectionOut(_CamelOut):
    """Motif de rejet d’un enregistrement (event_id peut être absent)."""
    event_id: Optional[str] = None
    reason: str


class BatchIngestionOut(_CamelOut):
    """
    Bilan d’un batch.

    Invariant : accepted + deduped + updated + rejected == taille du batch,
    et len(rejections) == rejected.
    """
    accepted: int = 0
    deduped: int = 0
    updated: int = 0
    rejected: int = 0
    rejections: List[RejectionOut] = Field(default_factory=list)
