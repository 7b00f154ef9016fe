from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

"""
Schemas Stats (Pydantic).

Rôle (fonctionnel) :
- Contrat de réponse des endpoints de statistiques :
  - GET /stats : synthèse d’une machine sur une fenêtre [start, end),
  - GET /stats/top-defect-lines : classement des lignes d’une usine.

Notes :
- Ce sont des DTO de lecture (valeurs calculées, pas des lignes DB).
- Sérialisation en camelCase (eventsCount, avgDefectRate…).
"""

HealthStatus = Literal["Healthy", "Warning"]


class StatsOut(BaseModel):
    """Synthèse machine : volumes, défauts, taux horaire et statut."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    machine_id: str
    start: datetime
    end: datetime
    events_count: int
    defects_count: int
    avg_defect_rate: float
    status: HealthStatus


class TopDefectLineOut(BaseModel):
    """Une ligne du classement (défauts cumulés, volume, défauts pour 100 événements)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    line_id: str
    total_defects: int
    event_count: int
    defects_percent: float
