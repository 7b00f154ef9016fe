from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from factory_events.core.clock import as_utc

"""
Event Store (contrat).

Rôle (fonctionnel) :
- Définit le contrat de stockage dont dépendent l’ingestion et les stats (EventStore).
- Définit les types échangés avec le store :
  - EventRecord : un événement tel que persisté (indépendant de l’ORM),
  - InsertOutcome : résultat typé d’une insertion en masse (insérés vs en conflit),
  - LineDefectTotals : agrégat par ligne (somme des défauts + nombre d’événements).
- Fournit InMemoryEventStore : implémentation mémoire (dev, tests, démo sans DB).

Conventions communes à toutes les implémentations :
- Fenêtre = intervalle semi-ouvert [start, end) sur event_time.
- defect_count < 0 = sentinelle “non mesuré” : exclue des sommes, pas des comptages.
- update_all ne remplace une ligne existante que si received_time est plus récent.
- Un conflit d’unicité sur event_id n’est PAS une erreur : il remonte dans
  InsertOutcome.conflicted (le service d’ingestion le requalifie en doublon).
"""


@dataclass(frozen=True)
class EventRecord:
    """Événement persisté (toutes les dates en UTC aware)."""
    event_id: str
    event_time: datetime
    received_time: datetime
    machine_id: str
    line_id: Optional[str]
    factory_id: Optional[str]
    duration_ms: int
    defect_count: int
    payload_hash: str


@dataclass(frozen=True)
class InsertOutcome:
    """
    Résultat d’un insert_all.

    - inserted : event_ids réellement écrits par cet appel.
    - conflicted : event_ids déjà présents (course avec un autre batch).
    """
    inserted: List[str] = field(default_factory=list)
    conflicted: List[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicted)


@dataclass(frozen=True)
class LineDefectTotals:
    """Agrégat d’une ligne de production sur une fenêtre."""
    line_id: str
    total_defects: int
    event_count: int


class EventStore(Protocol):
    async def find_by_ids(self, event_ids: Sequence[str]) -> List[EventRecord]:
        ...

    async def insert_all(self, records: Sequence[EventRecord]) -> InsertOutcome:
        ...

    async def update_all(self, records: Sequence[EventRecord]) -> None:
        ...

    async def count_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        ...

    async def sum_defects_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        ...

    async def group_defects_by_line(
        self, factory_id: str, start: datetime, end: datetime
    ) -> List[LineDefectTotals]:
        ...


def _in_window(record: EventRecord, start: datetime, end: datetime) -> bool:
    return as_utc(start) <= record.event_time < as_utc(end)


class InMemoryEventStore:
    """
    Implémentation mémoire du contrat EventStore.

    - Les écritures sont sérialisées par un asyncio.Lock : l’unicité sur event_id
      est garantie comme le ferait une contrainte de clé primaire.
    - Les lectures travaillent sur une copie instantanée (pas de verrou).
    """

    def __init__(self, records: Iterable[EventRecord] = ()) -> None:
        self._rows: Dict[str, EventRecord] = {r.event_id: r for r in records}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, event_id: str) -> Optional[EventRecord]:
        return self._rows.get(event_id)

    async def find_by_ids(self, event_ids: Sequence[str]) -> List[EventRecord]:
        rows = self._rows
        return [rows[i] for i in dict.fromkeys(event_ids) if i in rows]

    async def insert_all(self, records: Sequence[EventRecord]) -> InsertOutcome:
        inserted: List[str] = []
        conflicted: List[str] = []
        async with self._lock:
            for record in records:
                if record.event_id in self._rows:
                    conflicted.append(record.event_id)
                    continue
                self._rows[record.event_id] = record
                inserted.append(record.event_id)
        return InsertOutcome(inserted=inserted, conflicted=conflicted)

    async def update_all(self, records: Sequence[EventRecord]) -> None:
        async with self._lock:
            for record in records:
                current = self._rows.get(record.event_id)
                # Même garde que le store SQL : seule une réception plus récente remplace
                if current is not None and current.received_time < record.received_time:
                    self._rows[record.event_id] = record

    async def count_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        return sum(
            1 for r in list(self._rows.values()) if r.machine_id == machine_id and _in_window(r, start, end)
        )

    async def sum_defects_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        return sum(
            r.defect_count
            for r in list(self._rows.values())
            if r.machine_id == machine_id and r.defect_count >= 0 and _in_window(r, start, end)
        )

    async def group_defects_by_line(
        self, factory_id: str, start: datetime, end: datetime
    ) -> List[LineDefectTotals]:
        totals: Dict[str, List[int]] = {}
        for r in list(self._rows.values()):
            if r.factory_id != factory_id or r.line_id is None or r.defect_count < 0:
                continue
            if not _in_window(r, start, end):
                continue
            acc = totals.setdefault(r.line_id, [0, 0])
            acc[0] += r.defect_count
            acc[1] += 1
        return [LineDefectTotals(line_id=k, total_defects=v[0], event_count=v[1]) for k, v in totals.items()]
