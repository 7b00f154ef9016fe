from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Set

from sqlalchemy import bindparam, desc, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from factory_events.core.clock import as_utc
from factory_events.core.errors import StoreUnavailableError
from factory_events.models.event import Event
from factory_events.services.store import EventRecord, InsertOutcome, LineDefectTotals

"""
SQLAlchemy Event Store.

Rôle (fonctionnel) :
- Implémente le contrat EventStore sur la table `events` (SQLAlchemy async).
- Insertion en masse tolérante aux courses :
  - PostgreSQL / SQLite : INSERT ... ON CONFLICT (event_id) DO NOTHING RETURNING event_id,
    les ids non retournés sont “en conflit” (déjà insérés par un autre batch).
  - autres dialectes : insert classique ; sur IntegrityError -> rollback, relecture des ids
    déjà présents, puis ré-insertion des seuls ids manquants.
- Mise à jour en masse par clé primaire, gardée par received_time (jamais de retour arrière).
- Agrégations de fenêtre [start, end) calculées côté SQL.

Erreurs :
- Toute erreur driver/connexion (hors conflit d’unicité) est convertie en StoreUnavailableError.
"""

log = logging.getLogger("factory_events.store")

# Taille des paquets pour rester sous la limite de paramètres des drivers
_CHUNK_SIZE = 1000

# Colonnes réécrites par une correction (event_id et created_at inchangés)
_UPDATED_COLUMNS = (
    "event_time",
    "received_time",
    "machine_id",
    "line_id",
    "factory_id",
    "duration_ms",
    "defect_count",
    "payload_hash",
    "updated_at",
)


def _chunks(items: Sequence[Any], size: int = _CHUNK_SIZE):
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _to_record(row: Event) -> EventRecord:
    return EventRecord(
        event_id=row.event_id,
        event_time=as_utc(row.event_time),
        received_time=as_utc(row.received_time),
        machine_id=row.machine_id,
        line_id=row.line_id,
        factory_id=row.factory_id,
        duration_ms=int(row.duration_ms),
        defect_count=int(row.defect_count),
        payload_hash=row.payload_hash,
    )


def _to_row(record: EventRecord, now: datetime) -> Dict[str, Any]:
    return {
        "event_id": record.event_id,
        "event_time": as_utc(record.event_time),
        "received_time": as_utc(record.received_time),
        "machine_id": record.machine_id,
        "line_id": record.line_id,
        "factory_id": record.factory_id,
        "duration_ms": record.duration_ms,
        "defect_count": record.defect_count,
        "payload_hash": record.payload_hash,
        "created_at": now,
        "updated_at": now,
    }


class SqlAlchemyEventStore:
    """Store d’événements adossé à une AsyncSession (1 session = 1 requête HTTP)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    async def _fail(self, operation: str, exc: BaseException) -> StoreUnavailableError:
        await self.session.rollback()
        log.error("Store %s failed: %s", operation, exc)
        return StoreUnavailableError(operation, exc)

    # -----------------------------
    # Lecture ponctuelle
    # -----------------------------
    async def find_by_ids(self, event_ids: Sequence[str]) -> List[EventRecord]:
        ids = list(dict.fromkeys(event_ids))
        found: List[EventRecord] = []
        try:
            for chunk in _chunks(ids):
                stmt = select(Event).where(Event.event_id.in_(chunk)).execution_options(populate_existing=True)
                rows = (await self.session.execute(stmt)).scalars().all()
                found.extend(_to_record(r) for r in rows)
        except (DBAPIError, OSError) as exc:
            raise await self._fail("find_by_ids", exc) from exc
        return found

    # -----------------------------
    # Écritures
    # -----------------------------
    async def insert_all(self, records: Sequence[EventRecord]) -> InsertOutcome:
        if not records:
            return InsertOutcome()

        now = datetime.now(timezone.utc)
        rows = [_to_row(r, now) for r in records]

        try:
            if self.dialect_name in ("postgresql", "sqlite"):
                inserted = await self._insert_on_conflict_do_nothing(rows)
            else:
                inserted = await self._insert_with_recovery(rows)
        except IntegrityError as exc:
            # Course perdue deux fois de suite (fallback) : on remonte tout en conflit
            await self.session.rollback()
            log.warning("Insert retry conflicted again: %s", exc.orig)
            inserted = set()
        except (DBAPIError, OSError) as exc:
            raise await self._fail("insert_all", exc) from exc

        requested = [r["event_id"] for r in rows]
        return InsertOutcome(
            inserted=[i for i in requested if i in inserted],
            conflicted=[i for i in requested if i not in inserted],
        )

    async def _insert_on_conflict_do_nothing(self, rows: List[Dict[str, Any]]) -> Set[str]:
        insert = postgresql.insert if self.dialect_name == "postgresql" else sqlite.insert
        inserted: Set[str] = set()
        for chunk in _chunks(rows):
            stmt = (
                insert(Event)
                .values(chunk)
                .on_conflict_do_nothing(index_elements=[Event.event_id])
                .returning(Event.event_id)
            )
            inserted.update((await self.session.execute(stmt)).scalars().all())
        await self.session.commit()
        return inserted

    async def _insert_with_recovery(self, rows: List[Dict[str, Any]]) -> Set[str]:
        try:
            self.session.add_all([Event(**row) for row in rows])
            await self.session.commit()
            return {r["event_id"] for r in rows}
        except IntegrityError:
            await self.session.rollback()

        # Un autre batch a inséré une partie des ids : on n’insère que les manquants
        existing = {r.event_id for r in await self.find_by_ids([r["event_id"] for r in rows])}
        remaining = [row for row in rows if row["event_id"] not in existing]
        if remaining:
            self.session.add_all([Event(**row) for row in remaining])
            await self.session.commit()
        return {r["event_id"] for r in remaining}

    async def update_all(self, records: Sequence[EventRecord]) -> None:
        """
        Remplace les lignes ciblées, uniquement si la version stockée est plus ancienne.

        La garde `received_time < :b_received_time` tient la monotonie même entre deux
        batches concurrents partis d’un snapshot périmé (le plus récent gagne).
        """
        if not records:
            return

        now = datetime.now(timezone.utc)
        params = []
        for r in records:
            row = _to_row(r, now)
            row.pop("created_at")
            params.append({f"b_{k}": v for k, v in row.items()})

        table = Event.__table__
        stmt = (
            update(table)
            .where(table.c.event_id == bindparam("b_event_id"))
            .where(table.c.received_time < bindparam("b_received_time"))
            .values({c: bindparam(f"b_{c}") for c in _UPDATED_COLUMNS})
        )

        try:
            for chunk in _chunks(params):
                await self.session.execute(stmt, chunk)
            await self.session.commit()
        except (DBAPIError, OSError) as exc:
            raise await self._fail("update_all", exc) from exc

    # -----------------------------
    # Agrégations de fenêtre [start, end)
    # -----------------------------
    async def count_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        stmt = select(func.count(Event.event_id)).where(
            Event.machine_id == machine_id,
            Event.event_time >= as_utc(start),
            Event.event_time < as_utc(end),
        )
        try:
            return int((await self.session.execute(stmt)).scalar() or 0)
        except (DBAPIError, OSError) as exc:
            raise await self._fail("count_in_window", exc) from exc

    async def sum_defects_in_window(self, machine_id: str, start: datetime, end: datetime) -> int:
        stmt = select(func.coalesce(func.sum(Event.defect_count), 0)).where(
            Event.machine_id == machine_id,
            Event.event_time >= as_utc(start),
            Event.event_time < as_utc(end),
            Event.defect_count >= 0,
        )
        try:
            return int((await self.session.execute(stmt)).scalar() or 0)
        except (DBAPIError, OSError) as exc:
            raise await self._fail("sum_defects_in_window", exc) from exc

    async def group_defects_by_line(
        self, factory_id: str, start: datetime, end: datetime
    ) -> List[LineDefectTotals]:
        total = func.sum(Event.defect_count).label("total_defects")
        stmt = (
            select(
                Event.line_id.label("line_id"),
                total,
                func.count(Event.event_id).label("event_count"),
            )
            .where(
                Event.factory_id == factory_id,
                Event.event_time >= as_utc(start),
                Event.event_time < as_utc(end),
                Event.defect_count >= 0,
                Event.line_id.is_not(None),
            )
            .group_by(Event.line_id)
            .order_by(desc(total), Event.line_id)
        )
        try:
            rows = (await self.session.execute(stmt)).all()
        except (DBAPIError, OSError) as exc:
            raise await self._fail("group_defects_by_line", exc) from exc

        return [
            LineDefectTotals(
                line_id=str(r.line_id),
                total_defects=int(r.total_defects or 0),
                event_count=int(r.event_count),
            )
            for r in rows
        ]
