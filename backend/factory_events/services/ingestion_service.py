from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from factory_events.core.clock import Clock, as_utc, utc_now
from factory_events.core.errors import ProcessingError
from factory_events.core.settings import settings
from factory_events.schemas.events import BatchIngestionOut, EventIn, RejectionOut
from factory_events.services.fingerprint import fingerprint_event
from factory_events.services.store import EventRecord, EventStore
from factory_events.services.validation import validate_event

"""
Ingestion Service.

Rôle (fonctionnel) :
- Ingère un batch d’événements de façon idempotente (1 eventId = 1 ligne persistée).
- Classe chaque enregistrement valide par rapport à l’état du store :
  - NEW       : eventId inconnu -> insertion (accepted)
  - DUPLICATE : même empreinte -> rien à écrire (deduped)
  - SUPERSEDE : empreinte différente ET réception plus récente -> mise à jour (updated)
  - STALE     : empreinte différente mais réception pas plus récente -> ignoré (deduped)
- Tolère les courses entre batches concurrents : un conflit d’unicité à l’insertion
  est requalifié en doublon, le batch réussit quand même.

Déroulé (1 lecture + au plus 2 écritures) :
1) validation par enregistrement (rejets immédiats),
2) une seule lecture en masse (find_by_ids) = snapshot du batch,
3) une passe de décision sur une table “eventId -> état courant” (arène),
   les répétitions d’un même eventId dans le batch sont repliées avec la même règle
   (tous les enregistrements partagent le même receivedTime : le premier gagne),
4) insert_all (nouveaux) puis update_all (corrections).

Erreurs :
- ProcessingError (ex : empreinte impossible) : rejette l’enregistrement seul.
- StoreUnavailableError : remonte telle quelle (aucun bilan fiable).
"""

log = logging.getLogger("factory_events.ingestion")

NEW = "NEW"
DUPLICATE = "DUPLICATE"
SUPERSEDE = "SUPERSEDE"
STALE = "STALE"


def classify(current: Optional[EventRecord], candidate: EventRecord) -> str:
    """Décision pour `candidate` face à l’état courant de son eventId (ou None)."""
    if current is None:
        return NEW
    if current.payload_hash == candidate.payload_hash:
        return DUPLICATE
    if as_utc(candidate.received_time) > as_utc(current.received_time):
        return SUPERSEDE
    return STALE


def build_record(event: EventIn, received_time: datetime, payload_hash: str) -> EventRecord:
    """Construit l’enregistrement persistable (receivedTime du service, jamais du producteur)."""
    return EventRecord(
        event_id=event.event_id,
        event_time=as_utc(event.event_time),
        received_time=received_time,
        machine_id=event.machine_id,
        line_id=event.line_id or None,
        factory_id=event.factory_id or None,
        duration_ms=int(event.duration_ms),
        defect_count=int(event.defect_count),
        payload_hash=payload_hash,
    )


@dataclass
class _Tally:
    accepted: int = 0
    deduped: int = 0
    updated: int = 0
    rejected: int = 0
    rejections: List[RejectionOut] = field(default_factory=list)

    def reject(self, event_id: Optional[str], reason: str) -> None:
        self.rejected += 1
        self.rejections.append(RejectionOut(event_id=event_id, reason=reason))

    def to_out(self) -> BatchIngestionOut:
        return BatchIngestionOut(
            accepted=self.accepted,
            deduped=self.deduped,
            updated=self.updated,
            rejected=self.rejected,
            rejections=self.rejections,
        )


class IngestionService:
    """
    Moteur d’upsert par batch.

    Dépendances injectables (tests) :
    - store : implémentation du contrat EventStore,
    - clock : source du “maintenant” (validation + receivedTime),
    - fingerprinter : calcul d’empreinte d’un EventIn.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        clock: Clock = utc_now,
        fingerprinter: Callable[[EventIn], str] = fingerprint_event,
        max_duration_ms: Optional[int] = None,
        future_skew: Optional[timedelta] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.fingerprinter = fingerprinter
        self.max_duration_ms = settings.MAX_DURATION_MS if max_duration_ms is None else max_duration_ms
        self.future_skew = (
            timedelta(milliseconds=settings.FUTURE_SKEW_TOLERANCE_MS) if future_skew is None else future_skew
        )

    async def process_batch(self, events: Sequence[EventIn]) -> BatchIngestionOut:
        now = as_utc(self.clock())
        tally = _Tally()

        # 1) Validation
        valid: List[EventIn] = []
        for event in events:
            reason = validate_event(
                event,
                now,
                max_duration_ms=self.max_duration_ms,
                future_skew=self.future_skew,
            )
            if reason is not None:
                tally.reject(event.event_id, reason)
                log.debug("Rejected event", extra={"event_id": event.event_id, "reason": reason})
            else:
                valid.append(event)

        if valid:
            await self._upsert(valid, now, tally)

        log.info(
            "Batch processed",
            extra={
                "batch_size": len(events),
                "accepted": tally.accepted,
                "deduped": tally.deduped,
                "updated": tally.updated,
                "rejected": tally.rejected,
                "reasons": dict(Counter(r.reason for r in tally.rejections)),
            },
        )
        return tally.to_out()

    async def _upsert(self, valid: List[EventIn], now: datetime, tally: _Tally) -> None:
        # 2) Snapshot unique du batch
        snapshot = await self.store.find_by_ids([e.event_id for e in valid])
        arena: Dict[str, EventRecord] = {r.event_id: r for r in snapshot}

        to_insert: Dict[str, EventRecord] = {}
        to_update: Dict[str, EventRecord] = {}

        # 3) Passe de décision
        for event in valid:
            try:
                candidate = build_record(event, now, self.fingerprinter(event))
            except Exception as exc:
                err = ProcessingError(event.event_id, str(exc) or type(exc).__name__)
                tally.reject(event.event_id, err.reason)
                log.error("Error processing event", extra={"event_id": event.event_id, "reason": err.reason})
                continue

            decision = classify(arena.get(candidate.event_id), candidate)

            if decision == NEW:
                arena[candidate.event_id] = candidate
                to_insert[candidate.event_id] = candidate
                tally.accepted += 1
            elif decision == SUPERSEDE:
                arena[candidate.event_id] = candidate
                to_update[candidate.event_id] = candidate
                tally.updated += 1
            else:
                tally.deduped += 1

            log.debug("Classified event", extra={"event_id": candidate.event_id, "reason": decision})

        # 4) Écritures en masse
        if to_insert:
            outcome = await self.store.insert_all(list(to_insert.values()))
            if outcome.has_conflicts:
                await self._recover_conflicts(outcome.conflicted, to_insert, tally)

        if to_update:
            await self.store.update_all(list(to_update.values()))

    async def _recover_conflicts(
        self, conflicted: List[str], pending: Dict[str, EventRecord], tally: _Tally
    ) -> None:
        """
        Un autre batch a inséré certains eventIds entre notre lecture et notre écriture.

        - ids relus en base : comptés en doublons (retirés des acceptés),
        - ids absents malgré le conflit : une seule nouvelle tentative d’insertion,
          puis rejet PROCESSING_ERROR si toujours non persistés (jamais un faux doublon).
        """
        visible = {r.event_id for r in await self.store.find_by_ids(conflicted)}
        missing = [i for i in conflicted if i not in visible]

        tally.accepted -= len(visible)
        tally.deduped += len(visible)
        log.warning(
            "Concurrent insert conflict, treating as deduped",
            extra={"conflicted": len(visible)},
        )

        if not missing:
            return

        log.warning("Conflicted events not visible on re-read, retrying: %s", ", ".join(missing[:20]))
        retry = await self.store.insert_all([pending[i] for i in missing])

        # Conflit au second essai : l’id a pu apparaître entre-temps, sinon il est perdu
        raced = {r.event_id for r in await self.store.find_by_ids(retry.conflicted)} if retry.has_conflicts else set()
        for event_id in retry.conflicted:
            tally.accepted -= 1
            if event_id in raced:
                tally.deduped += 1
                continue
            err = ProcessingError(event_id, "not persisted")
            tally.reject(event_id, err.reason)
            log.error("Event not persisted", extra={"event_id": event_id, "reason": err.reason})
