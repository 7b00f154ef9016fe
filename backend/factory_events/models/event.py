from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from factory_events.db.base import Base

"""
Model Event.

Rôle (fonctionnel) :
- Représente un événement machine/usine persisté (1 ligne = 1 eventId logique).
- event_id est fourni par le producteur : c’est la clé d’identité ET la contrainte
  d’unicité sur laquelle repose l’idempotence (pas de verrou applicatif).

Champs principaux :
- event_time : instant d’occurrence déclaré par le producteur (fenêtres de stats).
- received_time : instant de traitement attribué par le service (arbitrage des mises à jour).
- machine_id / line_id / factory_id : rattachements (line/factory optionnels).
- duration_ms, defect_count : mesures ; defect_count < 0 = “non mesuré” (sentinelle).
- payload_hash : empreinte SHA-256 des champs sémantiques (détection doublon vs correction).

Index :
- (machine_id, event_time) : stats par machine sur une fenêtre.
- (factory_id, event_time) : classement des lignes par usine sur une fenêtre.
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    # Identité fournie par le producteur (unique, opaque : pas de longueur max)
    event_id: Mapped[str] = mapped_column(Text, primary_key=True)

    # Horodatages : occurrence (producteur) vs réception (service)
    event_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Rattachements (opaques, non bornés)
    machine_id: Mapped[str] = mapped_column(Text, nullable=False)
    line_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    factory_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Mesures
    duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    defect_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Empreinte des champs sémantiques (hex SHA-256)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Horodatages techniques
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_events_machine_time", "machine_id", "event_time"),
        Index("ix_events_factory_time", "factory_id", "event_time"),
    )
