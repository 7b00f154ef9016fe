from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

"""
Core Clock.

Rôle (fonctionnel) :
- Fournit la notion de “maintenant” aux services (validation, receivedTime).
- Injectable : les tests passent une horloge figée pour rendre l’ingestion déterministe.
"""

# Une horloge = un callable sans argument qui renvoie un datetime UTC “aware”
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Horloge système (UTC)."""
    return datetime.now(timezone.utc)


def fixed_clock(instant: datetime) -> Clock:
    """Horloge figée sur `instant` (naïf => interprété comme UTC)."""
    frozen = as_utc(instant)
    return lambda: frozen


def as_utc(value: datetime) -> datetime:
    """Normalise un datetime en UTC aware (les drivers SQLite renvoient du naïf)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
