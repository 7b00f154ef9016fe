"""
factory_events.models

Package ORM (SQLAlchemy) : définition des entités persistées en base.

Rôle (fonctionnel) :
- Une seule table métier : `events` (modèle Event).
- Expose explicitement l’API publique du package via __all__.
"""

from factory_events.models.event import Event

__all__ = ["Event"]
