from __future__ import annotations

import uuid
from contextvars import ContextVar

"""
Core Request ID.

Rôle (fonctionnel) :
- Identifiant de corrélation (request_id) stocké dans un ContextVar.
- Repris depuis le header X-Request-Id s’il est fourni par le producteur, sinon généré.
- Lu par le logging (chaque ligne JSON) et par les handlers d’erreurs (payload).

Notes :
- ContextVar est adapté aux contextes async : deux batches ingérés en parallèle
  gardent chacun leur propre request_id dans les logs.
"""

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(rid: str | None) -> None:
    _request_id.set(rid)


def get_request_id() -> str | None:
    return _request_id.get()


def ensure_request_id(incoming: str | None = None) -> str:
    """Réutilise le request_id entrant (nettoyé) ou génère un UUID."""
    rid = (incoming or "").strip() or str(uuid.uuid4())
    set_request_id(rid)
    return rid
