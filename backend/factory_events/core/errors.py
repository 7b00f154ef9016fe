from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException

"""
Core Errors.

Rôle (fonctionnel) :
- Standardise le format des erreurs renvoyées par l’API (payload homogène).
- Fournit une exception applicative (AppHTTPException) pour lever des erreurs HTTP de façon cohérente.
- Définit les erreurs “domaine” de l’ingestion :
  - ProcessingError : échec sur UN enregistrement (jamais fatal pour le batch),
  - StoreUnavailableError : le store n’a pas pu être joint (fatal, propagé).

Les issues “attendues” (doublon, réécriture obsolète, rejet de validation) ne sont
pas des exceptions : elles remontent dans le bilan du batch.

Convention de réponse (exemple) :
{
  "error": {
    "code": "STORE_UNAVAILABLE",
    "message": "Stockage indisponible",
    "status": 503,
    "request_id": "...",
    "timestamp": "...",
    "details": {...}
  }
}
"""


def now_iso() -> str:
    """Timestamp ISO-8601 en UTC (utilisé dans toutes les erreurs)."""
    return datetime.now(timezone.utc).isoformat()


def error_payload(
    *,
    code: str,
    message: str,
    status: int,
    request_id: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """Construit un payload d’erreur homogène pour l’API."""
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "status": status,
            "request_id": request_id,
            "timestamp": now_iso(),
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AppHTTPException(HTTPException):
    """
    Exception applicative standardisée.

    Exemple :
        raise AppHTTPException(413, "BATCH_TOO_LARGE", "Batch trop volumineux")
    """

    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        super().__init__(status_code=status_code, detail={"code": code, "message": message, "details": details})


class ProcessingError(Exception):
    """Échec de traitement d’un enregistrement (ex : empreinte impossible à calculer)."""

    def __init__(self, event_id: Optional[str], detail: str):
        super().__init__(detail)
        self.event_id = event_id
        self.detail = detail

    @property
    def reason(self) -> str:
        return f"PROCESSING_ERROR:{self.detail}"


class StoreUnavailableError(Exception):
    """Le store n’a pas pu exécuter une lecture/écriture (connexion, driver…)."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"store unavailable during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
