from fastapi import APIRouter

from factory_events.core.settings import settings

"""
API Health.

Rôle (fonctionnel) :
- Endpoint simple pour vérifier que l’API répond (sans toucher à la base).
- Expose quelques réglages utiles au diagnostic (env, seuil Warning).
"""

router = APIRouter()


@router.get("/health")
def health():
    return {
        "status": "ok",
        "env": settings.ENV,
        "warningDefectRate": settings.WARNING_DEFECT_RATE,
    }
