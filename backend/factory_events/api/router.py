from fastapi import APIRouter

from .events import router as events_router
from .health import router as health_router
from .stats import router as stats_router
from .status import router as status_router

"""
Router principal de l’API.

Rôle (fonctionnel) :
- Regroupe les routeurs par domaine (health, ingestion, stats, statut système).
- Point d’entrée unique pour l’inclusion dans l’application FastAPI.
"""

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(events_router)
api_router.include_router(stats_router)
api_router.include_router(status_router)
