from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from factory_events.api.router import api_router
from factory_events.core.errors import AppHTTPException, StoreUnavailableError, error_payload
from factory_events.core.logging import setup_logging
from factory_events.core.rate_limit import rate_limiter
from factory_events.core.request_id import ensure_request_id, get_request_id, set_request_id
from factory_events.core.settings import settings

"""
Application FastAPI (entrypoint).

Rôle (fonctionnel) :
- Configure l’application (settings, CORS, middlewares, routers).
- Centralise l’observabilité :
  - request_id propagé (X-Request-Id), utile pour corréler les renvois d’un même producteur
  - logs structurés JSON (timing, status, client_ip)
  - seuil de “slow request”
- Applique un rate-limit simple (optionnel) sur l’ingestion.
- Uniformise les erreurs côté client (format error_payload), dont le 503 “store indisponible”.

Ce fichier ne contient pas de logique métier :
- La logique métier est dans factory_events.services
- Les routes sont dans factory_events.api
- Les composants transverses sont dans factory_events.core
"""


class UTF8JSONResponse(JSONResponse):
    """Réponse JSON avec charset UTF-8 explicite (cohérent sur tous les endpoints)."""
    media_type = "application/json; charset=utf-8"


setup_logging(settings.LOG_LEVEL)

log = logging.getLogger("factory_events")

# logger dédié observabilité HTTP (séparé du métier)
http_log = logging.getLogger("factory_events.http")

SLOW_MS = int(settings.SLOW_REQUEST_MS)


def _split_origins(value: str) -> list[str]:
    """Parse une liste d’origines CORS depuis une string 'a,b,c'."""
    if not value:
        return []
    return [o.strip() for o in value.split(",") if o.strip()]


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid.uuid4())


app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    default_response_class=UTF8JSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_split_origins(settings.CORS_ORIGINS),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id", "X-Producer-Id"],
)

app.include_router(api_router)


# --- Middleware observabilité : request_id + timing + logs structurés ---
@app.middleware("http")
async def request_observability(request: Request, call_next):
    rid = ensure_request_id(request.headers.get("X-Request-Id"))
    request.state.request_id = rid

    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)

        if response is not None:
            response.headers["X-Request-Id"] = rid

        level = logging.WARNING if duration_ms >= SLOW_MS else logging.INFO
        http_log.log(
            level,
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": getattr(response, "status_code", None),
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else None,
                "producer": request.headers.get("X-Producer-Id"),
            },
        )

        set_request_id(None)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Rate-limit (optionnel) sur l’ingestion uniquement ; jamais sur les préflights CORS."""
    if request.method == "OPTIONS":
        return await call_next(request)

    if request.url.path.startswith("/events"):
        try:
            rate_limiter.check(request)
        except AppHTTPException as exc:
            detail = exc.detail if isinstance(exc.detail, dict) else {}
            details = detail.get("details") or {}
            headers = {"Retry-After": str(details["retry_after_s"])} if "retry_after_s" in details else None
            return UTF8JSONResponse(
                status_code=exc.status_code,
                content=error_payload(
                    code=str(detail.get("code", "RATE_LIMITED")),
                    message=str(detail.get("message", "Trop de requêtes")),
                    status=exc.status_code,
                    request_id=_request_id(request),
                    details=details or None,
                ),
                headers=headers,
            )

    return await call_next(request)


# --- Error handlers : format standard, pas de stacktrace côté client ---
@app.exception_handler(AppHTTPException)
async def app_http_exception_handler(request: Request, exc: AppHTTPException):
    detail = exc.detail if isinstance(exc.detail, dict) else {}

    return UTF8JSONResponse(
        status_code=exc.status_code,
        content=error_payload(
            code=str(detail.get("code", "HTTP_ERROR")),
            message=str(detail.get("message", "Erreur HTTP")),
            status=exc.status_code,
            request_id=_request_id(request),
            details=detail.get("details", None),
        ),
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    """Store injoignable : aucun bilan fiable, le producteur doit renvoyer le batch."""
    log.error("Store unavailable: %s", exc)
    return UTF8JSONResponse(
        status_code=503,
        content=error_payload(
            code="STORE_UNAVAILABLE",
            message="Stockage indisponible, réessayer plus tard",
            status=503,
            request_id=_request_id(request),
            details={"operation": exc.operation},
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Erreurs HTTP natives (404, 405, etc.) -> payload standard."""
    if isinstance(exc.detail, dict):
        code = str(exc.detail.get("code", "HTTP_ERROR"))
        message = str(exc.detail.get("message", "Erreur HTTP"))
        details = exc.detail.get("details", None)
    else:
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        message = str(exc.detail)
        details = None

    return UTF8JSONResponse(
        status_code=exc.status_code,
        content=error_payload(
            code=code, message=message, status=exc.status_code, request_id=_request_id(request), details=details
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Erreurs de forme (JSON invalide, type incompatible) -> 422 + details=exc.errors()."""
    return UTF8JSONResponse(
        status_code=422,
        content=error_payload(
            code="VALIDATION_ERROR",
            message="Requête invalide",
            status=422,
            request_id=_request_id(request),
            details=jsonable_encoder(exc.errors(), custom_encoder={Exception: str}),
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Fallback : toute exception non gérée -> 500 + log serveur."""
    log.exception("Unhandled error: %s", exc)

    return UTF8JSONResponse(
        status_code=500,
        content=error_payload(
            code="INTERNAL_ERROR",
            message="Erreur interne du serveur",
            status=500,
            request_id=_request_id(request),
        ),
    )

