from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Tuple

from fastapi import Request

from factory_events.core.errors import AppHTTPException
from factory_events.core.settings import settings

"""
Core Rate Limit.

Rôle (fonctionnel) :
- Protège l’ingestion contre les producteurs qui renvoient en boucle (retry storm).
- Un compteur par producteur + route, fenêtre fixe de 60 secondes (RPM) :
  - producteur = header X-Producer-Id (passerelle d’usine) s’il est fourni, sinon IP client,
    plusieurs passerelles derrière un même NAT gardent ainsi chacune leur quota.
- Le 429 indique quand renvoyer (retry_after_s + header Retry-After) : le producteur
  peut renvoyer le même batch plus tard sans risque, l’ingestion est idempotente.
- Un seul process : en déploiement multi-workers, chaque worker a son propre compteur.

Activation via settings :
- RATE_LIMIT_ENABLED : active/désactive le rate limiting.
- RATE_LIMIT_RPM : limite de requêtes par minute (par producteur + route).
"""

PRODUCER_HEADER = "X-Producer-Id"


@dataclass
class _Bucket:
    window_start: float
    count: int


class InMemoryRateLimiter:
    """
    Rate limiter en mémoire (best-effort).

    - Lève AppHTTPException(429) si la limite est dépassée, avec le délai avant la
      prochaine fenêtre dans details.retry_after_s.
    - `timer` est injectable (tests) : secondes monotones.
    """

    def __init__(self, window_seconds: float = 60.0, timer: Callable[[], float] = time.monotonic) -> None:
        self._lock = Lock()
        self._buckets: Dict[Tuple[str, str], _Bucket] = {}
        self.window_seconds = window_seconds
        self.timer = timer

    def _producer(self, request: Request) -> str:
        producer = (request.headers.get(PRODUCER_HEADER) or "").strip()
        if producer:
            return f"producer:{producer}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def check(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        limit = int(settings.RATE_LIMIT_RPM or 0)
        if limit <= 0:
            return

        key = (self._producer(request), f"{request.method} {request.url.path}")
        now = self.timer()

        with self._lock:
            bucket = self._buckets.get(key)

            # Nouvelle fenêtre : on réinitialise
            if bucket is None or (now - bucket.window_start) >= self.window_seconds:
                self._buckets[key] = _Bucket(window_start=now, count=1)
                return

            bucket.count += 1
            if bucket.count <= limit:
                return

            retry_after = max(1, math.ceil(self.window_seconds - (now - bucket.window_start)))

        raise AppHTTPException(
            429,
            "RATE_LIMITED",
            f"Trop de requêtes (limite: {limit}/min), renvoyer le batch dans {retry_after}s.",
            details={"limit_rpm": limit, "retry_after_s": retry_after},
        )


rate_limiter = InMemoryRateLimiter()
