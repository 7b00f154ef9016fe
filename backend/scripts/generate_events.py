# backend/scripts/generate_events.py
from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

# Permet de lancer le script depuis backend/ sans souci d'import
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from factory_events.schemas.events import EventIn


"""
Générateur de batches d’événements (démo / charge).

Usage :
- JSON sur stdout (à poster sur /events/batch) :
    python scripts/generate_events.py --n 1000 > batch.json
- Ingestion directe en base via le service (même chemin que l’API) :
    python scripts/generate_events.py --n 1000 --ingest --resend 2

Options utiles pour rejouer un producteur “peu fiable” :
- --duplicates : part d’événements renvoyés à l’identique dans le même batch,
- --corrections : part d’événements renvoyés avec un defectCount corrigé,
- --sentinel : part d’événements “non mesurés” (defectCount = -1),
- --resend : nombre de renvois du batch complet (idempotence).
"""


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_batch(
    n: int,
    start: datetime,
    *,
    machines: int = 10,
    lines: int = 5,
    factories: int = 3,
    duplicates: float = 0.0,
    corrections: float = 0.0,
    sentinel: float = 0.0,
) -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = []

    for i in range(n):
        event_time = start + timedelta(minutes=i)
        defect_count = -1 if random.random() < sentinel else random.randint(0, 9)
        events.append(
            {
                "eventId": f"bulk-event-{i:06d}",
                "eventTime": _iso(event_time),
                # Ignoré par le service : présent pour coller aux producteurs réels
                "receivedTime": _iso(event_time + timedelta(milliseconds=random.randint(0, 5000))),
                "machineId": f"machine-{i % machines}",
                "lineId": f"line-{(i % lines) + 1}",
                "factoryId": f"factory-{i % factories}",
                "durationMs": random.randint(1000, 21000),
                "defectCount": defect_count,
            }
        )

    # Renvois à l’identique / corrections (mêmes eventIds, fin de batch)
    originals = list(events)
    for e in originals:
        roll = random.random()
        if roll < duplicates:
            events.append(dict(e))
        elif roll < duplicates + corrections:
            fixed = dict(e)
            fixed["defectCount"] = max(0, int(e["defectCount"])) + 1
            events.append(fixed)

    return events


async def ingest(events: List[Dict[str, Any]], resend: int) -> None:
    from factory_events.db.event_store import SqlAlchemyEventStore
    from factory_events.db.session import AsyncSessionLocal
    from factory_events.services.ingestion_service import IngestionService

    payload = [EventIn.model_validate(e) for e in events]

    for attempt in range(1 + resend):
        async with AsyncSessionLocal() as session:
            service = IngestionService(SqlAlchemyEventStore(session))
            out = await service.process_batch(payload)
        print(
            f"✅ Envoi {attempt + 1}: accepted={out.accepted} deduped={out.deduped} "
            f"updated={out.updated} rejected={out.rejected}",
            file=sys.stderr,
        )


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--n", type=int, default=1000, help="Nombre d’événements distincts")
    parser.add_argument("--start", type=str, default=None, help="eventTime du premier événement (ISO, défaut: now - n minutes)")
    parser.add_argument("--machines", type=int, default=10)
    parser.add_argument("--lines", type=int, default=5)
    parser.add_argument("--factories", type=int, default=3)
    parser.add_argument("--duplicates", type=float, default=0.0, help="Part de renvois identiques (0..1)")
    parser.add_argument("--corrections", type=float, default=0.0, help="Part de renvois corrigés (0..1)")
    parser.add_argument("--sentinel", type=float, default=0.0, help="Part de defectCount = -1 (0..1)")
    parser.add_argument("--ingest", action="store_true", help="Ingère directement en base au lieu d’imprimer le JSON")
    parser.add_argument("--resend", type=int, default=0, help="Renvois supplémentaires du batch (avec --ingest)")
    parser.add_argument("--seed", type=int, default=42, help="Seed RNG pour reproductibilité")
    args = parser.parse_args()

    random.seed(args.seed)

    if args.start:
        start = datetime.fromisoformat(args.start.replace("Z", "+00:00"))
    else:
        start = now_utc() - timedelta(minutes=args.n)

    events = build_batch(
        args.n,
        start,
        machines=args.machines,
        lines=args.lines,
        factories=args.factories,
        duplicates=args.duplicates,
        corrections=args.corrections,
        sentinel=args.sentinel,
    )

    if args.ingest:
        asyncio.run(ingest(events, args.resend))
    else:
        json.dump(events, sys.stdout, indent=2)
        sys.stdout.write("\n")


if __name__ == "__main__":
    main()
