"""
factory_events

Package racine du service d’ingestion d’événements machine.

Rôle (fonctionnel) :
- Contient tout le code applicatif (API, logique métier, accès DB, schémas).
- Sert de point d’ancrage pour les imports : `from factory_events...`

Organisation (haut niveau) :
- factory_events.api      : routes FastAPI (contrats HTTP, dépendances, sérialisation)
- factory_events.core     : briques transverses (settings, errors, logs, horloge, rate-limit…)
- factory_events.db       : base SQLAlchemy, session async, store SQL
- factory_events.models   : modèle ORM (table `events`)
- factory_events.schemas  : schémas Pydantic (entrées/sorties API)
- factory_events.services : logique métier (validation, empreinte, ingestion, stats)
"""
