"""
factory_events.services

Package “services” : logique applicative indépendante des endpoints HTTP.

Contenu :
- store : contrat EventStore + types échangés + implémentation mémoire,
- validation : prédicat d’acceptation par enregistrement,
- fingerprint : empreinte SHA-256 des champs sémantiques,
- ingestion_service : upsert idempotent par batch (doublons, corrections, courses),
- stats_service : statistiques de fenêtre et top lignes (lecture seule).

Principe :
- factory_events.api = transport HTTP (routes, validation de forme, dépendances)
- factory_events.services = orchestration métier (réutilisable, testable sans DB)
- factory_events.db = implémentation SQL du store
"""
