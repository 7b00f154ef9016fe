"""
factory_events.core

Package “cœur” : tout ce qui est transversal, c’est-à-dire ce qui s’applique à plusieurs
endpoints/services sans dépendre du métier (ingestion, stats).

On y trouve :

- settings
  Configuration centralisée (variables d’environnement, bornes de validation, seuil Warning, URLs DB).

- errors
  Format d’erreur API uniforme (code, message, status, request_id, timestamp), AppHTTPException,
  et les erreurs d’ingestion (ProcessingError, StoreUnavailableError).

- logging
  Logs JSON sur stdout, enrichis du request_id et des compteurs de batch.

- request_id
  Identifiant de corrélation (X-Request-Id) : relie les renvois d’un même producteur.

- clock
  Source du “maintenant” injectable (validation + receivedTime), figée dans les tests.

- rate_limit
  Limitation de débit en mémoire sur l’ingestion (tempête de renvois).
"""
