"""
factory_events.db

Package base de données : connexion, session, et implémentation SQL du store d’événements.

Contenu :
- base : Base déclarative SQLAlchemy.
- session : engine async + dépendance FastAPI get_db().
- event_store : SqlAlchemyEventStore (contrat EventStore sur la table `events`).
"""
