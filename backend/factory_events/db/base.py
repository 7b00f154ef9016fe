from sqlalchemy.orm import DeclarativeBase

"""
DB Base.

Rôle (fonctionnel) :
- Classe Base SQLAlchemy commune aux modèles ORM (models/*).
- Sa metadata sert à la migration Alembic et à la création du schéma en test (SQLite).
"""


class Base(DeclarativeBase):
    """Classe racine ORM (SQLAlchemy Declarative)."""
    pass
