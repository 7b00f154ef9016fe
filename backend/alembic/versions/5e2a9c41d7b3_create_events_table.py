"""Création de la table events.

Rôle (fonctionnel) :
- Crée la table `events` (1 ligne = 1 eventId logique, clé primaire fournie par le producteur).
- La clé primaire sur event_id porte l’idempotence : deux batches concurrents qui insèrent
  le même eventId se départagent ici, sans verrou applicatif.
- Identifiants en TEXT : opaques côté producteur, aucune longueur imposée.
- Index composites pour les fenêtres de stats (machine + date, usine + date).

Revision ID: 5e2a9c41d7b3
Revises:
Create Date: 2026-01-16 09:12:44.120318
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Identifiants Alembic
revision: str = "5e2a9c41d7b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Application des changements de schéma."""
    op.create_table(
        "events",
        sa.Column("event_id", sa.Text(), nullable=False),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("received_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("machine_id", sa.Text(), nullable=False),
        sa.Column("line_id", sa.Text(), nullable=True),
        sa.Column("factory_id", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.BigInteger(), nullable=False),
        sa.Column("defect_count", sa.Integer(), nullable=False),
        sa.Column("payload_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_events_machine_time", "events", ["machine_id", "event_time"], unique=False)
    op.create_index("ix_events_factory_time", "events", ["factory_id", "event_time"], unique=False)


def downgrade() -> None:
    """Retour arrière des changements de schéma."""
    op.drop_index("ix_events_factory_time", table_name="events")
    op.drop_index("ix_events_machine_time", table_name="events")
    op.drop_table("events")
