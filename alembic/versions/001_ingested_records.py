"""Ingested records table

Revision ID: 001
Revises:
Create Date: 2026-10-19

One row per (collection, official_id). The payload is the assembled record as
JSON; upserts only touch updated_at when the payload actually changes.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ingested_records",
        sa.Column("collection", sa.String(50), nullable=False),
        sa.Column("official_id", sa.String(255), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("collection", "official_id"),
        sa.CheckConstraint(
            "collection IN ('deputies', 'works', 'ballots', 'votes')",
            name="ck_ingested_records_collection",
        ),
    )
    # Partial index for the reclassification pass.
    op.execute(
        """
        CREATE INDEX ix_ingested_records_unclassified
        ON ingested_records (collection)
        WHERE payload->>'unclassified_theme' IS NOT NULL
        """
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_ingested_records_unclassified")
    op.drop_table("ingested_records")
