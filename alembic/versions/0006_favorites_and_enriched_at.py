"""add favorites table and works.enriched_at

Revision ID: 0006
Revises: 0005
Create Date: 2026-01-05 10:00:00.000000

Favorites move from the client into the catalog (one row per favorited work).
enriched_at lets a batch enrichment skip works that were already looked up.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0006"
down_revision = "0005"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "favorites",
        sa.Column(
            "work_id",
            sa.Integer,
            sa.ForeignKey("works.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    with op.batch_alter_table("works") as batch_op:
        batch_op.add_column(
            sa.Column("enriched_at", sa.DateTime(timezone=True), nullable=True)
        )


def downgrade() -> None:
    with op.batch_alter_table("works") as batch_op:
        batch_op.drop_column("enriched_at")
    op.drop_table("favorites")
