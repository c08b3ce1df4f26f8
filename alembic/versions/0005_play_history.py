"""add play_history

Revision ID: 0005
Revises: 0004
Create Date: 2025-12-17 03:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0005"
down_revision = "0004"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "play_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "work_id",
            sa.Integer,
            sa.ForeignKey("works.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "track_id",
            sa.Integer,
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "played_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    # Recent-history query reads newest first
    op.create_index(
        "idx_play_history_played_at",
        "play_history",
        [sa.text("played_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_play_history_played_at", table_name="play_history")
    op.drop_table("play_history")
