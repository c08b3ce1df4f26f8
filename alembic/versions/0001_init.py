"""init: works, tracks, track_progress, app_settings

Revision ID: 0001
Revises:
Create Date: 2024-12-10 12:00:00.000000

Hey future me - the four core tables. Every child row points at works with
ON DELETE CASCADE; Database enables PRAGMA foreign_keys on every connection,
otherwise SQLite silently ignores the cascade.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "works",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        # Nullable - folders without a product code are still works
        sa.Column("external_code", sa.String(32), nullable=True, unique=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("dir_path", sa.Text, nullable=False),
        sa.Column("cover_path", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_works_dir_path", "works", ["dir_path"])
    op.create_index("ix_works_created_at", "works", ["created_at"])

    op.create_table(
        "tracks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "work_id",
            sa.Integer,
            sa.ForeignKey("works.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("path", sa.Text, nullable=False),
        sa.Column("duration_sec", sa.Integer, nullable=False, server_default="0"),
        sa.Column("track_number", sa.Integer, nullable=True),
        # False if duplicate format (e.g. the MP3 when a WAV of the same name exists)
        sa.Column("is_visible", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_tracks_work_id", "tracks", ["work_id"])
    op.create_index("ix_tracks_path", "tracks", ["path"])

    op.create_table(
        "track_progress",
        sa.Column(
            "work_id",
            sa.Integer,
            sa.ForeignKey("works.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "track_id",
            sa.Integer,
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position_sec", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_table("track_progress")
    op.drop_index("ix_tracks_path", table_name="tracks")
    op.drop_index("ix_tracks_work_id", table_name="tracks")
    op.drop_table("tracks")
    op.drop_index("ix_works_created_at", table_name="works")
    op.drop_index("ix_works_dir_path", table_name="works")
    op.drop_table("works")
