"""add taxonomy: tags, circles, voice_actors and their join tables

Revision ID: 0002
Revises: 0001
Create Date: 2025-12-16 02:00:00.000000

The three entity tables are identical {id, name UNIQUE}. Names match
case-sensitively, get-or-create relies on the UNIQUE constraint.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

# (entity table, join table, join fk column)
_TAXONOMY = [
    ("tags", "work_tags", "tag_id"),
    ("circles", "work_circles", "circle_id"),
    ("voice_actors", "work_voice_actors", "voice_actor_id"),
]


def upgrade() -> None:
    for table, join_table, fk in _TAXONOMY:
        op.create_table(
            table,
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("name", sa.Text, nullable=False, unique=True),
        )
        op.create_table(
            join_table,
            sa.Column(
                "work_id",
                sa.Integer,
                sa.ForeignKey("works.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                fk,
                sa.Integer,
                sa.ForeignKey(f"{table}.id", ondelete="CASCADE"),
                primary_key=True,
            ),
        )


def downgrade() -> None:
    for table, join_table, _fk in reversed(_TAXONOMY):
        op.drop_table(join_table)
        op.drop_table(table)
