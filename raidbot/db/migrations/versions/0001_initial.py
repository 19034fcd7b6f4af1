"""active and archived raid tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "active_raids",
        sa.Column("channel_id", sa.String(length=32), primary_key=True),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "archived_raids",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.String(length=64), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("archived_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_archived_raids_venue_id", "archived_raids", ["venue_id"])


def downgrade() -> None:
    op.drop_index("ix_archived_raids_venue_id", table_name="archived_raids")
    op.drop_table("archived_raids")
    op.drop_table("active_raids")
