"""add_position_day_change

Revision ID: 7c8d2e4f9a15
Revises: 4f1c9e2a7b30
Create Date: 2026-10-20 00:00:00.000000

Add day_change and day_change_percent to positions (value move since the
security's previous close).
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7c8d2e4f9a15"
down_revision = "4f1c9e2a7b30"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("positions", sa.Column("day_change", sa.Numeric(precision=14, scale=2),
                                         nullable=False, server_default="0"))
    op.add_column("positions", sa.Column("day_change_percent", sa.Numeric(precision=8, scale=4),
                                         nullable=False, server_default="0"))


def downgrade() -> None:
    op.drop_column("positions", "day_change_percent")
    op.drop_column("positions", "day_change")
