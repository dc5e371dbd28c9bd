"""add review columns to lab_results

Revision ID: b7e4c1d9a2f3
Revises: a1b2c3d4e5f6
Create Date: 2026-10-20 10:30:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b7e4c1d9a2f3"
down_revision: Union[str, None] = "a1b2c3d4e5f6"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("lab_results", sa.Column("reviewed_by", sa.Uuid(), nullable=True))
    op.add_column("lab_results", sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("lab_results", "reviewed_at")
    op.drop_column("lab_results", "reviewed_by")
