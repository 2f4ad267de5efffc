"""seed product categories

Revision ID: 8d21f4c6a9e3
Revises: 3a7c1e90b2d4
Create Date: 2026-10-19 10:31:08.644120

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d21f4c6a9e3'
down_revision: Union[str, Sequence[str], None] = '3a7c1e90b2d4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE = "category"

CATEGORIES = ["skincare", "haircare", "makeup", "fragrance", "accessories", "other"]


def upgrade() -> None:
    """Upgrade schema."""
    category = sa.table(TABLE, sa.column("name", sa.String))
    op.bulk_insert(category, [{"name": name} for name in CATEGORIES])


def downgrade() -> None:
    """Downgrade schema."""
    conn = op.get_bind()
    conn.execute(sa.text(f"DELETE FROM {TABLE} WHERE name IN :names").bindparams(
        sa.bindparam("names", expanding=True)), {"names": CATEGORIES})
