"""baseline: stamp existing schema

Revision ID: 001
Revises: None
Create Date: 2026-09-28

Tables are created by create_all on first start. On a database that
already has them, stamp this revision without executing: alembic stamp 001
"""

from typing import Sequence, Union

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    pass


def downgrade() -> None:
    pass
