"""card due date

Revision ID: 003
Revises: 002
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    from sqlalchemy import inspect as sa_inspect

    inspector = sa_inspect(op.get_bind())
    if not inspector.has_table("cards"):
        return
    existing = {c["name"] for c in inspector.get_columns("cards")}
    if "due_on" not in existing:
        op.add_column("cards", sa.Column("due_on", sa.Date(), nullable=True))


def downgrade() -> None:
    op.drop_column("cards", "due_on")
