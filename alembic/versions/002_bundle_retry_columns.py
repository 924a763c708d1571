"""notification bundle retry bookkeeping and single-pending index

Revision ID: 002
Revises: 001
Create Date: 2026-10-09
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_NEW_COLUMNS = (
    ("attempts", sa.Integer(), {"nullable": False, "server_default": "0"}),
    ("next_attempt_at", sa.DateTime(timezone=True), {"nullable": True}),
    ("claimed_at", sa.DateTime(timezone=True), {"nullable": True}),
    ("last_error", sa.Text(), {"nullable": True}),
)


def upgrade() -> None:
    from sqlalchemy import inspect as sa_inspect

    inspector = sa_inspect(op.get_bind())
    if not inspector.has_table("notification_bundles"):
        return

    existing = {c["name"] for c in inspector.get_columns("notification_bundles")}
    for name, type_, kwargs in _NEW_COLUMNS:
        if name not in existing:
            op.add_column("notification_bundles", sa.Column(name, type_, **kwargs))

    indexes = {ix["name"] for ix in inspector.get_indexes("notification_bundles")}
    if "uq_notification_bundles_one_pending" not in indexes:
        op.create_index(
            "uq_notification_bundles_one_pending",
            "notification_bundles",
            ["tenant_id", "recipient_id"],
            unique=True,
            postgresql_where=sa.text("status = 'pending'"),
            sqlite_where=sa.text("status = 'pending'"),
        )


def downgrade() -> None:
    op.drop_index("uq_notification_bundles_one_pending", table_name="notification_bundles")
    for name, _type, _kwargs in reversed(_NEW_COLUMNS):
        op.drop_column("notification_bundles", name)
