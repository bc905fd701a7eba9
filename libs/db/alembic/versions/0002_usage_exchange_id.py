# ruff: noqa: I001
"""Add exchange_id to usage logs for idempotent token corrections.

Revision ID: 0002_usage_exchange_id
Revises: 0001_nl_core
Create Date: 2026-10-02
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_usage_exchange_id"
down_revision: str | None = "0001_nl_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("nl_usage_logs", sa.Column("exchange_id", sa.String(), nullable=True))

    # At most one row per (user, tracker, exchange, role); rows without an exchange id are unconstrained.
    op.create_index(
        "uniq_nl_usage_logs_owner_exchange_role",
        "nl_usage_logs",
        ["user_id", "tracker_id", "exchange_id", "message_role"],
        unique=True,
        postgresql_where=sa.text("exchange_id IS NOT NULL"),
        sqlite_where=sa.text("exchange_id IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index("uniq_nl_usage_logs_owner_exchange_role", table_name="nl_usage_logs")
    op.drop_column("nl_usage_logs", "exchange_id")
