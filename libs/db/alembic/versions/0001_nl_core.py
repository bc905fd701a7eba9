# ruff: noqa: I001
"""Intake core tables: tenant categories and usage ledger.

Revision ID: 0001_nl_core
Revises: None
Create Date: 2026-09-21
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_nl_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _snapshot_columns() -> list[sa.Column]:
    return [
        sa.Column("tracker_name", sa.String(), nullable=False),
        sa.Column("tracker_type", sa.String(), nullable=False),
        sa.Column(
            "tracker_is_deleted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("tracker_deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tracker_modified_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # nl_categories
    op.create_table(
        "nl_categories",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("tracker_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("subcategories", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("tracker_id", "kind", "name", name="uniq_nl_cat_tracker_kind_name"),
        sa.CheckConstraint(
            "kind in ('expense','income','debit_mode','credit_mode')",
            name="ck_nl_cat_kind",
        ),
    )
    op.create_index("ix_nl_categories_tracker_id", "nl_categories", ["tracker_id"], unique=False)

    # nl_usage_logs
    op.create_table(
        "nl_usage_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("tracker_id", sa.String(), nullable=False),
        *_snapshot_columns(),
        sa.Column("message_role", sa.String(), nullable=False),
        sa.Column("message_content", sa.Text(), nullable=False),
        sa.Column("token_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "message_role in ('user','assistant')",
            name="ck_nl_usage_log_role",
        ),
    )
    op.create_index(
        "ix_nl_usage_logs_user_occurred",
        "nl_usage_logs",
        ["user_id", "occurred_at"],
        unique=False,
    )
    op.create_index(
        "ix_nl_usage_logs_user_tracker_occurred",
        "nl_usage_logs",
        ["user_id", "tracker_id", "occurred_at"],
        unique=False,
    )

    # nl_usage_daily
    op.create_table(
        "nl_usage_daily",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("tracker_id", sa.String(), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        *_snapshot_columns(),
        sa.Column("total_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("ai_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_tokens", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "user_id", "tracker_id", "usage_date", name="uniq_nl_usage_daily_bucket"
        ),
    )
    op.create_index(
        "ix_nl_usage_daily_user_date",
        "nl_usage_daily",
        ["user_id", "usage_date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_nl_usage_daily_user_date", table_name="nl_usage_daily")
    op.drop_table("nl_usage_daily")
    op.drop_index("ix_nl_usage_logs_user_tracker_occurred", table_name="nl_usage_logs")
    op.drop_index("ix_nl_usage_logs_user_occurred", table_name="nl_usage_logs")
    op.drop_table("nl_usage_logs")
    op.drop_index("ix_nl_categories_tracker_id", table_name="nl_categories")
    op.drop_table("nl_categories")
