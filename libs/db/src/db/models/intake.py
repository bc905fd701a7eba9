from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements an ``INTEGER PRIMARY KEY`` (rowid alias).
_BigId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


def _new_category_id() -> str:
    return uuid4().hex


# ---------------------------
# Reference: nl_categories
# ---------------------------


class NlCategory(Base):
    """A tenant (tracker) taxonomy entry.

    ``kind`` partitions entries into the four pools read by the intake
    pipeline. ``subcategories`` is an ordered JSON list of names; for the
    ``debit_mode``/``credit_mode`` kinds these names are the payment methods
    and credit sources offered to the model.
    """

    __tablename__ = "nl_categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_category_id)
    tracker_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    subcategories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tracker_id", "kind", "name", name="uniq_nl_cat_tracker_kind_name"),
        CheckConstraint(
            "kind in ('expense','income','debit_mode','credit_mode')",
            name="ck_nl_cat_kind",
        ),
    )


# ---------------------------
# Usage ledger
# ---------------------------


class NlUsageLog(Base):
    """Append-only per-message usage entry with a snapshot of the tracker.

    ``exchange_id`` is optional. When present,
    ``(user_id, tracker_id, exchange_id, message_role)`` is unique so a later
    call carrying actual token counts corrects the row written with an
    estimate instead of inserting a second one. Two users (or two trackers)
    may reuse the same exchange id without touching each other's rows.
    """

    __tablename__ = "nl_usage_logs"

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    tracker_id: Mapped[str] = mapped_column(String, nullable=False)
    tracker_name: Mapped[str] = mapped_column(String, nullable=False)
    tracker_type: Mapped[str] = mapped_column(String, nullable=False)
    tracker_is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    tracker_deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tracker_modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    message_role: Mapped[str] = mapped_column(String, nullable=False)
    message_content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    exchange_id: Mapped[str | None] = mapped_column(String, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "message_role in ('user','assistant')",
            name="ck_nl_usage_log_role",
        ),
        Index("ix_nl_usage_logs_user_occurred", "user_id", "occurred_at"),
        Index("ix_nl_usage_logs_user_tracker_occurred", "user_id", "tracker_id", "occurred_at"),
        Index(
            "uniq_nl_usage_logs_owner_exchange_role",
            "user_id",
            "tracker_id",
            "exchange_id",
            "message_role",
            unique=True,
            postgresql_where=text("exchange_id IS NOT NULL"),
            sqlite_where=text("exchange_id IS NOT NULL"),
        ),
    )


class NlUsageDaily(Base):
    """Per ``(user_id, tracker_id, usage_date)`` aggregate of message/token counts.

    Rows are created by the first write of a day and only ever mutated with
    single-statement ``INSERT ... ON CONFLICT DO UPDATE`` increments.
    """

    __tablename__ = "nl_usage_daily"

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    tracker_id: Mapped[str] = mapped_column(String, nullable=False)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    tracker_name: Mapped[str] = mapped_column(String, nullable=False)
    tracker_type: Mapped[str] = mapped_column(String, nullable=False)
    tracker_is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    tracker_deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tracker_modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    user_messages: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    ai_messages: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "tracker_id", "usage_date", name="uniq_nl_usage_daily_bucket"
        ),
        Index("ix_nl_usage_daily_user_date", "user_id", "usage_date"),
    )


def snapshot_columns(row: Any) -> dict[str, Any]:
    """Return the tracker snapshot columns of a usage row as a plain mapping."""

    return {
        "tracker_id": row.tracker_id,
        "tracker_name": row.tracker_name,
        "tracker_type": row.tracker_type,
        "is_deleted": bool(row.tracker_is_deleted),
        "deleted_at": row.tracker_deleted_at,
        "modified_at": row.tracker_modified_at,
    }


__all__ = [
    "Base",
    "NlCategory",
    "NlUsageDaily",
    "NlUsageLog",
    "snapshot_columns",
]
