"""Token-usage ledger: per-message log rows plus per-day aggregate buckets.

All functions take a SQLAlchemy ``Session`` and never commit; callers own the
transaction (typically ``db.client.session_scope``), so an abandoned request
leaves neither a log row nor a bucket increment behind.

Daily buckets are keyed by ``(user_id, tracker_id, usage_date)`` where
``usage_date`` is the UTC calendar date of the message. They are only ever
changed with a single ``INSERT ... ON CONFLICT DO UPDATE`` that adds to the
stored counters, so concurrent writers for the same key cannot lose updates.

Exchange ids
------------
``record_exchange`` accepts an optional ``exchange_id``. A second call for
the same ``(user_id, tracker_id, exchange_id, role)`` corrects the row
written by the first call (typically an estimate made before the model
answered) and moves the bucket's ``total_tokens`` by the difference only; the
message is not counted twice. Exchange ids are only unique per user and
tracker.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any, Literal

from db.models.intake import NlUsageDaily, NlUsageLog, snapshot_columns
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import (
    ChatReply,
    ChatTurn,
    ExchangeRecorded,
    ExpenseTransaction,
    Failure,
    DailyUsagePoint,
    IncomeTransaction,
    OverallUsage,
    ParseSuccess,
    TrackerLogPage,
    TrackerSnapshot,
    TrackerUsage,
    TrackerUsageSummary,
    TransferTransaction,
    UsageTotals,
)

_logger = get_logger("expense_parser.ledger")

type MessageRole = Literal["user", "assistant"]

_ROLES: tuple[str, ...] = ("user", "assistant")

_CURRENCY_SYMBOLS: dict[str, str] = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


@dataclass(frozen=True, slots=True)
class PurgeCounts:
    logs: int
    daily: int


# ---- Internal helpers --------------------------------------------------------


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _upsert_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"usage ledger requires PostgreSQL or SQLite, got {dialect!r}")


def _bump_bucket(
    session: Session,
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    usage_date: date,
    role: str,
    messages: int,
    tokens: int,
) -> None:
    """Create or add to the daily bucket in one statement."""

    insert = _upsert_insert(session)
    ins = insert(NlUsageDaily).values(
        user_id=user_id,
        tracker_id=tracker.tracker_id,
        usage_date=usage_date,
        tracker_name=tracker.tracker_name,
        tracker_type=tracker.tracker_type,
        tracker_is_deleted=tracker.is_deleted,
        tracker_deleted_at=tracker.deleted_at,
        tracker_modified_at=tracker.modified_at,
        total_messages=messages,
        user_messages=messages if role == "user" else 0,
        ai_messages=messages if role == "assistant" else 0,
        total_tokens=tokens,
    )
    t = NlUsageDaily.__table__
    stmt = ins.on_conflict_do_update(
        index_elements=[t.c.user_id, t.c.tracker_id, t.c.usage_date],
        set_={
            "total_messages": t.c.total_messages + ins.excluded.total_messages,
            "user_messages": t.c.user_messages + ins.excluded.user_messages,
            "ai_messages": t.c.ai_messages + ins.excluded.ai_messages,
            "total_tokens": t.c.total_tokens + ins.excluded.total_tokens,
            "tracker_name": ins.excluded.tracker_name,
            "tracker_type": ins.excluded.tracker_type,
            "tracker_is_deleted": ins.excluded.tracker_is_deleted,
            "tracker_deleted_at": ins.excluded.tracker_deleted_at,
            "tracker_modified_at": ins.excluded.tracker_modified_at,
            "updated_at": func.now(),
        },
    )
    session.execute(stmt)


def _new_log_row(
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    role: str,
    content: str,
    token_count: int,
    occurred_at: datetime,
    exchange_id: str | None,
) -> NlUsageLog:
    return NlUsageLog(
        user_id=user_id,
        tracker_id=tracker.tracker_id,
        tracker_name=tracker.tracker_name,
        tracker_type=tracker.tracker_type,
        tracker_is_deleted=tracker.is_deleted,
        tracker_deleted_at=tracker.deleted_at,
        tracker_modified_at=tracker.modified_at,
        message_role=role,
        message_content=content,
        token_count=token_count,
        exchange_id=exchange_id,
        occurred_at=occurred_at,
    )


def _find_exchange_row(
    session: Session, *, user_id: str, tracker_id: str, exchange_id: str, role: str
) -> NlUsageLog | None:
    stmt = (
        select(NlUsageLog)
        .where(
            NlUsageLog.user_id == user_id,
            NlUsageLog.tracker_id == tracker_id,
            NlUsageLog.exchange_id == exchange_id,
            NlUsageLog.message_role == role,
        )
        .with_for_update()
    )
    return session.execute(stmt).scalar_one_or_none()


def _correct(
    session: Session,
    row: NlUsageLog,
    *,
    tracker: TrackerSnapshot,
    content: str,
    token_count: int,
) -> ExchangeRecorded:
    delta = token_count - int(row.token_count or 0)
    row.token_count = token_count
    row.message_content = content
    session.flush()
    if delta:
        # The bucket is the one the original message was counted in.
        _bump_bucket(
            session,
            user_id=row.user_id,
            tracker=tracker,
            usage_date=_as_utc(row.occurred_at).date(),
            role=row.message_role,
            messages=0,
            tokens=delta,
        )
    _logger.info(
        "record_exchange:corrected exchange_id=%s role=%s token_delta=%d",
        row.exchange_id,
        row.message_role,
        delta,
    )
    return ExchangeRecorded(log_id=int(row.id), token_delta=delta, corrected=True)


# ---- Public API --------------------------------------------------------------


def record_exchange(
    session: Session,
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    role: MessageRole,
    content: str,
    token_count: int,
    occurred_at: datetime | None = None,
    exchange_id: str | None = None,
) -> ExchangeRecorded:
    """Append one message to the usage log and add it to its daily bucket.

    Without ``exchange_id`` every call is counted. With one, the first call for
    ``(user_id, tracker_id, exchange_id, role)`` is counted and later calls correct it in place.

    Raises ``ValueError`` for an unknown role, a negative token count or an
    empty ``user_id``. Database errors propagate.
    """

    if role not in _ROLES:
        raise ValueError(f"role must be one of {_ROLES}, got {role!r}")
    if token_count < 0:
        raise ValueError("token_count must be >= 0")
    if not user_id:
        raise ValueError("user_id is required")

    ts = _as_utc(occurred_at or datetime.now(UTC))

    if exchange_id:
        key = {
            "user_id": user_id,
            "tracker_id": tracker.tracker_id,
            "exchange_id": exchange_id,
            "role": role,
        }
        existing = _find_exchange_row(session, **key)
        if existing is not None:
            return _correct(
                session, existing, tracker=tracker, content=content, token_count=token_count
            )
        row = _new_log_row(
            user_id=user_id,
            tracker=tracker,
            role=role,
            content=content,
            token_count=token_count,
            occurred_at=ts,
            exchange_id=exchange_id,
        )
        try:
            with session.begin_nested():
                session.add(row)
                session.flush()
        except IntegrityError:
            # Lost a race with a concurrent writer for the same exchange.
            winner = _find_exchange_row(session, **key)
            if winner is None:
                raise
            return _correct(
                session, winner, tracker=tracker, content=content, token_count=token_count
            )
    else:
        row = _new_log_row(
            user_id=user_id,
            tracker=tracker,
            role=role,
            content=content,
            token_count=token_count,
            occurred_at=ts,
            exchange_id=None,
        )
        session.add(row)
        session.flush()

    _bump_bucket(
        session,
        user_id=user_id,
        tracker=tracker,
        usage_date=ts.date(),
        role=role,
        messages=1,
        tokens=token_count,
    )
    _logger.info(
        "record_exchange:done user_id=%s tracker_id=%s role=%s tokens=%d",
        user_id,
        tracker.tracker_id,
        role,
        token_count,
    )
    return ExchangeRecorded(log_id=int(row.id), token_delta=token_count, corrected=False)


def estimate_tokens(text: str) -> int:
    """Rough token estimate (about four characters per token) for pre-call logging."""

    if not text:
        return 0
    return max(1, math.ceil(len(text) / 4))


def _format_amount(amount: Decimal, currency_code: str) -> str:
    symbol = _CURRENCY_SYMBOLS.get(currency_code)
    value = format(amount.normalize(), "f") if amount == amount.to_integral() else str(amount)
    return f"{symbol}{value}" if symbol else f"{currency_code} {value}"


type _AnyTransaction = ExpenseTransaction | IncomeTransaction | TransferTransaction


def summarize_transactions(transactions: Sequence[_AnyTransaction]) -> str:
    """Return the short assistant line logged for a successful parse.

    One transaction: ``"Parsed 1 expense: ₹250 for Foods via Cash"``. Several:
    ``"Parsed 3 transactions totaling ₹1800"`` with one total per currency.
    """

    if not transactions:
        return "Parsed 0 transactions"
    if len(transactions) == 1:
        tx = transactions[0]
        line = (
            f"Parsed 1 {tx.kind}: {_format_amount(tx.amount, tx.currency_code)} "
            f"for {tx.subcategory_name}"
        )
        if isinstance(tx, ExpenseTransaction):
            line += f" via {tx.payment_method}"
        elif isinstance(tx, IncomeTransaction):
            line += f" from {tx.credit_from}"
        return line

    totals: dict[str, Decimal] = {}
    for tx in transactions:
        totals[tx.currency_code] = totals.get(tx.currency_code, Decimal(0)) + tx.amount
    kinds = Counter(tx.kind for tx in transactions)
    noun = f"{next(iter(kinds))}s" if len(kinds) == 1 else "transactions"
    joined = ", ".join(_format_amount(v, k) for k, v in totals.items())
    return f"Parsed {len(transactions)} {noun} totaling {joined}"


def log_parse_usage(
    session: Session,
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    message: str,
    result: ParseSuccess | Failure,
    exchange_id: str | None = None,
    occurred_at: datetime | None = None,
) -> list[ExchangeRecorded]:
    """Record both sides of a parse exchange with the model's actual token counts.

    The user message is charged ``prompt_tokens`` and the assistant side
    (a summary of the parsed transactions, or the failure message)
    ``completion_tokens``. A failure without usage means no upstream call
    completed; nothing is recorded.
    """

    usage = result.usage
    if usage is None:
        return []
    reply = (
        summarize_transactions(result.transactions)
        if isinstance(result, ParseSuccess)
        else result.message
    )
    return _log_pair(
        session,
        user_id=user_id,
        tracker=tracker,
        message=message,
        reply=reply,
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        exchange_id=exchange_id,
        occurred_at=occurred_at,
    )


def log_chat_usage(
    session: Session,
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    message: str,
    reply: ChatReply,
    exchange_id: str | None = None,
    occurred_at: datetime | None = None,
) -> list[ExchangeRecorded]:
    """Record both sides of a chat exchange with the model's actual token counts."""

    return _log_pair(
        session,
        user_id=user_id,
        tracker=tracker,
        message=message,
        reply=reply.response,
        prompt_tokens=reply.usage.prompt_tokens,
        completion_tokens=reply.usage.completion_tokens,
        exchange_id=exchange_id,
        occurred_at=occurred_at,
    )


def _log_pair(
    session: Session,
    *,
    user_id: str,
    tracker: TrackerSnapshot,
    message: str,
    reply: str,
    prompt_tokens: int,
    completion_tokens: int,
    exchange_id: str | None,
    occurred_at: datetime | None,
) -> list[ExchangeRecorded]:
    ts = _as_utc(occurred_at or datetime.now(UTC))
    return [
        record_exchange(
            session,
            user_id=user_id,
            tracker=tracker,
            role="user",
            content=message,
            token_count=prompt_tokens,
            occurred_at=ts,
            exchange_id=exchange_id,
        ),
        record_exchange(
            session,
            user_id=user_id,
            tracker=tracker,
            role="assistant",
            content=reply,
            token_count=completion_tokens,
            occurred_at=ts,
            exchange_id=exchange_id,
        ),
    ]


# ---- Tracker lifecycle hooks ---------------------------------------------------


def mark_tracker_deleted(
    session: Session, *, tracker_id: str, deleted_at: datetime | None = None
) -> int:
    """Soft-tag every snapshot of ``tracker_id`` as deleted; history is kept.

    Returns the number of rows updated across logs and buckets.
    """

    ts = _as_utc(deleted_at or datetime.now(UTC))
    values = {"tracker_is_deleted": True, "tracker_deleted_at": ts}
    n_logs = session.execute(
        update(NlUsageLog).where(NlUsageLog.tracker_id == tracker_id).values(**values)
    ).rowcount
    n_daily = session.execute(
        update(NlUsageDaily)
        .where(NlUsageDaily.tracker_id == tracker_id)
        .values(**values, updated_at=func.now())
    ).rowcount
    _logger.info(
        "mark_tracker_deleted:done tracker_id=%s logs=%d daily=%d", tracker_id, n_logs, n_daily
    )
    return int(n_logs or 0) + int(n_daily or 0)


def rename_tracker(
    session: Session,
    *,
    tracker_id: str,
    tracker_name: str | None = None,
    tracker_type: Literal["business", "personal"] | None = None,
    modified_at: datetime | None = None,
) -> int:
    """Propagate a new tracker name and/or type into historical snapshots.

    ``tracker_modified_at`` is always stamped. Returns the number of rows
    updated across logs and buckets.
    """

    if tracker_type is not None and tracker_type not in ("business", "personal"):
        raise ValueError(f"tracker_type must be 'business' or 'personal', got {tracker_type!r}")
    values: dict[str, Any] = {"tracker_modified_at": _as_utc(modified_at or datetime.now(UTC))}
    if tracker_name:
        values["tracker_name"] = tracker_name
    if tracker_type:
        values["tracker_type"] = tracker_type
    n_logs = session.execute(
        update(NlUsageLog).where(NlUsageLog.tracker_id == tracker_id).values(**values)
    ).rowcount
    n_daily = session.execute(
        update(NlUsageDaily)
        .where(NlUsageDaily.tracker_id == tracker_id)
        .values(**values, updated_at=func.now())
    ).rowcount
    return int(n_logs or 0) + int(n_daily or 0)


def purge_tracker_usage(
    session: Session, *, tracker_id: str, user_id: str | None = None
) -> PurgeCounts:
    """Delete all log rows and buckets of a tracker (optionally one user's only)."""

    log_stmt = delete(NlUsageLog).where(NlUsageLog.tracker_id == tracker_id)
    daily_stmt = delete(NlUsageDaily).where(NlUsageDaily.tracker_id == tracker_id)
    if user_id:
        log_stmt = log_stmt.where(NlUsageLog.user_id == user_id)
        daily_stmt = daily_stmt.where(NlUsageDaily.user_id == user_id)
    counts = PurgeCounts(
        logs=int(session.execute(log_stmt).rowcount or 0),
        daily=int(session.execute(daily_stmt).rowcount or 0),
    )
    _logger.info(
        "purge_tracker_usage:done tracker_id=%s logs=%d daily=%d",
        tracker_id,
        counts.logs,
        counts.daily,
    )
    return counts


def purge_user_usage(session: Session, *, user_id: str) -> PurgeCounts:
    """Delete all log rows and buckets of a user."""

    counts = PurgeCounts(
        logs=int(
            session.execute(delete(NlUsageLog).where(NlUsageLog.user_id == user_id)).rowcount or 0
        ),
        daily=int(
            session.execute(delete(NlUsageDaily).where(NlUsageDaily.user_id == user_id)).rowcount
            or 0
        ),
    )
    _logger.info(
        "purge_user_usage:done user_id=%s logs=%d daily=%d", user_id, counts.logs, counts.daily
    )
    return counts


# ---- Retention and reads -------------------------------------------------------


def prune_usage_logs(session: Session, *, days_old: int = 90, now: datetime | None = None) -> int:
    """Delete per-message log rows older than ``days_old`` days.

    Daily buckets are kept; they are the billing record.
    """

    if days_old < 0:
        raise ValueError("days_old must be >= 0")
    cutoff = _as_utc(now or datetime.now(UTC)) - timedelta(days=days_old)
    deleted = int(
        session.execute(delete(NlUsageLog).where(NlUsageLog.occurred_at < cutoff)).rowcount or 0
    )
    _logger.info("prune_usage_logs:done days_old=%d deleted=%d", days_old, deleted)
    return deleted


def _log_to_dict(row: NlUsageLog) -> dict[str, Any]:
    return {
        "id": int(row.id),
        "role": row.message_role,
        "content": row.message_content,
        "token_count": int(row.token_count or 0),
        "occurred_at": _as_utc(row.occurred_at),
        "exchange_id": row.exchange_id,
        "tracker": snapshot_columns(row),
    }


def list_tracker_logs(
    session: Session, *, user_id: str, tracker_id: str, limit: int = 100, offset: int = 0
) -> TrackerLogPage:
    """Return one page of a tracker's log rows, newest first."""

    if limit <= 0:
        raise ValueError("limit must be > 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")
    where = (NlUsageLog.user_id == user_id, NlUsageLog.tracker_id == tracker_id)
    total = session.execute(select(func.count()).select_from(NlUsageLog).where(*where)).scalar_one()
    rows = (
        session.execute(
            select(NlUsageLog)
            .where(*where)
            .order_by(NlUsageLog.occurred_at.desc(), NlUsageLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return TrackerLogPage(
        items=tuple(_log_to_dict(r) for r in rows),
        total_count=int(total),
        limit=limit,
        offset=offset,
    )


def recent_chat_history(
    session: Session, *, user_id: str, tracker_id: str, limit: int = 20
) -> list[ChatTurn]:
    """Return the last ``limit`` messages of a tracker, oldest first, for ``chat_reply``."""

    rows = (
        session.execute(
            select(NlUsageLog)
            .where(NlUsageLog.user_id == user_id, NlUsageLog.tracker_id == tracker_id)
            .order_by(NlUsageLog.occurred_at.desc(), NlUsageLog.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return [ChatTurn(role=r.message_role, content=r.message_content) for r in reversed(rows)]


# ---- Usage reports -------------------------------------------------------------


def _totals(session: Session, *where) -> UsageTotals:
    stmt = select(
        func.coalesce(func.sum(NlUsageDaily.total_messages), 0),
        func.coalesce(func.sum(NlUsageDaily.user_messages), 0),
        func.coalesce(func.sum(NlUsageDaily.ai_messages), 0),
        func.coalesce(func.sum(NlUsageDaily.total_tokens), 0),
    ).where(*where)
    total, user, ai, tokens = session.execute(stmt).one()
    return UsageTotals(
        total_messages=int(total),
        user_messages=int(user),
        ai_messages=int(ai),
        total_tokens=int(tokens),
    )


def _latest_snapshots(session: Session, *where) -> dict[str, TrackerSnapshot]:
    rows = session.execute(
        select(NlUsageDaily)
        .where(*where)
        .order_by(NlUsageDaily.usage_date.desc(), NlUsageDaily.id.desc())
    ).scalars()
    latest: dict[str, TrackerSnapshot] = {}
    for row in rows:
        if row.tracker_id not in latest:
            latest[row.tracker_id] = TrackerSnapshot(**snapshot_columns(row))
    return latest


def overall_usage(
    session: Session, *, user_id: str, now: datetime | None = None, recent_days: int = 30
) -> OverallUsage:
    """Summarize a user's usage from the daily buckets.

    ``by_tracker`` lists every tracker the user ever used, deleted ones
    included, busiest first. ``recent_activity`` sums all trackers per day
    over the last ``recent_days`` days, oldest first.
    """

    if recent_days < 0:
        raise ValueError("recent_days must be >= 0")
    mine = NlUsageDaily.user_id == user_id
    totals = _totals(session, mine)

    snapshots = _latest_snapshots(session, mine)
    per_tracker = session.execute(
        select(
            NlUsageDaily.tracker_id,
            func.sum(NlUsageDaily.total_messages),
            func.sum(NlUsageDaily.total_tokens),
        )
        .where(mine)
        .group_by(NlUsageDaily.tracker_id)
    ).all()
    by_tracker = sorted(
        (
            TrackerUsageSummary(
                tracker=snapshots[tracker_id],
                message_count=int(messages or 0),
                token_count=int(tokens or 0),
            )
            for tracker_id, messages, tokens in per_tracker
        ),
        key=lambda s: (-s.message_count, s.tracker.tracker_id),
    )

    since = _as_utc(now or datetime.now(UTC)).date() - timedelta(days=recent_days)
    per_day = session.execute(
        select(
            NlUsageDaily.usage_date,
            func.sum(NlUsageDaily.total_messages),
            func.sum(NlUsageDaily.total_tokens),
        )
        .where(mine, NlUsageDaily.usage_date >= since)
        .group_by(NlUsageDaily.usage_date)
        .order_by(NlUsageDaily.usage_date)
    ).all()
    recent = tuple(
        DailyUsagePoint(
            usage_date=day, message_count=int(messages or 0), token_count=int(tokens or 0)
        )
        for day, messages, tokens in per_day
    )
    return OverallUsage(totals=totals, by_tracker=tuple(by_tracker), recent_activity=recent)


def tracker_usage(
    session: Session, *, user_id: str, tracker_id: str, daily_limit: int = 30
) -> TrackerUsage:
    """Return one tracker's totals and its most recent daily buckets, newest first."""

    if daily_limit <= 0:
        raise ValueError("daily_limit must be > 0")
    where = (NlUsageDaily.user_id == user_id, NlUsageDaily.tracker_id == tracker_id)
    rows = (
        session.execute(
            select(NlUsageDaily)
            .where(*where)
            .order_by(NlUsageDaily.usage_date.desc(), NlUsageDaily.id.desc())
            .limit(daily_limit)
        )
        .scalars()
        .all()
    )
    if not rows:
        return TrackerUsage(tracker=None, totals=UsageTotals())
    return TrackerUsage(
        tracker=TrackerSnapshot(**snapshot_columns(rows[0])),
        totals=_totals(session, *where),
        daily=tuple(
            DailyUsagePoint(
                usage_date=r.usage_date,
                message_count=int(r.total_messages),
                token_count=int(r.total_tokens),
            )
            for r in rows
        ),
    )


__all__ = [
    "PurgeCounts",
    "estimate_tokens",
    "list_tracker_logs",
    "log_chat_usage",
    "log_parse_usage",
    "mark_tracker_deleted",
    "overall_usage",
    "prune_usage_logs",
    "purge_tracker_usage",
    "purge_user_usage",
    "recent_chat_history",
    "record_exchange",
    "rename_tracker",
    "summarize_transactions",
    "tracker_usage",
]
