"""Public entry points of the intake pipeline.

Both functions always return a value: expected failures come back as
:class:`~expense_parser.models.Failure` rather than being raised. Only
unexpected errors (for example the category store being unreachable)
propagate.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime

from pydantic import ValidationError

from .defaults import DEFAULT_TAXONOMY, DefaultTaxonomy
from .errors import DraftValidationError, ParserError
from .gateway import ExtractionGateway, default_gateway
from .logging_setup import get_logger
from .models import ChatReply, ChatTurn, Failure, ParseSuccess
from .prompting import build_system_prompt
from .reconcile import reconcile
from .taxonomy import CategoryStore, SqlCategoryStore, load_pools

_logger = get_logger("expense_parser.api")

_CHAT_FALLBACK = "I'm here to help track your expenses!"


def parse_message(
    text: str,
    tracker_id: str | None = None,
    tracker_currency: str | None = None,
    *,
    gateway: ExtractionGateway | None = None,
    store: CategoryStore | None = None,
    defaults: DefaultTaxonomy = DEFAULT_TAXONOMY,
    occurred_at: datetime | None = None,
    timeout: float | None = None,
) -> ParseSuccess | Failure:
    """Turn a free-text message into validated transactions.

    Flow: load taxonomy pools for ``tracker_id`` (legacy static pools when
    omitted), render the system prompt, make one gateway call, reconcile the
    answer. The gateway's credential is checked before any taxonomy read.

    ``tracker_currency`` is both the currency the prompt tells the model to
    assume and the fallback for drafts without ``currencyCode``; when omitted
    the configured default (``"INR"``) applies. Failures that happen after the
    gateway answered carry its ``usage``.
    """

    gw = gateway if gateway is not None else default_gateway()
    t0 = time.perf_counter()
    try:
        gw.ensure_configured()
        if not text or not text.strip():
            raise DraftValidationError("Message is empty. Describe the transaction to record.")
        currency = (tracker_currency or gw.settings.default_currency).strip().upper()
        if store is None and tracker_id:
            store = SqlCategoryStore(database_url=gw.settings.database_url)
        pools = load_pools(tracker_id, store=store, defaults=defaults)
        extraction = gw.extract(build_system_prompt(pools, currency), text, timeout=timeout)
    except ParserError as e:
        return _failed(tracker_id, e.to_failure(), t0)

    outcome = reconcile(
        extraction.raw_text,
        pools,
        default_currency=currency,
        occurred_at=occurred_at or datetime.now(UTC),
    )
    if isinstance(outcome, Failure):
        return _failed(tracker_id, replace(outcome, usage=extraction.usage), t0)

    _logger.info(
        "parse_message:done tracker_id=%s count=%d latency_ms=%.2f",
        tracker_id,
        len(outcome.transactions),
        (time.perf_counter() - t0) * 1000.0,
    )
    return ParseSuccess(transactions=outcome.transactions, usage=extraction.usage)


def _failed(tracker_id: str | None, failure: Failure, t0: float) -> Failure:
    _logger.info(
        "parse_message:failed tracker_id=%s error=%s latency_ms=%.2f",
        tracker_id,
        failure.error,
        (time.perf_counter() - t0) * 1000.0,
    )
    return failure


def _coerce_history(history: Iterable[ChatTurn | Mapping[str, str]]) -> list[ChatTurn]:
    turns: list[ChatTurn] = []
    for i, item in enumerate(history):
        if isinstance(item, ChatTurn):
            turns.append(item)
            continue
        try:
            turns.append(ChatTurn.model_validate(dict(item)))
        except ValidationError as e:
            raise ValueError(
                f"history[{i}] must have role 'user' or 'assistant' and content"
            ) from e
    return turns


def chat_reply(
    message: str,
    history: Iterable[ChatTurn | Mapping[str, str]] = (),
    *,
    gateway: ExtractionGateway | None = None,
    timeout: float | None = None,
) -> ChatReply | Failure:
    """Answer ``message`` with the fixed assistant persona; no reconciliation.

    ``history`` items are ``{"role": "user"|"assistant", "content": str}``
    mappings or :class:`ChatTurn` values, oldest first. A malformed history is
    a programming error and raises ``ValueError``.
    """

    turns = _coerce_history(history)
    gw = gateway if gateway is not None else default_gateway()
    messages = [{"role": t.role, "content": t.content} for t in turns]
    messages.append({"role": "user", "content": message})
    try:
        extraction = gw.converse(messages, timeout=timeout)
    except ParserError as e:
        _logger.info("chat_reply:failed error=%s", e.kind)
        return e.to_failure()

    response = extraction.raw_text.strip() or _CHAT_FALLBACK
    _logger.info("chat_reply:done history=%d", len(turns))
    return ChatReply(response=response, usage=extraction.usage)


__all__ = ["chat_reply", "parse_message"]
