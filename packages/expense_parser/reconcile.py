"""Validate raw model output and resolve categories against the taxonomy.

:func:`reconcile` is pure: for a fixed taxonomy, raw string and timestamp it
always returns the same value. Batches are all-or-nothing: one draft with a
missing field or an unknown category fails the whole call and no transaction
from that batch is returned.
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from .defaults import (
    CREDIT_SOURCE_NOT_PROVIDED,
    DEFAULT_CURRENCY,
    PAYMENT_METHOD_NOT_PROVIDED,
    TRANSFER_CATEGORY_ID,
)
from .errors import CategoryNotFound, DraftValidationError, ParserError, ParsingFailure
from .models import (
    ExpenseTransaction,
    Failure,
    IncomeTransaction,
    ReconciledBatch,
    TaxonomyPools,
    TransactionDraft,
    TransactionKind,
    TransferTransaction,
)

_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*\s*\n(?P<body>.*?)\n?```$", re.DOTALL)

_PARSE_FALLBACK_MSG = "Could not understand the transaction. Please try rephrasing it."

type _Validated = ExpenseTransaction | IncomeTransaction | TransferTransaction


def _strip_code_fence(raw_text: str) -> str:
    text = raw_text.strip()
    m = _FENCE_RE.match(text)
    return m.group("body").strip() if m else text


def _decode(raw_text: str) -> Any:
    """Decode model JSON, keeping amounts exact (floats become ``Decimal``)."""

    try:
        return json.loads(_strip_code_fence(raw_text), parse_float=Decimal)
    except (json.JSONDecodeError, ValueError) as e:
        raise ParsingFailure(_PARSE_FALLBACK_MSG) from e


def _error_message(obj: dict[str, Any]) -> str:
    msg = obj.get("message")
    if isinstance(msg, str) and msg.strip():
        return msg
    err = obj.get("error")
    if isinstance(err, str) and err.strip():
        return err
    return _PARSE_FALLBACK_MSG


def _missing_fields_error(index: int) -> DraftValidationError:
    return DraftValidationError(
        f"Transaction at index {index}: Missing required fields "
        "(amount, categoryName, subcategoryName)"
    )


def _to_draft(index: int, item: Any) -> TransactionDraft:
    if not isinstance(item, dict):
        raise _missing_fields_error(index)
    try:
        draft = TransactionDraft.model_validate(item)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise DraftValidationError(
            f"Transaction at index {index}: Invalid fields ({', '.join(fields)})"
        ) from e
    if not draft.amount or not draft.category_name or not draft.subcategory_name:
        raise _missing_fields_error(index)
    if draft.amount < 0:
        raise DraftValidationError(
            f"Transaction at index {index}: amount must be greater than zero"
        )
    return draft


def _currency(draft: TransactionDraft, default_currency: str) -> str:
    code = (draft.currency_code or "").strip()
    return (code or default_currency).upper()


def _build(
    draft: TransactionDraft,
    *,
    category_id: str,
    currency_code: str,
    occurred_at: datetime,
) -> _Validated:
    common: dict[str, Any] = {
        "amount": draft.amount,
        "category_name": draft.category_name,
        "subcategory_name": draft.subcategory_name,
        "category_id": category_id,
        "currency_code": currency_code,
        "description": draft.description or None,
        "occurred_at": occurred_at,
    }
    if draft.kind == TransactionKind.TRANSFER:
        return TransferTransaction(**common)
    if draft.kind == TransactionKind.INCOME:
        return IncomeTransaction(
            **common, credit_from=draft.credit_from or CREDIT_SOURCE_NOT_PROVIDED
        )
    return ExpenseTransaction(
        **common, payment_method=draft.payment_method or PAYMENT_METHOD_NOT_PROVIDED
    )


def _reconcile(
    raw_text: str,
    pools: TaxonomyPools,
    *,
    default_currency: str,
    occurred_at: datetime,
) -> ReconciledBatch:
    decoded = _decode(raw_text)

    if isinstance(decoded, dict) and decoded.get("error"):
        raise ParsingFailure(_error_message(decoded))

    items = decoded if isinstance(decoded, list) else [decoded]
    if not items:
        raise ParsingFailure(_PARSE_FALLBACK_MSG)

    validated: list[_Validated] = []
    missing: set[str] = set()
    for index, item in enumerate(items):
        draft = _to_draft(index, item)

        if draft.kind == TransactionKind.TRANSFER:
            validated.append(
                _build(
                    draft,
                    category_id=TRANSFER_CATEGORY_ID,
                    currency_code=_currency(draft, default_currency),
                    occurred_at=occurred_at,
                )
            )
            continue

        entry = next((e for e in pools.pool_for(draft.kind) if e.name == draft.category_name), None)
        if entry is None:
            missing.add(draft.category_name or "")
            continue
        validated.append(
            _build(
                draft,
                category_id=entry.id,
                currency_code=_currency(draft, default_currency),
                occurred_at=occurred_at,
            )
        )

    if missing:
        names = sorted(missing)
        raise CategoryNotFound(
            f"Please add these categories first: {', '.join(names)}",
            missing_categories=names,
        )
    return ReconciledBatch(transactions=tuple(validated))


def reconcile(
    raw_text: str,
    pools: TaxonomyPools,
    *,
    default_currency: str | None = None,
    occurred_at: datetime | None = None,
) -> ReconciledBatch | Failure:
    """Parse ``raw_text`` and resolve every draft against ``pools``.

    Steps, in order:

    1. Decode JSON (one enclosing Markdown code fence is tolerated). Invalid
       JSON, or an object carrying ``error``, is a ``ParsingFailure`` with the
       model's ``message`` passed through.
    2. Treat a single object as a one-element batch.
    3. Per draft: ``amount``/``categoryName``/``subcategoryName`` must be
       present (``ValidationError`` naming the zero-based index). Transfers
       resolve to category id ``"transfer"`` without a lookup. Others are
       looked up by exact, case-sensitive name in the income pool
       (``kind == "income"``) or the expense pool (anything else).
    4. Any unresolved names fail the batch with ``CategoryNotFound`` carrying
       the sorted unique names.

    ``default_currency`` is the tracker currency; ``"INR"`` when omitted.
    ``occurred_at`` stamps every transaction; callers pass the request time
    (defaults to now, UTC).
    """

    currency = (default_currency or "").strip().upper() or DEFAULT_CURRENCY
    try:
        return _reconcile(
            raw_text,
            pools,
            default_currency=currency,
            occurred_at=occurred_at or datetime.now(UTC),
        )
    except ParserError as e:
        return e.to_failure()


__all__ = ["reconcile"]
