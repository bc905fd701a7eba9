"""Data models and result types for ``expense_parser``.

Taxonomy values are plain frozen dataclasses (read-only inputs). Anything that
crosses the LLM boundary is a pydantic model: drafts are validated from
untrusted JSON, and validated transactions form a closed union discriminated
on ``kind`` so kind-specific fields (``payment_method`` for expenses,
``credit_from`` for income) only exist on the variant that carries them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import ErrorKind

# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


class TaxonomyKind(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"
    DEBIT_MODE = "debit_mode"
    CREDIT_MODE = "credit_mode"


@dataclass(frozen=True, slots=True)
class CategoryEntry:
    """One tenant taxonomy entry; ``name`` is unique within its pool."""

    id: str
    name: str
    kind: TaxonomyKind
    subcategory_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TaxonomyPools:
    """The four kind-partitioned pools offered to the model for one request.

    Debit and credit pools are flattened to names: payment methods and credit
    sources are taken from subcategory names, not entry names.
    """

    expense: tuple[CategoryEntry, ...] = ()
    income: tuple[CategoryEntry, ...] = ()
    debit_mode_names: tuple[str, ...] = ()
    credit_mode_names: tuple[str, ...] = ()

    def pool_for(self, kind: str | None) -> tuple[CategoryEntry, ...]:
        if kind == TransactionKind.INCOME:
            return self.income
        return self.expense


# ---------------------------------------------------------------------------
# LLM drafts and validated transactions
# ---------------------------------------------------------------------------


class TransactionKind(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class TransactionDraft(BaseModel):
    """One untrusted transaction object as emitted by the model.

    Only shape is checked here; presence of required values and taxonomy
    resolution happen in :mod:`expense_parser.reconcile`. Older prompt
    versions used ``type``/``category``/``subcategory``/``currency`` and those
    spellings are still accepted.
    """

    model_config = ConfigDict(extra="ignore")

    kind: str | None = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    amount: Decimal | None = None
    category_name: str | None = Field(
        default=None, validation_alias=AliasChoices("categoryName", "category")
    )
    subcategory_name: str | None = Field(
        default=None, validation_alias=AliasChoices("subcategoryName", "subcategory")
    )
    payment_method: str | None = Field(default=None, validation_alias="paymentMethod")
    credit_from: str | None = Field(default=None, validation_alias="creditFrom")
    currency_code: str | None = Field(
        default=None, validation_alias=AliasChoices("currencyCode", "currency")
    )
    description: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_bool_amount(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("amount must be a number")
        return v


class _TransactionBase(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    amount: Decimal
    category_name: str
    subcategory_name: str
    category_id: str
    currency_code: str
    description: str | None = None
    occurred_at: datetime

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("amount must be greater than zero")
        return v

    def to_record(self) -> dict[str, Any]:
        """Return the camelCase mapping handed to the bulk-persistence sink."""

        return self.model_dump(by_alias=True, exclude_none=True)


class ExpenseTransaction(_TransactionBase):
    kind: Literal["expense"] = "expense"
    payment_method: str


class IncomeTransaction(_TransactionBase):
    kind: Literal["income"] = "income"
    credit_from: str


class TransferTransaction(_TransactionBase):
    kind: Literal["transfer"] = "transfer"


type ValidatedTransaction = Annotated[
    ExpenseTransaction | IncomeTransaction | TransferTransaction,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Usage and tracker snapshot
# ---------------------------------------------------------------------------


class UsageExchangeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TrackerSnapshot(BaseModel):
    """Tracker attributes copied onto every usage row at write time."""

    model_config = ConfigDict(frozen=True)

    tracker_id: str
    tracker_name: str
    tracker_type: Literal["business", "personal"] = "personal"
    is_deleted: bool = False
    deleted_at: datetime | None = None
    modified_at: datetime | None = None


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Extraction:
    """Raw model text plus the token usage of the call that produced it."""

    raw_text: str
    usage: UsageExchangeRecord


@dataclass(frozen=True, slots=True)
class ReconciledBatch:
    transactions: tuple[ExpenseTransaction | IncomeTransaction | TransferTransaction, ...]


@dataclass(frozen=True, slots=True)
class ParseSuccess:
    transactions: tuple[ExpenseTransaction | IncomeTransaction | TransferTransaction, ...]
    usage: UsageExchangeRecord


@dataclass(frozen=True, slots=True)
class Failure:
    """Discriminated failure returned by the public entry points.

    ``usage`` is set when the upstream call completed before the failure so
    callers can still account for the tokens spent.
    """

    error: ErrorKind
    message: str
    missing_categories: tuple[str, ...] = ()
    usage: UsageExchangeRecord | None = None


@dataclass(frozen=True, slots=True)
class ChatReply:
    response: str
    usage: UsageExchangeRecord


@dataclass(frozen=True, slots=True)
class ExchangeRecorded:
    """Outcome of one ledger write.

    ``corrected`` is True when an existing row for the same exchange and role
    was updated instead of a new message being counted.
    """

    log_id: int
    token_delta: int
    corrected: bool = False


@dataclass(frozen=True, slots=True)
class TrackerLogPage:
    items: Sequence[dict[str, Any]] = field(default_factory=tuple)
    total_count: int = 0
    limit: int = 50
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total_count


@dataclass(frozen=True, slots=True)
class UsageTotals:
    total_messages: int = 0
    user_messages: int = 0
    ai_messages: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class DailyUsagePoint:
    usage_date: date
    message_count: int
    token_count: int


@dataclass(frozen=True, slots=True)
class TrackerUsageSummary:
    """One tracker's share of a user's usage, with its latest snapshot.

    Deleted trackers keep appearing here with ``is_deleted`` set.
    """

    tracker: TrackerSnapshot
    message_count: int
    token_count: int


@dataclass(frozen=True, slots=True)
class OverallUsage:
    totals: UsageTotals
    by_tracker: Sequence[TrackerUsageSummary] = field(default_factory=tuple)
    recent_activity: Sequence[DailyUsagePoint] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class TrackerUsage:
    """Usage of one tracker; ``tracker`` is ``None`` when nothing was recorded."""

    tracker: TrackerSnapshot | None
    totals: UsageTotals
    daily: Sequence[DailyUsagePoint] = field(default_factory=tuple)


__all__ = [
    "CategoryEntry",
    "ChatReply",
    "ChatTurn",
    "DailyUsagePoint",
    "ExchangeRecorded",
    "ExpenseTransaction",
    "Extraction",
    "Failure",
    "IncomeTransaction",
    "OverallUsage",
    "ParseSuccess",
    "ReconciledBatch",
    "TaxonomyKind",
    "TaxonomyPools",
    "TrackerLogPage",
    "TrackerSnapshot",
    "TrackerUsage",
    "TrackerUsageSummary",
    "TransactionDraft",
    "TransactionKind",
    "TransferTransaction",
    "UsageExchangeRecord",
    "UsageTotals",
    "ValidatedTransaction",
]
