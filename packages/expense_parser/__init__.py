"""Public interface for the ``expense_parser`` package.

Natural-language transaction intake: turn a free-text message into validated,
taxonomy-resolved transactions, and keep a ledger of the tokens each model
call cost. This module only re-exports the stable import surface.
"""

from .api import chat_reply, parse_message
from .defaults import DEFAULT_TAXONOMY, DefaultTaxonomy
from .errors import ErrorKind, ParserError
from .gateway import ExtractionGateway
from .models import (
    CategoryEntry,
    ChatReply,
    ChatTurn,
    ExpenseTransaction,
    Failure,
    IncomeTransaction,
    ParseSuccess,
    TaxonomyKind,
    TaxonomyPools,
    TrackerSnapshot,
    TransactionKind,
    TransferTransaction,
    UsageExchangeRecord,
    ValidatedTransaction,
)
from .reconcile import reconcile
from .taxonomy import CategoryStore, InMemoryCategoryStore, SqlCategoryStore, load_pools

__all__ = [
    # API
    "chat_reply",
    "parse_message",
    "reconcile",
    "load_pools",
    # Collaborators
    "CategoryStore",
    "ExtractionGateway",
    "InMemoryCategoryStore",
    "SqlCategoryStore",
    # Types
    "CategoryEntry",
    "ChatReply",
    "ChatTurn",
    "DEFAULT_TAXONOMY",
    "DefaultTaxonomy",
    "ErrorKind",
    "ExpenseTransaction",
    "Failure",
    "IncomeTransaction",
    "ParseSuccess",
    "ParserError",
    "TaxonomyKind",
    "TaxonomyPools",
    "TrackerSnapshot",
    "TransactionKind",
    "TransferTransaction",
    "UsageExchangeRecord",
    "ValidatedTransaction",
]
