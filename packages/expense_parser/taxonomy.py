"""Tenant taxonomy lookup.

``load_pools`` is the only entry point the pipeline uses. It reads the four
kind-partitioned category sets for a tracker through a :class:`CategoryStore`
and falls back to an injected :class:`~expense_parser.defaults.DefaultTaxonomy`
for legacy (no tracker) requests and for empty payment/credit pools.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from db.client import session_scope
from db.models.intake import NlCategory
from sqlalchemy import select

from .defaults import DEFAULT_TAXONOMY, DefaultTaxonomy
from .errors import NoCategoriesConfigured
from .logging_setup import get_logger
from .models import CategoryEntry, TaxonomyKind, TaxonomyPools

_logger = get_logger("expense_parser.taxonomy")


class CategoryStore(Protocol):
    def list_categories(self, tracker_id: str, kind: TaxonomyKind) -> Sequence[CategoryEntry]: ...


class SqlCategoryStore:
    """Read ``nl_categories`` rows for a tracker, ordered by ``sort_order`` then name."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def list_categories(self, tracker_id: str, kind: TaxonomyKind) -> list[CategoryEntry]:
        stmt = (
            select(NlCategory)
            .where(NlCategory.tracker_id == tracker_id, NlCategory.kind == str(kind))
            .order_by(NlCategory.sort_order.is_(None), NlCategory.sort_order, NlCategory.name)
        )
        with session_scope(database_url=self._database_url) as session:
            rows = session.execute(stmt).scalars().all()
            return [
                CategoryEntry(
                    id=row.id,
                    name=row.name,
                    kind=TaxonomyKind(row.kind),
                    subcategory_names=tuple(str(s) for s in (row.subcategories or ())),
                )
                for row in rows
            ]


class InMemoryCategoryStore:
    """Dict-backed store keyed by tracker id; used by tests and embedded hosts."""

    def __init__(self, entries: Mapping[str, Iterable[CategoryEntry]] | None = None) -> None:
        self._entries: dict[str, tuple[CategoryEntry, ...]] = {
            tracker_id: tuple(items) for tracker_id, items in (entries or {}).items()
        }

    def list_categories(self, tracker_id: str, kind: TaxonomyKind) -> list[CategoryEntry]:
        return [e for e in self._entries.get(tracker_id, ()) if e.kind == kind]


def _flatten_names(entries: Iterable[CategoryEntry]) -> tuple[str, ...]:
    # Preserve first-seen order; the same method may appear under two entries.
    return tuple(dict.fromkeys(name for e in entries for name in e.subcategory_names if name))


def load_pools(
    tracker_id: str | None = None,
    *,
    store: CategoryStore | None = None,
    defaults: DefaultTaxonomy = DEFAULT_TAXONOMY,
) -> TaxonomyPools:
    """Return the taxonomy pools for ``tracker_id``.

    Without a tracker, returns the legacy pools: the default expense
    categories and payment methods, with empty income and credit pools.

    With a tracker, reads all four kinds from ``store`` (a
    :class:`SqlCategoryStore` on ``$DATABASE_URL`` when omitted). Raises
    :class:`NoCategoriesConfigured` when the tracker has neither expense nor
    income categories. Empty debit/credit name lists are replaced by the
    defaults so the prompt never offers an empty option set.
    """

    if not tracker_id:
        return TaxonomyPools(
            expense=tuple(defaults.expense),
            income=(),
            debit_mode_names=tuple(defaults.payment_methods),
            credit_mode_names=(),
        )

    src = store if store is not None else SqlCategoryStore()
    expense = tuple(src.list_categories(tracker_id, TaxonomyKind.EXPENSE))
    income = tuple(src.list_categories(tracker_id, TaxonomyKind.INCOME))
    if not expense and not income:
        raise NoCategoriesConfigured(
            "No categories found for this tracker. Please add categories first."
        )

    debit_names = _flatten_names(src.list_categories(tracker_id, TaxonomyKind.DEBIT_MODE))
    credit_names = _flatten_names(src.list_categories(tracker_id, TaxonomyKind.CREDIT_MODE))
    if not debit_names:
        debit_names = tuple(defaults.payment_methods)
    if not credit_names:
        credit_names = tuple(defaults.credit_sources)

    _logger.debug(
        "load_pools:done tracker_id=%s expense=%d income=%d debit=%d credit=%d",
        tracker_id,
        len(expense),
        len(income),
        len(debit_names),
        len(credit_names),
    )
    return TaxonomyPools(
        expense=expense,
        income=income,
        debit_mode_names=debit_names,
        credit_mode_names=credit_names,
    )


__all__ = [
    "CategoryStore",
    "InMemoryCategoryStore",
    "SqlCategoryStore",
    "load_pools",
]
