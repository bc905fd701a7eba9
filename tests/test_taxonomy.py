# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(ROOT / "packages"), str(ROOT / "libs" / "db" / "src"), str(ROOT)]
    if p not in sys.path
]

from expense_parser.defaults import (
    DEFAULT_CREDIT_SOURCES,
    DEFAULT_PAYMENT_METHODS,
    DEFAULT_TAXONOMY,
    DefaultTaxonomy,
)
from expense_parser.errors import NoCategoriesConfigured
from expense_parser.ingest.seed_taxonomy import seed_tracker_taxonomy
from expense_parser.models import CategoryEntry, TaxonomyKind
from expense_parser.taxonomy import InMemoryCategoryStore, SqlCategoryStore, load_pools
from tests.helpers.db import bootstrap_sqlite_db, seed_categories


def _entry(entry_id: str, name: str, kind: TaxonomyKind, *subs: str) -> CategoryEntry:
    return CategoryEntry(id=entry_id, name=name, kind=kind, subcategory_names=subs)


class _ExplodingStore:
    def list_categories(self, tracker_id, kind):  # pragma: no cover - must not be called
        raise AssertionError("store must not be read for legacy requests")


def test_legacy_pools_use_defaults_without_touching_store() -> None:
    pools = load_pools(None, store=_ExplodingStore())

    assert pools.expense == DEFAULT_TAXONOMY.expense
    assert pools.income == ()
    assert pools.debit_mode_names == DEFAULT_PAYMENT_METHODS
    assert pools.credit_mode_names == ()


def test_tracker_pools_come_from_store_by_kind() -> None:
    store = InMemoryCategoryStore(
        {
            "t1": [
                _entry("e1", "Groceries", TaxonomyKind.EXPENSE, "Veg"),
                _entry("i1", "Salary", TaxonomyKind.INCOME, "Monthly"),
                _entry("d1", "Cards", TaxonomyKind.DEBIT_MODE, "Amex", "Visa"),
                _entry("d2", "Other", TaxonomyKind.DEBIT_MODE, "Visa", "Cash"),
                _entry("c1", "Sources", TaxonomyKind.CREDIT_MODE, "Employer"),
            ],
            "t2": [_entry("e2", "Rent", TaxonomyKind.EXPENSE, "Flat")],
        }
    )
    pools = load_pools("t1", store=store)

    assert [e.id for e in pools.expense] == ["e1"]
    assert [e.id for e in pools.income] == ["i1"]
    assert pools.debit_mode_names == ("Amex", "Visa", "Cash")
    assert pools.credit_mode_names == ("Employer",)


def test_empty_payment_and_credit_pools_fall_back_to_defaults() -> None:
    store = InMemoryCategoryStore({"t1": [_entry("e1", "Groceries", TaxonomyKind.EXPENSE, "Veg")]})
    pools = load_pools("t1", store=store)

    assert pools.income == ()
    assert pools.debit_mode_names == DEFAULT_PAYMENT_METHODS
    assert pools.credit_mode_names == DEFAULT_CREDIT_SOURCES


def test_injected_defaults_are_used_for_fallbacks() -> None:
    custom = DefaultTaxonomy(payment_methods=("Cheque",), credit_sources=("Pension",))
    store = InMemoryCategoryStore({"t1": [_entry("i1", "Salary", TaxonomyKind.INCOME, "Monthly")]})
    pools = load_pools("t1", store=store, defaults=custom)

    assert pools.debit_mode_names == ("Cheque",)
    assert pools.credit_mode_names == ("Pension",)


def test_tracker_without_expense_or_income_raises() -> None:
    store = InMemoryCategoryStore({"t1": [_entry("d1", "Cards", TaxonomyKind.DEBIT_MODE, "Amex")]})

    with pytest.raises(NoCategoriesConfigured) as ei:
        load_pools("t1", store=store)

    assert ei.value.message == "No categories found for this tracker. Please add categories first."


def test_sql_store_orders_by_sort_order_then_name(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "tax.sqlite3")
    seed_categories(
        database_url=url,
        tracker_id="t1",
        entries=[
            _entry("b", "Bravo", TaxonomyKind.EXPENSE, "One"),
            _entry("a", "Alpha", TaxonomyKind.EXPENSE, "Two", "Three"),
            _entry("i", "Income", TaxonomyKind.INCOME, "Salary"),
        ],
    )
    seed_categories(
        database_url=url,
        tracker_id="other",
        entries=[_entry("z", "Zulu", TaxonomyKind.EXPENSE, "X")],
    )

    store = SqlCategoryStore(database_url=url)
    expense = store.list_categories("t1", TaxonomyKind.EXPENSE)

    assert [e.name for e in expense] == ["Bravo", "Alpha"]
    assert expense[1].subcategory_names == ("Two", "Three")
    assert expense[1].kind is TaxonomyKind.EXPENSE
    assert [e.id for e in store.list_categories("t1", TaxonomyKind.INCOME)] == ["i"]
    assert store.list_categories("t1", TaxonomyKind.DEBIT_MODE) == []


def test_seeded_tracker_yields_full_pools(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "seed.sqlite3")

    created = seed_tracker_taxonomy(tracker_id="t9", database_url=url)
    again = seed_tracker_taxonomy(tracker_id="t9", database_url=url)
    pools = load_pools("t9", store=SqlCategoryStore(database_url=url))

    assert created == len(DEFAULT_TAXONOMY.expense) + len(DEFAULT_TAXONOMY.income) + 2
    assert again == 0
    assert [e.name for e in pools.expense] == [e.name for e in DEFAULT_TAXONOMY.expense]
    assert [e.name for e in pools.income] == ["Income"]
    assert pools.debit_mode_names == DEFAULT_PAYMENT_METHODS
    assert pools.credit_mode_names == DEFAULT_CREDIT_SOURCES


def test_seed_replace_recreates_rows(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "replace.sqlite3")
    seed_categories(
        database_url=url,
        tracker_id="t1",
        entries=[_entry("old", "Legacy", TaxonomyKind.EXPENSE, "Stuff")],
    )

    created = seed_tracker_taxonomy(tracker_id="t1", database_url=url, replace=True)
    names = [
        e.name for e in SqlCategoryStore(database_url=url).list_categories("t1", TaxonomyKind.EXPENSE)
    ]

    assert created == len(DEFAULT_TAXONOMY.expense) + len(DEFAULT_TAXONOMY.income) + 2
    assert "Legacy" not in names


def test_default_store_reads_database_url_from_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    url = bootstrap_sqlite_db(tmp_path / "env.sqlite3")
    seed_categories(
        database_url=url,
        tracker_id="t1",
        entries=[_entry("e1", "Groceries", TaxonomyKind.EXPENSE, "Veg")],
    )
    monkeypatch.setenv("DATABASE_URL", url)

    pools = load_pools("t1")

    assert [e.id for e in pools.expense] == ["e1"]
