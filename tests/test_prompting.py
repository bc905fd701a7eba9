# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(ROOT / "packages"), str(ROOT)] if p not in sys.path]

from expense_parser.defaults import (
    CREDIT_SOURCE_NOT_PROVIDED,
    DEFAULT_TAXONOMY,
    PAYMENT_METHOD_NOT_PROVIDED,
)
from expense_parser.models import CategoryEntry, TaxonomyKind, TaxonomyPools
from expense_parser.prompting import build_system_prompt
from expense_parser.taxonomy import load_pools


def _section(prompt: str, header: str) -> str:
    start = prompt.index(header) + len(header)
    end = prompt.index("\n\n", start + 1)
    return prompt[start:end].strip()


def test_prompt_is_deterministic() -> None:
    pools = load_pools()

    assert build_system_prompt(pools) == build_system_prompt(pools)


def test_prompt_lists_categories_with_subcategories() -> None:
    pools = TaxonomyPools(
        expense=(
            CategoryEntry(
                id="1",
                name="Food & Dining",
                kind=TaxonomyKind.EXPENSE,
                subcategory_names=("Foods", "Grocery & Vegetables"),
            ),
        ),
        income=(
            CategoryEntry(
                id="2", name="Income", kind=TaxonomyKind.INCOME, subcategory_names=("Salary",)
            ),
        ),
        debit_mode_names=("Cash", "UPI"),
        credit_mode_names=("Salary", "Gift"),
    )
    prompt = build_system_prompt(pools, "INR")

    assert _section(prompt, "EXPENSE CATEGORIES AND SUBCATEGORIES:") == (
        "Food & Dining: Foods, Grocery & Vegetables"
    )
    assert _section(prompt, "INCOME CATEGORIES AND SUBCATEGORIES:") == "Income: Salary"
    assert _section(prompt, "PAYMENT METHODS (expenses):") == "Cash, UPI"
    assert _section(prompt, "CREDIT SOURCES (income):") == "Salary, Gift"


def test_legacy_prompt_has_empty_income_sections() -> None:
    prompt = build_system_prompt(load_pools())

    assert _section(prompt, "INCOME CATEGORIES AND SUBCATEGORIES:") == "(none)"
    assert _section(prompt, "CREDIT SOURCES (income):") == "(none)"
    for entry in DEFAULT_TAXONOMY.expense:
        assert f"{entry.name}: " in prompt


def test_prompt_advertises_sentinels_and_default_currency() -> None:
    prompt = build_system_prompt(load_pools(), "usd")

    assert PAYMENT_METHOD_NOT_PROVIDED in prompt
    assert CREDIT_SOURCE_NOT_PROVIDED in prompt
    assert 'If the user does not state a currency, use "USD".' in prompt
    assert "default: 'USD'" in prompt


def test_prompt_lists_currency_triggers_and_response_keys() -> None:
    prompt = build_system_prompt(load_pools())

    assert '"$", "USD", "dollar", "dollars" -> "USD"' in prompt
    assert '"₹", "INR", "rupee", "rupees", "rs" -> "INR"' in prompt
    for key in ("kind", "amount", "categoryName", "subcategoryName", "paymentMethod", "creditFrom"):
        assert f'"{key}"' in prompt
    assert '"error": "Parsing failed"' in prompt
    assert '"kind": "transfer"' in prompt


def test_prompt_changes_when_taxonomy_changes() -> None:
    base = load_pools()
    pets = CategoryEntry(
        id="x", name="Pets", kind=TaxonomyKind.EXPENSE, subcategory_names=("Vet",)
    )
    extra = TaxonomyPools(
        expense=base.expense + (pets,), debit_mode_names=base.debit_mode_names
    )

    assert build_system_prompt(base) != build_system_prompt(extra)
    assert "Pets: Vet" in build_system_prompt(extra)
