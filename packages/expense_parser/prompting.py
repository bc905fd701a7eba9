# ruff: noqa: E501
"""System prompt construction for transaction extraction.

``build_system_prompt`` is a pure function of the taxonomy pools and the
default currency: same inputs, byte-identical output. The response keys,
the error object and the sentinel strings it advertises are the ones
:mod:`expense_parser.reconcile` reads back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .defaults import (
    CREDIT_SOURCE_NOT_PROVIDED,
    DEFAULT_CURRENCY,
    PAYMENT_METHOD_NOT_PROVIDED,
    TRANSFER_CATEGORY,
)
from .models import CategoryEntry, TaxonomyPools

CHAT_PERSONA = (
    "You are a helpful expense tracking assistant. Help users log their expenses "
    "naturally. Be concise and friendly."
)

PARSE_ERROR_LABEL = "Parsing failed"

# Currency code -> trigger symbols/keywords, in the order they are listed.
CURRENCY_TRIGGERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("USD", ("$", "USD", "dollar", "dollars")),
    ("EUR", ("€", "EUR", "euro", "euros")),
    ("GBP", ("£", "GBP", "pound", "pounds")),
    ("INR", ("₹", "INR", "rupee", "rupees", "rs")),
)


def _render_pool(entries: Sequence[CategoryEntry]) -> str:
    if not entries:
        return "(none)"
    return "\n".join(f"{e.name}: {', '.join(e.subcategory_names)}" for e in entries)


def _render_names(names: Iterable[str]) -> str:
    joined = ", ".join(names)
    return joined or "(none)"


def _render_currency_rules(default_currency: str) -> str:
    lines = [
        f"- If the user does not state a currency, use \"{default_currency}\".",
    ]
    for code, triggers in CURRENCY_TRIGGERS:
        quoted = ", ".join(f'"{t}"' for t in triggers)
        lines.append(f"- {quoted} -> \"{code}\"")
    lines.append("- Each transaction carries its own currencyCode; one message may mix currencies.")
    return "\n".join(lines)


def _examples(default_currency: str) -> str:
    # Worked examples; their shapes are what the reconciler parses.
    pm = PAYMENT_METHOD_NOT_PROVIDED
    cs = CREDIT_SOURCE_NOT_PROVIDED
    return f"""Input: "spent 250 on lunch"
Output: [{{"kind": "expense", "amount": 250, "categoryName": "Food & Dining", "subcategoryName": "Foods", "paymentMethod": "{pm}", "currencyCode": "{default_currency}"}}]

Input: "got my salary 50000"
Output: [{{"kind": "income", "amount": 50000, "categoryName": "Income", "subcategoryName": "Salary", "creditFrom": "Salary", "currencyCode": "{default_currency}"}}]

Input: "received 300 from a friend"
Output: [{{"kind": "income", "amount": 300, "categoryName": "Income", "subcategoryName": "Gift", "creditFrom": "{cs}", "currencyCode": "{default_currency}"}}]

Input: "paid $20 for netflix with credit card and 1500 rs electricity bill via UPI"
Output: [
  {{"kind": "expense", "amount": 20, "categoryName": "Lifestyle", "subcategoryName": "Entertainment", "paymentMethod": "Credit Card", "currencyCode": "USD", "description": "netflix"}},
  {{"kind": "expense", "amount": 1500, "categoryName": "Home & Living", "subcategoryName": "Bills", "paymentMethod": "UPI", "currencyCode": "INR", "description": "electricity bill"}}
]

Input: "spent 50 on xyz"
Output: [{{"kind": "expense", "amount": 50, "categoryName": "xyz", "subcategoryName": "xyz", "paymentMethod": "{pm}", "currencyCode": "{default_currency}"}}]

Input: "moved 10000 from savings to my credit card account"
Output: [{{"kind": "transfer", "amount": 10000, "categoryName": "{TRANSFER_CATEGORY}", "subcategoryName": "{TRANSFER_CATEGORY}", "currencyCode": "{default_currency}", "description": "savings to credit card account"}}]

Input: "hello, what about yesterday?"
Output: {{"error": "{PARSE_ERROR_LABEL}", "message": "Could not understand the transaction. Please provide at least an amount and a category."}}"""


def build_system_prompt(pools: TaxonomyPools, default_currency: str = DEFAULT_CURRENCY) -> str:
    """Return the extraction system prompt for ``pools``.

    Sections: category listings (``Name: sub, sub``) for expense and income
    pools, payment methods and credit sources, kind/currency/category/default
    rules, worked examples, the JSON response format and the error format.
    """

    currency = (default_currency or DEFAULT_CURRENCY).strip().upper()
    return f"""You are a transaction tracking assistant. Parse the user's message about money spent, received or moved and extract structured data.

EXPENSE CATEGORIES AND SUBCATEGORIES:
{_render_pool(pools.expense)}

INCOME CATEGORIES AND SUBCATEGORIES:
{_render_pool(pools.income)}

PAYMENT METHODS (expenses):
{_render_names(pools.debit_mode_names)}

CREDIT SOURCES (income):
{_render_names(pools.credit_mode_names)}

PARSING RULES:
1. Extract ALL transactions from the message (one or many).
2. ALWAYS return a JSON array of transaction objects, even for a single transaction.
3. Every object must have kind, amount, categoryName and subcategoryName.

TRANSACTION KIND RULES:
- "expense": money the user spent or paid out.
- "income": money the user received or earned.
- "transfer": money moved between the user's own accounts (e.g. savings to current, paying one's own credit card). A transfer is neither an expense nor income. Use categoryName "{TRANSFER_CATEGORY}" and subcategoryName "{TRANSFER_CATEGORY}".

CURRENCY RULES:
{_render_currency_rules(currency)}

CATEGORY MATCHING RULES - VERY IMPORTANT:
- Match the user's intent to the category list for the transaction's kind (expense list for expenses, income list for income).
- Use the EXACT category name from the list.
- Pick the most appropriate subcategory of the matched category.
- If no category in the list matches, use the EXACT word or phrase the user mentioned as categoryName and subcategoryName.
- DO NOT invent categories and DO NOT use placeholders such as "Unknown" or "Other" unless the user said so.

PAYMENT METHOD / CREDIT SOURCE RULES:
- Expenses: if the user mentions a payment method, use the closest name from PAYMENT METHODS; otherwise use "{PAYMENT_METHOD_NOT_PROVIDED}".
- Income: if the user mentions where the money came from, use the closest name from CREDIT SOURCES; otherwise use "{CREDIT_SOURCE_NOT_PROVIDED}".
- Transfers carry neither field.

EXAMPLES:

{_examples(currency)}

RESPONSE FORMAT (MUST be a valid JSON array, no prose, no code fences):
[
  {{
    "kind": "expense" | "income" | "transfer",
    "amount": number (greater than 0),
    "categoryName": "string (EXACT from the list OR EXACT from user input)",
    "subcategoryName": "string",
    "paymentMethod": "string (expenses only, default: '{PAYMENT_METHOD_NOT_PROVIDED}')",
    "creditFrom": "string (income only, default: '{CREDIT_SOURCE_NOT_PROVIDED}')",
    "currencyCode": "string (ISO 4217, default: '{currency}')",
    "description": "string (optional)"
  }}
]

ERROR FORMAT (only if you cannot determine an amount or what the money was for):
{{
  "error": "{PARSE_ERROR_LABEL}",
  "message": "Could not understand the transaction. Please provide at least an amount and a category."
}}"""


__all__ = [
    "CHAT_PERSONA",
    "CURRENCY_TRIGGERS",
    "PARSE_ERROR_LABEL",
    "build_system_prompt",
]
