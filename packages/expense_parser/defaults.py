"""Built-in taxonomy and sentinel strings shared by the prompt and reconciler.

The sentinel strings are what the model is told to emit when the user does
not state a payment method or credit source, and what the reconciler fills in
when the model omits them anyway. Keep both sides reading from here.

``DEFAULT_TAXONOMY`` is a plain value passed into the taxonomy provider; tests
and hosts can build their own :class:`DefaultTaxonomy` instead.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import CategoryEntry, TaxonomyKind

PAYMENT_METHOD_NOT_PROVIDED = "User not provided payment method"
CREDIT_SOURCE_NOT_PROVIDED = "User not provided credit source"

TRANSFER_CATEGORY = "Transfer"
TRANSFER_CATEGORY_ID = "transfer"

DEFAULT_CURRENCY = "INR"

DEFAULT_PAYMENT_METHODS: tuple[str, ...] = (
    "Credit Card",
    "Debit Card",
    "Cash",
    "UPI",
    "Net Banking",
    "Wallet",
    PAYMENT_METHOD_NOT_PROVIDED,
)

DEFAULT_CREDIT_SOURCES: tuple[str, ...] = (
    "Salary",
    "Business",
    "Freelance",
    "Interest",
    "Refund",
    "Gift",
    "Other",
    CREDIT_SOURCE_NOT_PROVIDED,
)


def _expense(entry_id: str, name: str, *subcategories: str) -> CategoryEntry:
    return CategoryEntry(
        id=entry_id, name=name, kind=TaxonomyKind.EXPENSE, subcategory_names=subcategories
    )


# (id, name, subcategories) for the legacy global expense categories.
_EXPENSE_CATEGORIES: tuple[CategoryEntry, ...] = (
    _expense("food-dining", "Food & Dining", "Foods", "Grocery & Vegetables"),
    _expense("home-living", "Home & Living", "Maid", "Bills", "Home Maintaince", "Interior Work"),
    _expense(
        "health-wellness",
        "Health & Wellness",
        "Medical",
        "Insurance",
        "Grooming and Parlour",
        "Vaccinations/Doctor",
    ),
    _expense(
        "baby-care",
        "Baby Care",
        "Baby essentials",
        "Nanny",
        "Childcare",
        "Baby/Mother Medicine",
        "Baby Toys/Shopping/Other",
    ),
    _expense(
        "transportation",
        "Transportation",
        "Office Traveling",
        "Petrol",
        "Car/Bike/Scooty Service",
        "Insurance",
        "Parking",
    ),
    _expense(
        "investments",
        "Investments",
        "Other",
        "Mutual Funds/SIP/SWP/ELSS",
        "Gold/Diamond/Silver/Jewelry",
        "Retirement Funds",
        "Emergency Funds",
        "Other Investments",
        "Office Provident Fund",
        "PPF",
        "NPS",
    ),
    _expense("lifestyle", "Lifestyle", "Travels", "Shopping", "Entertainment", "Gifts"),
    _expense(
        "debt-loans",
        "Debt & Loans",
        "EMIs",
        "Loans",
        "Windsor Extra Loan Payment",
        "Aditya Extra Loan Payment",
        "Car Extra Loan Payment",
        "Loan or Saving Fees/Charges/Penalty",
    ),
    _expense(
        "miscellaneous",
        "Miscellaneous",
        "One Time Expense/Unexpected Others",
        "Extra Tax Payments/CA Payments",
        "Accidental",
        "Others",
    ),
    _expense(
        "professional",
        "Professional",
        "Software",
        "Learning & Certifications",
        "Domain/Hosting",
        "Email",
        "Others",
    ),
    _expense(
        "personal-family",
        "Personal & Family",
        "Given To Papa",
        "Credit Card Fees/GST/Other Charges",
        "Donation",
    ),
)

_INCOME_CATEGORIES: tuple[CategoryEntry, ...] = (
    CategoryEntry(
        id="income",
        name="Income",
        kind=TaxonomyKind.INCOME,
        subcategory_names=("Salary", "Software"),
    ),
)


@dataclass(frozen=True, slots=True)
class DefaultTaxonomy:
    """Fallback taxonomy used when no tenant is given or a tenant pool is empty.

    ``income`` is only used when seeding a new tracker; legacy (no tracker)
    parsing offers the expense pool and payment methods alone.
    """

    expense: tuple[CategoryEntry, ...] = _EXPENSE_CATEGORIES
    income: tuple[CategoryEntry, ...] = _INCOME_CATEGORIES
    payment_methods: tuple[str, ...] = DEFAULT_PAYMENT_METHODS
    credit_sources: tuple[str, ...] = DEFAULT_CREDIT_SOURCES


DEFAULT_TAXONOMY = DefaultTaxonomy()


__all__ = [
    "CREDIT_SOURCE_NOT_PROVIDED",
    "DEFAULT_CREDIT_SOURCES",
    "DEFAULT_CURRENCY",
    "DEFAULT_PAYMENT_METHODS",
    "DEFAULT_TAXONOMY",
    "DefaultTaxonomy",
    "PAYMENT_METHOD_NOT_PROVIDED",
    "TRANSFER_CATEGORY",
    "TRANSFER_CATEGORY_ID",
]
