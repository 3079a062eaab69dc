# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Category mapping utilities for SMB LedgerSight.

Ledger records carry free-text categories ("Sales Revenue", "Rent and
utilities", "Depreciation - vehicles"). This module decides where such a
category lands:

- which P&L section a revenue or expense line belongs to,
- whether an expense is a non-cash item,
- whether a balance-sheet line is current or non-current.

Patterns are semicolon-separated strings or sequences. Matching is
case-insensitive; a trailing '*' means "starts with".
"""

from collections.abc import Iterable, Mapping
from typing import Optional, Union

from .config import ClassificationSettings

INFLOW_SECTIONS = ("revenue", "other_income")
OUTFLOW_SECTIONS = ("cost_of_sales", "operating_expenses", "other_expenses")


def _to_patterns(s: Optional[Union[str, Iterable[str]]]) -> list[str]:
    """Convert a pattern string or sequence into a list of lowercase patterns.

    Examples:
        "Sales*;Consulting" → ["sales*", "consulting"]
        None or "" → []
    """
    if s is None:
        return []
    items = s.split(";") if isinstance(s, str) else list(s)
    return [str(p).strip().lower() for p in items if str(p).strip()]


def matches(value: str, patterns: Optional[Union[str, Iterable[str]]]) -> bool:
    """Return True if ``value`` matches at least one pattern.

    Rules:
        - 'Depreciation*' matches 'Depreciation - vehicles'.
        - 'Insurance' matches only 'insurance' (any case).
    """
    text = (value or "").strip().lower()
    for p in _to_patterns(patterns):
        if p.endswith("*"):
            if text.startswith(p[:-1]):
                return True
        elif text == p:
            return True
    return False


def pnl_section(
    category: str,
    inflow: bool,
    sections: Mapping[str, Iterable[str]],
) -> str:
    """Return the P&L section of a category.

    Inflows land in 'revenue' unless listed as other income; outflows land
    in 'operating_expenses' unless listed as cost of sales or other
    expenses.
    """
    if inflow:
        if matches(category, sections.get("other_income")):
            return "other_income"
        return "revenue"
    if matches(category, sections.get("cost_of_sales")):
        return "cost_of_sales"
    if matches(category, sections.get("other_expenses")):
        return "other_expenses"
    return "operating_expenses"


def is_non_cash(category: str, classification: ClassificationSettings) -> bool:
    return matches(category, classification.non_cash_categories)


def is_current(
    category: str,
    subcategory: str,
    kind: str,
    classification: ClassificationSettings,
) -> bool:
    """Decide whether an asset or liability line is current.

    The explicit subcategory lists win; otherwise keywords found in the
    subcategory or category decide. Anything else is non-current.
    """
    listed = (
        classification.current_asset_subcategories
        if kind == "asset"
        else classification.current_liability_subcategories
    )
    if matches(subcategory, listed) or matches(category, listed):
        return True
    haystack = f"{subcategory} {category}".lower()
    if "non-current" in haystack or "long-term" in haystack or "long term" in haystack:
        return False
    return any(k.lower() in haystack for k in classification.current_keywords)
