# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period-over-period comparison and variance analysis.

``compare(current, prior)`` merges two lists of statement lines by label
path. A line present on one side only is kept with an implicit zero on the
other side, so every line of both periods appears in the result. Variance
percent is ``(current - prior) / |prior| * 100`` and is None when the prior
amount is zero.

Also provided:
- ``significance()``: material / significant / noteworthy / immaterial,
- ``variance_direction()``: increase / decrease / no-change,
- ``trend()``: least-squares slope and r² over a series of amounts.
"""

import statistics
from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, TypeVar

from .errors import CurrencyMismatch
from .lines import StatementLineItem, without_comparison
from .money import Money, to_decimal

_HUNDRED = Decimal("100")
_PCT = Decimal("0.01")

# (percent threshold, absolute threshold, level), checked in order.
SIGNIFICANCE_LEVELS: tuple[tuple[Decimal, Decimal, str], ...] = (
    (Decimal("25"), Decimal("100000"), "material"),
    (Decimal("15"), Decimal("50000"), "significant"),
    (Decimal("5"), Decimal("10000"), "noteworthy"),
)


def variance_percent(current: Decimal, prior: Decimal) -> Optional[Decimal]:
    if prior == 0:
        return None
    return ((current - prior) / abs(prior) * _HUNDRED).quantize(_PCT)


def _with_variance(item: StatementLineItem, prior: Money) -> StatementLineItem:
    if item.current.currency != prior.currency:
        raise CurrencyMismatch(item.current.currency, prior.currency)
    return replace(
        item,
        prior=prior,
        variance_absolute=item.current - prior,
        variance_percent=variance_percent(item.current.amount, prior.amount),
    )


def _zero_current(item: StatementLineItem) -> StatementLineItem:
    """A prior-only line: current side is zero at every level."""
    return replace(
        item,
        current=Money.zero(item.current.currency),
        children=tuple(_zero_current(c) for c in item.children),
    )


def _merge_one(
    current: Optional[StatementLineItem],
    prior: Optional[StatementLineItem],
) -> StatementLineItem:
    if current is None:
        base = _zero_current(without_comparison(prior))
        current_children: tuple[StatementLineItem, ...] = ()
    else:
        base = without_comparison(current)
        current_children = current.children
    prior_children = prior.children if prior is not None else ()
    prior_money = prior.current if prior is not None else Money.zero(base.current.currency)

    if current_children or prior_children:
        base = replace(base, children=compare(current_children, prior_children))
    return _with_variance(base, prior_money)


def compare(
    current: Sequence[StatementLineItem],
    prior: Sequence[StatementLineItem],
) -> tuple[StatementLineItem, ...]:
    """
    Merge current and prior lines by label, recursively.

    Lines keep the current period's order; prior-only lines are appended
    after them in the prior period's order.

    Raises:
        CurrencyMismatch: if the two sides are in different currencies.
    """
    prior_by_label = {item.label: item for item in prior}
    seen: set[str] = set()
    out: list[StatementLineItem] = []
    for item in current:
        seen.add(item.label)
        out.append(_merge_one(item, prior_by_label.get(item.label)))
    for item in prior:
        if item.label not in seen:
            out.append(_merge_one(None, item))
    return tuple(out)


S = TypeVar("S")


def attach_comparatives(statement: S, prior_statement: S) -> S:
    """Return ``statement`` with its lines merged against ``prior_statement``.

    Works for balance sheet, cash flow and P&L data alike; the result is
    flagged with ``has_comparative = True``.
    """
    if statement.currency != prior_statement.currency:
        raise CurrencyMismatch(statement.currency, prior_statement.currency)
    return replace(
        statement,
        lines=compare(statement.lines, prior_statement.lines),
        has_comparative=True,
    )


def variance_direction(variance_absolute: Decimal) -> str:
    if variance_absolute > 0:
        return "increase"
    if variance_absolute < 0:
        return "decrease"
    return "no-change"


def significance(
    variance_absolute: Decimal,
    variance_pct: Optional[Decimal],
) -> str:
    """Classify a variance; a missing percent only uses the absolute amount."""
    amount = abs(to_decimal(variance_absolute))
    pct = abs(variance_pct) if variance_pct is not None else None
    for pct_threshold, abs_threshold, level in SIGNIFICANCE_LEVELS:
        if amount > abs_threshold or (pct is not None and pct > pct_threshold):
            return level
    return "immaterial"


@dataclass(frozen=True)
class Trend:
    slope: float
    intercept: float
    r_squared: Optional[float]
    direction: str


def trend(values: Sequence[Decimal]) -> Trend:
    """Least-squares linear trend over equally spaced periods.

    Raises:
        ValueError: with fewer than two values.
    """
    if len(values) < 2:
        raise ValueError("A trend needs at least two values.")
    xs = [float(i) for i in range(len(values))]
    ys = [float(v) for v in values]
    slope, intercept = statistics.linear_regression(xs, ys)

    r_squared: Optional[float]
    if len(set(ys)) == 1:
        r_squared = None
    else:
        r_squared = statistics.correlation(xs, ys) ** 2

    if abs(slope) < 1e-9:
        direction = "stable"
    else:
        direction = "up" if slope > 0 else "down"
    return Trend(slope=slope, intercept=intercept, r_squared=r_squared, direction=direction)
