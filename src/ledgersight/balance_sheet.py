# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Balance sheet builder.

The balance sheet is a position at the end of a period, so its buckets are
expected to come from ``aggregate(transactions, period.as_of())``: every
asset, liability and equity movement up to and including the period end.

Trees (codes in brackets):

    Total assets [BS_ASSETS]
        Current assets [BS_CURRENT_ASSETS]            one line per category
        Non-current assets [BS_NON_CURRENT_ASSETS]
    Total liabilities [BS_LIABILITIES]
        Current liabilities [BS_CURRENT_LIABILITIES]
        Non-current liabilities [BS_NON_CURRENT_LIABILITIES]
    Total equity [BS_EQUITY]
        one line per category, plus 'Profit for the period' when supplied

Ratios (current ratio, debt-to-equity) are only computed when both sides
exist and the denominator is non-zero; otherwise their value is None and
they display as "N/A".
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .config import CompanySettings
from .engine import AggregatedBuckets, restrict_to_currency
from .lines import StatementLineItem, amount_of, find, group, leaf
from .mapping import is_current
from .money import ZERO, Money, RateTable, to_decimal
from .periods import ReportingPeriod
from .ratios import RatioResult
from .sources import Classification

_SECTION_KEYS = {
    ("asset", True): "current_assets",
    ("asset", False): "non_current_assets",
    ("liability", True): "current_liabilities",
    ("liability", False): "non_current_liabilities",
}

@dataclass(frozen=True)
class BalanceSheetData:
    period: ReportingPeriod
    currency: str
    lines: tuple[StatementLineItem, ...]
    difference: Money
    is_balanced: bool
    tolerance: Decimal
    ratios: tuple[RatioResult, ...]
    company_ids: tuple[str, ...] = ()
    excluded_currencies: tuple[str, ...] = ()
    has_comparative: bool = False

    def _money(self, code: str) -> Money:
        return Money(amount_of(self.lines, code), self.currency)

    @property
    def total_assets(self) -> Money:
        return self._money("BS_ASSETS")

    @property
    def total_liabilities(self) -> Money:
        return self._money("BS_LIABILITIES")

    @property
    def total_equity(self) -> Money:
        return self._money("BS_EQUITY")

    @property
    def current_assets(self) -> Money:
        return self._money("BS_CURRENT_ASSETS")

    @property
    def current_liabilities(self) -> Money:
        return self._money("BS_CURRENT_LIABILITIES")

    @property
    def has_current_split(self) -> bool:
        """True when at least one asset or liability line is current."""
        for code in ("BS_CURRENT_ASSETS", "BS_CURRENT_LIABILITIES"):
            node = find(self.lines, code)
            if node is not None and node.children:
                return True
        return False

    def ratio(self, key: str) -> Optional[RatioResult]:
        for r in self.ratios:
            if r.key == key:
                return r
        return None


def safe_ratio(
    numerator: Optional[Decimal],
    denominator: Optional[Decimal],
) -> Optional[float]:
    """numerator / denominator, or None when undefined."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return float(numerator / denominator)


def _leaves(amounts: dict[str, Decimal], prefix: str, currency: str) -> list[StatementLineItem]:
    return [
        leaf(label, value, currency, code=f"{prefix}:{label}")
        for label, value in sorted(amounts.items())
    ]


def build_balance_sheet(
    buckets: AggregatedBuckets,
    settings: CompanySettings,
    *,
    currency: Optional[str] = None,
    rates: Optional[RateTable] = None,
    profit_for_period: Optional[Decimal] = None,
) -> BalanceSheetData:
    """
    Build the balance sheet from asset, liability and equity buckets.

    Parameters
    ----------
    buckets:
        Cumulative buckets (see ``ReportingPeriod.as_of``).
    settings:
        Company settings (classification lists, tolerances).
    currency, rates:
        Presentation currency and optional conversion table.
    profit_for_period:
        When given, added to equity as 'Profit for the period' (retained
        earnings not yet booked as an equity entry).
    """
    ccy = (currency or settings.functional_currency).upper()
    restricted, excluded = restrict_to_currency(buckets, ccy, rates)
    cls = settings.classification

    groups: dict[str, dict[str, Decimal]] = {
        "current_assets": defaultdict(lambda: ZERO),
        "non_current_assets": defaultdict(lambda: ZERO),
        "current_liabilities": defaultdict(lambda: ZERO),
        "non_current_liabilities": defaultdict(lambda: ZERO),
        "equity": defaultdict(lambda: ZERO),
    }

    for line in restricted.select(
        Classification.ASSET, Classification.LIABILITY, Classification.EQUITY
    ):
        label = line.category or line.subcategory or line.classification.value.title()
        if line.classification is Classification.EQUITY:
            groups["equity"][label] += line.amount
            continue
        kind = line.classification.value
        current = is_current(line.category, line.subcategory, kind, cls)
        groups[_SECTION_KEYS[(kind, current)]][label] += line.amount

    if profit_for_period is not None:
        groups["equity"]["Profit for the period"] += to_decimal(profit_for_period)

    assets = group(
        "Total assets",
        [
            group("Current assets", _leaves(groups["current_assets"], "BS_CA", ccy), ccy, code="BS_CURRENT_ASSETS"),
            group("Non-current assets", _leaves(groups["non_current_assets"], "BS_NCA", ccy), ccy, code="BS_NON_CURRENT_ASSETS"),
        ],
        ccy,
        code="BS_ASSETS",
    )
    liabilities = group(
        "Total liabilities",
        [
            group("Current liabilities", _leaves(groups["current_liabilities"], "BS_CL", ccy), ccy, code="BS_CURRENT_LIABILITIES"),
            group("Non-current liabilities", _leaves(groups["non_current_liabilities"], "BS_NCL", ccy), ccy, code="BS_NON_CURRENT_LIABILITIES"),
        ],
        ccy,
        code="BS_LIABILITIES",
    )
    equity = group("Total equity", _leaves(groups["equity"], "BS_EQ", ccy), ccy, code="BS_EQUITY")

    total_assets = assets.current.amount
    total_liabilities = liabilities.current.amount
    total_equity = equity.current.amount
    difference = total_assets - (total_liabilities + total_equity)
    tolerance = settings.ifrs.balance_tolerance

    current_assets = assets.children[0]
    current_liabilities = liabilities.children[0]
    ratios = (
        RatioResult(
            key="current_ratio",
            label="Current ratio",
            value=safe_ratio(
                current_assets.current.amount if current_assets.children else None,
                current_liabilities.current.amount if current_liabilities.children else None,
            ),
            unit="ratio",
            notes="Current assets / current liabilities",
            level="basic",
        ),
        RatioResult(
            key="debt_to_equity",
            label="Debt to equity",
            value=safe_ratio(
                total_liabilities if _has_lines(liabilities) else None,
                total_equity if equity.children else None,
            ),
            unit="ratio",
            notes="Total liabilities / total equity",
            level="basic",
        ),
    )

    return BalanceSheetData(
        period=buckets.period,
        currency=ccy,
        lines=(assets, liabilities, equity),
        difference=Money(difference, ccy),
        is_balanced=abs(difference) <= tolerance,
        tolerance=tolerance,
        ratios=ratios,
        company_ids=buckets.company_ids,
        excluded_currencies=excluded,
    )


def _has_lines(item: StatementLineItem) -> bool:
    return any(child.children for child in item.children)
