# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Profit & Loss builder.

Only operating revenue and expense lines coming from bookkeeping entries
and invoice revenue entries are recognised in profit; bank, wallet and
manual cash adjustments are cash movements without a P&L counterpart.
Invoice revenue entries contribute their gross amount to revenue and their
COGS to cost of sales (as the 'Invoice COGS' line).

Layout (codes in brackets):

    Revenue [PL_REVENUE]
    Cost of sales [PL_COST_OF_SALES]
    Gross profit [PL_GROSS_PROFIT]              revenue - cost of sales
    Operating expenses [PL_OPEX]
    Operating income [PL_OPERATING_INCOME]      gross profit - opex
    Other income [PL_OTHER_INCOME]
    Other expenses [PL_OTHER_EXPENSES]
    Net profit [PL_NET_PROFIT]                  operating income + other income
                                                - other expenses

Margins are percentages of revenue and are None for zero-revenue periods.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .config import CompanySettings
from .engine import PROFIT_SOURCES, AggregatedBuckets, restrict_to_currency
from .lines import StatementLineItem, amount_of, group, leaf
from .mapping import pnl_section
from .money import ZERO, Money, RateTable
from .periods import ReportingPeriod
from .sources import Classification, SourceKind

GROUP_BY_CHOICES = ("category", "subcategory")

_SECTIONS = (
    ("revenue", "Revenue", "PL_REVENUE"),
    ("cost_of_sales", "Cost of sales", "PL_COST_OF_SALES"),
    ("operating_expenses", "Operating expenses", "PL_OPEX"),
    ("other_income", "Other income", "PL_OTHER_INCOME"),
    ("other_expenses", "Other expenses", "PL_OTHER_EXPENSES"),
)

_HUNDRED = Decimal("100")
_PCT = Decimal("0.01")


@dataclass(frozen=True)
class ProfitLossData:
    period: ReportingPeriod
    currency: str
    lines: tuple[StatementLineItem, ...]
    gross_margin_pct: Optional[Decimal]
    operating_margin_pct: Optional[Decimal]
    net_margin_pct: Optional[Decimal]
    company_ids: tuple[str, ...] = ()
    excluded_currencies: tuple[str, ...] = ()
    has_comparative: bool = False

    def _money(self, code: str) -> Money:
        return Money(amount_of(self.lines, code), self.currency)

    @property
    def revenue(self) -> Money:
        return self._money("PL_REVENUE")

    @property
    def cost_of_sales(self) -> Money:
        return self._money("PL_COST_OF_SALES")

    @property
    def gross_profit(self) -> Money:
        return self._money("PL_GROSS_PROFIT")

    @property
    def operating_expenses(self) -> Money:
        return self._money("PL_OPEX")

    @property
    def operating_income(self) -> Money:
        return self._money("PL_OPERATING_INCOME")

    @property
    def other_income(self) -> Money:
        return self._money("PL_OTHER_INCOME")

    @property
    def other_expenses(self) -> Money:
        return self._money("PL_OTHER_EXPENSES")

    @property
    def net_profit(self) -> Money:
        return self._money("PL_NET_PROFIT")


def section_amounts(
    buckets: AggregatedBuckets,
    settings: CompanySettings,
    group_by: str = "category",
) -> dict[str, dict[str, Decimal]]:
    """Positive amounts per P&L section and breakdown label."""
    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"group_by must be one of {GROUP_BY_CHOICES}, got {group_by!r}.")

    sections: dict[str, dict[str, Decimal]] = {
        name: defaultdict(lambda: ZERO) for name, _, _ in _SECTIONS
    }
    operating = (Classification.OPERATING_INFLOW, Classification.OPERATING_OUTFLOW)

    for line in buckets.select(*operating, source_kinds=PROFIT_SOURCES):
        label = line.category
        if group_by == "subcategory" and line.subcategory:
            label = line.subcategory

        if line.source_kind is SourceKind.INVOICE_REVENUE:
            section = pnl_section(line.category, True, settings.pnl_sections)
            sections[section][label or "Invoice revenue"] += line.gross
            if line.cogs:
                sections["cost_of_sales"]["Invoice COGS"] += line.cogs
            continue

        inflow = line.classification.is_inflow
        section = pnl_section(line.category, inflow, settings.pnl_sections)
        sections[section][label or "Uncategorised"] += abs(line.amount)

    return {k: dict(v) for k, v in sections.items()}


def compute_net_profit(buckets: AggregatedBuckets, settings: CompanySettings) -> Decimal:
    """Net profit of buckets already restricted to one currency."""
    s = section_amounts(buckets, settings)
    total = {name: sum(values.values(), ZERO) for name, values in s.items()}
    return (
        total["revenue"]
        - total["cost_of_sales"]
        - total["operating_expenses"]
        + total["other_income"]
        - total["other_expenses"]
    )


def _margin(value: Decimal, revenue: Decimal) -> Optional[Decimal]:
    if revenue == 0:
        return None
    return (value / revenue * _HUNDRED).quantize(_PCT)


def build_profit_loss(
    buckets: AggregatedBuckets,
    settings: CompanySettings,
    *,
    currency: Optional[str] = None,
    rates: Optional[RateTable] = None,
    group_by: str = "category",
) -> ProfitLossData:
    """
    Build the P&L for the buckets' period.

    Parameters
    ----------
    buckets:
        Output of ``engine.aggregate`` for the reporting period.
    settings:
        Company settings (section lists, functional currency).
    currency:
        Presentation currency, the functional currency by default.
    rates:
        Optional rate table; without it, other currencies are left out and
        listed in ``excluded_currencies``.
    group_by:
        'category' or 'subcategory' breakdown of each section.
    """
    ccy = (currency or settings.functional_currency).upper()
    restricted, excluded = restrict_to_currency(buckets, ccy, rates)
    amounts = section_amounts(restricted, settings, group_by)

    sections: dict[str, StatementLineItem] = {}
    for name, label, code in _SECTIONS:
        children = [
            leaf(child_label, value, ccy, code=f"{code}:{child_label}")
            for child_label, value in sorted(amounts[name].items())
        ]
        sections[name] = group(label, children, ccy, code=code)

    revenue = sections["revenue"].current.amount
    gross_profit = revenue - sections["cost_of_sales"].current.amount
    operating_income = gross_profit - sections["operating_expenses"].current.amount
    net_profit = (
        operating_income
        + sections["other_income"].current.amount
        - sections["other_expenses"].current.amount
    )

    lines = (
        sections["revenue"],
        sections["cost_of_sales"],
        leaf("Gross profit", gross_profit, ccy, code="PL_GROSS_PROFIT"),
        sections["operating_expenses"],
        leaf("Operating income", operating_income, ccy, code="PL_OPERATING_INCOME"),
        sections["other_income"],
        sections["other_expenses"],
        leaf("Net profit", net_profit, ccy, code="PL_NET_PROFIT"),
    )

    return ProfitLossData(
        period=buckets.period,
        currency=ccy,
        lines=lines,
        gross_margin_pct=_margin(gross_profit, revenue),
        operating_margin_pct=_margin(operating_income, revenue),
        net_margin_pct=_margin(net_profit, revenue),
        company_ids=buckets.company_ids,
        excluded_currencies=excluded,
    )
