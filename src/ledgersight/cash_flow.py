# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Cash flow statement builder (IAS 7), direct and indirect methods.

Operating activities
--------------------
Direct method (IAS 7.18(a)):

    Cash receipts from customers          [CFO_CUST]   IAS 7.14(a)
    Cash paid to suppliers and employees  [CFO_SUPP]   IAS 7.14(b)
    Other operating receipts              [CFO_OTHER_IN]
    Other operating payments              [CFO_OTHER_OUT]

Indirect method (IAS 7.18(b)):

    Net profit                            [NP]         IAS 7.20
    Depreciation and amortisation         [DEP]        IAS 7.20(b)
    Decrease in trade payables            [WC_PAY]     IAS 7.20(a)
    Operating cash movements not
    recognised in profit or loss          [CFO_UNRECOGNISED]

Net profit counts invoice revenue at gross less COGS while the operating
cash receipt of an invoice is its net amount (gross - COGS - linked
expenses), so linked supplier payments appear as a decrease in payables.
Bank, wallet and manual cash adjustments have no P&L counterpart and are
added back as a single line. Both methods therefore yield the same
operating cash flow for any input.

Investing (IAS 7.16) and financing (IAS 7.17) activities list one line per
category. Interest paid (IAS 7.31) and income taxes paid (IAS 7.35) are
disclosed separately, outside the totals.

Reconciliation
--------------
``difference = closing - (opening + net)`` and the statement is reconciled
when ``|difference| < tolerance``. A mismatch is data, never an exception.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .config import CompanySettings
from .engine import CASH_SOURCES, PROFIT_SOURCES, AggregatedBuckets, BucketLine, restrict_to_currency
from .errors import InvalidPeriod
from .lines import StatementLineItem, amount_of, find, group, leaf
from .mapping import matches
from .money import ZERO, Money, RateTable, to_decimal
from .periods import ReportingPeriod
from .profit_loss import compute_net_profit
from .sources import Classification

METHODS = ("direct", "indirect")

_OPERATING = (Classification.OPERATING_INFLOW, Classification.OPERATING_OUTFLOW)


@dataclass(frozen=True)
class CashReconciliation:
    opening_cash: Money
    net_cash_flow: Money
    closing_cash: Money
    expected_closing: Money
    difference: Money
    is_reconciled: bool
    tolerance: Decimal
    closing_supplied: bool = True

    @property
    def formatted_difference(self) -> str:
        return self.difference.formatted


@dataclass(frozen=True)
class CashFlowData:
    period: ReportingPeriod
    currency: str
    method: str
    lines: tuple[StatementLineItem, ...]
    reconciliation: CashReconciliation
    net_profit: Money
    supplementary: tuple[StatementLineItem, ...] = ()
    operating_item_count: int = 0
    company_ids: tuple[str, ...] = ()
    excluded_currencies: tuple[str, ...] = ()
    has_comparative: bool = False

    def _money(self, code: str) -> Money:
        return Money(amount_of(self.lines, code), self.currency)

    @property
    def operating_cash_flow(self) -> Money:
        return self._money("CFO")

    @property
    def investing_cash_flow(self) -> Money:
        return self._money("CFI")

    @property
    def financing_cash_flow(self) -> Money:
        return self._money("CFF")

    @property
    def net_cash_flow(self) -> Money:
        return self._money("CF_NET")

    def line(self, code: str) -> Optional[StatementLineItem]:
        return find(self.lines, code)


def _sum(lines: list[BucketLine], attr: str = "amount") -> Decimal:
    return sum((getattr(line, attr) for line in lines), ZERO)


def _direct_operating(buckets: AggregatedBuckets, ccy: str) -> list[StatementLineItem]:
    def pick(classification: Classification, sources) -> Decimal:
        return _sum(buckets.select(classification, source_kinds=sources, non_cash=False))

    return [
        leaf("Cash receipts from customers", pick(Classification.OPERATING_INFLOW, PROFIT_SOURCES), ccy, "CFO_CUST", "IAS 7.14(a)"),
        leaf("Cash paid to suppliers and employees", pick(Classification.OPERATING_OUTFLOW, PROFIT_SOURCES), ccy, "CFO_SUPP", "IAS 7.14(b)"),
        leaf("Other operating receipts", pick(Classification.OPERATING_INFLOW, CASH_SOURCES), ccy, "CFO_OTHER_IN", "IAS 7.14"),
        leaf("Other operating payments", pick(Classification.OPERATING_OUTFLOW, CASH_SOURCES), ccy, "CFO_OTHER_OUT", "IAS 7.14"),
    ]


def _indirect_operating(
    buckets: AggregatedBuckets,
    ccy: str,
    net_profit: Decimal,
) -> list[StatementLineItem]:
    non_cash = _sum(buckets.select(*_OPERATING, non_cash=True))
    linked = _sum(buckets.select(*_OPERATING, source_kinds=PROFIT_SOURCES), "linked_expenses")
    unrecognised = _sum(buckets.select(*_OPERATING, source_kinds=CASH_SOURCES))
    return [
        leaf("Net profit", net_profit, ccy, "NP", "IAS 7.20"),
        leaf("Depreciation and amortisation", -non_cash, ccy, "DEP", "IAS 7.20(b)"),
        leaf("Decrease in trade payables", -linked, ccy, "WC_PAY", "IAS 7.20(a)"),
        leaf(
            "Operating cash movements not recognised in profit or loss",
            unrecognised,
            ccy,
            "CFO_UNRECOGNISED",
            "IAS 7.20(c)",
        ),
    ]


def _activity_lines(
    buckets: AggregatedBuckets,
    inflow: Classification,
    outflow: Classification,
    prefix: str,
    fallback: str,
    ccy: str,
) -> list[StatementLineItem]:
    by_label: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for line in buckets.select(inflow, outflow):
        by_label[line.category or fallback] += line.amount
    return [
        leaf(label, value, ccy, code=f"{prefix}:{label}")
        for label, value in sorted(by_label.items())
    ]


def _supplementary(
    buckets: AggregatedBuckets, settings: CompanySettings, ccy: str
) -> tuple[StatementLineItem, ...]:
    outflows = buckets.select(*_OPERATING, non_cash=False)
    cls = settings.classification
    interest = -_sum([x for x in outflows if x.amount < 0 and matches(x.category, cls.interest_categories)])
    taxes = -_sum([x for x in outflows if x.amount < 0 and matches(x.category, cls.tax_categories)])
    return (
        leaf("Interest paid", interest, ccy, "INT_PAID", "IAS 7.31"),
        leaf("Income taxes paid", taxes, ccy, "TAX_PAID", "IAS 7.35"),
    )


def reconcile(
    opening_cash: Decimal,
    net_cash_flow: Decimal,
    closing_cash: Optional[Decimal],
    currency: str,
    tolerance: Decimal,
) -> CashReconciliation:
    """Compare opening + net flow with the closing ledger balance."""
    expected = opening_cash + net_cash_flow
    supplied = closing_cash is not None
    closing = closing_cash if closing_cash is not None else expected
    difference = closing - expected
    return CashReconciliation(
        opening_cash=Money(opening_cash, currency),
        net_cash_flow=Money(net_cash_flow, currency),
        closing_cash=Money(closing, currency),
        expected_closing=Money(expected, currency),
        difference=Money(difference, currency),
        is_reconciled=abs(difference) < tolerance,
        tolerance=tolerance,
        closing_supplied=supplied,
    )


def build_cash_flow(
    buckets: AggregatedBuckets,
    settings: CompanySettings,
    *,
    method: str = "indirect",
    opening_cash: Optional[Decimal] = None,
    closing_cash: Optional[Decimal] = None,
    currency: Optional[str] = None,
    rates: Optional[RateTable] = None,
) -> CashFlowData:
    """
    Build the cash flow statement for the buckets' period.

    Parameters
    ----------
    buckets:
        Output of ``engine.aggregate`` for a fully bounded period.
    settings:
        Company settings (tolerance, interest/tax categories, currency).
    method:
        'indirect' (default) or 'direct'.
    opening_cash, closing_cash:
        Ledger cash balances at period start and end. When ``closing_cash``
        is omitted, the closing balance is derived from the flows and the
        reconciliation is marked as not supplied.
    currency, rates:
        Presentation currency and optional conversion table.

    Raises
    ------
    InvalidPeriod
        If the period is open-ended (no opening balance date exists).
    ValueError
        If the method is unknown.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown cash flow method {method!r}, expected one of {METHODS}.")
    if buckets.period.is_open_ended:
        raise InvalidPeriod(
            "kind", "an all-time period cannot be reconciled against closing cash."
        )

    ccy = (currency or settings.functional_currency).upper()
    restricted, excluded = restrict_to_currency(buckets, ccy, rates)
    net_profit = compute_net_profit(restricted, settings)

    if method == "direct":
        operating_children = _direct_operating(restricted, ccy)
    else:
        operating_children = _indirect_operating(restricted, ccy, net_profit)

    operating = group("Net cash from operating activities", operating_children, ccy, "CFO", "IAS 7.10")
    investing = group(
        "Net cash from investing activities",
        _activity_lines(
            restricted,
            Classification.INVESTING_INFLOW,
            Classification.INVESTING_OUTFLOW,
            "CFI",
            "Other investing activities",
            ccy,
        ),
        ccy,
        "CFI",
        "IAS 7.16",
    )
    financing = group(
        "Net cash from financing activities",
        _activity_lines(
            restricted,
            Classification.FINANCING_INFLOW,
            Classification.FINANCING_OUTFLOW,
            "CFF",
            "Other financing activities",
            ccy,
        ),
        ccy,
        "CFF",
        "IAS 7.17",
    )
    net = operating.current.amount + investing.current.amount + financing.current.amount

    reconciliation = reconcile(
        to_decimal(opening_cash) if opening_cash is not None else ZERO,
        net,
        to_decimal(closing_cash) if closing_cash is not None else None,
        ccy,
        settings.ifrs.cash_tolerance,
    )

    return CashFlowData(
        period=buckets.period,
        currency=ccy,
        method=method,
        lines=(
            operating,
            investing,
            financing,
            leaf("Net increase (decrease) in cash", net, ccy, "CF_NET"),
        ),
        reconciliation=reconciliation,
        net_profit=Money(net_profit, ccy),
        supplementary=_supplementary(restricted, settings, ccy),
        operating_item_count=sum(line.count for line in restricted.select(*_OPERATING)),
        company_ids=buckets.company_ids,
        excluded_currencies=excluded,
    )
