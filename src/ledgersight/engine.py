# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Aggregation engine for SMB LedgerSight.

``aggregate()`` is the single place where normalized transactions are
filtered to a reporting period and summed. Every statement builder consumes
its output, so the period bounds are applied identically everywhere:
both ``period.start`` and ``period.end`` are inclusive.

Buckets
-------
Transactions are grouped by

    (classification, source kind, category, subcategory, currency, non_cash)

and each BucketLine carries the summed signed amount plus, for invoice
revenue entries, the summed gross amount, COGS and linked expenses. No
cross-currency conversion happens here. ``restrict_to_currency()`` is the
presentation step that selects (or converts into) a single currency once
aggregation is done.

Payables
--------
For every invoice revenue transaction with a positive COGS, the remaining
payable is ``max(0, cogs - linked_expenses)``. A negative remainder is
clamped to zero and the overpayment recorded, to be surfaced as a warning.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .errors import MissingRate
from .logging_setup import get_logger
from .money import ZERO, RateTable
from .periods import ReportingPeriod
from .sources import Classification, NormalizedTransaction, SourceKind

logger = get_logger(__name__)

CASH_SOURCES = (
    SourceKind.BANK_TRANSACTION,
    SourceKind.WALLET_TRANSACTION,
    SourceKind.MANUAL_ADJUSTMENT,
)
PROFIT_SOURCES = (SourceKind.MANUAL_ENTRY, SourceKind.INVOICE_REVENUE)


@dataclass(frozen=True)
class BucketLine:
    """Sum of all transactions sharing the same grouping key."""

    classification: Classification
    source_kind: SourceKind
    category: str
    subcategory: str
    currency: str
    non_cash: bool
    amount: Decimal
    gross: Decimal = ZERO
    cogs: Decimal = ZERO
    linked_expenses: Decimal = ZERO
    count: int = 0

    @property
    def key(self) -> tuple:
        return (
            self.classification,
            self.source_kind,
            self.category,
            self.subcategory,
            self.currency,
            self.non_cash,
        )


@dataclass(frozen=True)
class PayableRemainder:
    """Outstanding supplier balance behind one invoice revenue entry."""

    transaction_id: str
    source_id: str
    currency: str
    cogs: Decimal
    paid: Decimal
    remaining: Decimal
    overpaid: Decimal


@dataclass(frozen=True)
class AggregatedBuckets:
    """Result of ``aggregate()`` for one period (and optional company set)."""

    period: ReportingPeriod
    lines: tuple[BucketLine, ...]
    payables: tuple[PayableRemainder, ...] = ()
    unclassified: tuple[NormalizedTransaction, ...] = ()
    company_ids: tuple[str, ...] = ()
    transaction_count: int = 0

    def totals(self) -> dict[Classification, dict[str, Decimal]]:
        """Buckets keyed by classification, then currency."""
        out: dict[Classification, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        for line in self.lines:
            out[line.classification][line.currency] += line.amount
        return {k: dict(v) for k, v in out.items()}

    def total(self, classification: Classification, currency: str) -> Decimal:
        return sum(
            (
                line.amount
                for line in self.lines
                if line.classification is classification and line.currency == currency
            ),
            ZERO,
        )

    def currencies(self) -> tuple[str, ...]:
        return tuple(sorted({line.currency for line in self.lines}))

    def select(
        self,
        *classifications: Classification,
        source_kinds: Optional[Iterable[SourceKind]] = None,
        currency: Optional[str] = None,
        non_cash: Optional[bool] = None,
    ) -> list[BucketLine]:
        """Lines matching every given criterion (all lines when none)."""
        kinds = tuple(source_kinds) if source_kinds is not None else None
        out = []
        for line in self.lines:
            if classifications and line.classification not in classifications:
                continue
            if kinds is not None and line.source_kind not in kinds:
                continue
            if currency is not None and line.currency != currency:
                continue
            if non_cash is not None and line.non_cash != non_cash:
                continue
            out.append(line)
        return out

    def accounts_payable(self, currency: str) -> Decimal:
        return sum((p.remaining for p in self.payables if p.currency == currency), ZERO)

    def overpayments(self) -> tuple[PayableRemainder, ...]:
        return tuple(p for p in self.payables if p.overpaid > 0)


def _merge(lines: Iterable[BucketLine]) -> tuple[BucketLine, ...]:
    merged: dict[tuple, BucketLine] = {}
    for line in lines:
        existing = merged.get(line.key)
        if existing is None:
            merged[line.key] = line
            continue
        merged[line.key] = replace(
            existing,
            amount=existing.amount + line.amount,
            gross=existing.gross + line.gross,
            cogs=existing.cogs + line.cogs,
            linked_expenses=existing.linked_expenses + line.linked_expenses,
            count=existing.count + line.count,
        )
    return tuple(sorted(merged.values(), key=_sort_key))


def _sort_key(line: BucketLine) -> tuple:
    return (
        line.classification.value,
        line.source_kind.value,
        line.category,
        line.subcategory,
        line.currency,
        line.non_cash,
    )


def aggregate(
    transactions: Sequence[NormalizedTransaction],
    period: ReportingPeriod,
    *,
    company_ids: Optional[Iterable[str]] = None,
) -> AggregatedBuckets:
    """
    Sum normalized transactions into buckets for one period.

    Parameters
    ----------
    transactions:
        Output of ``sources.normalize``.
    period:
        Inclusive [start, end] window; ``start`` may be None (open-ended).
    company_ids:
        Optional company filter. All companies are consolidated otherwise.

    Returns
    -------
    AggregatedBuckets
        Bucket lines, payable remainders and the unclassified transactions
        that fell in the period. The input is never modified, so calling
        this twice with the same arguments yields equal results.
    """
    wanted = set(company_ids) if company_ids is not None else None

    lines: list[BucketLine] = []
    payables: list[PayableRemainder] = []
    unclassified: list[NormalizedTransaction] = []
    companies: set[str] = set()
    count = 0

    for tx in transactions:
        if wanted is not None and tx.company_id not in wanted:
            continue
        if not period.contains(tx.date):
            continue
        if tx.classification is Classification.UNCLASSIFIED:
            unclassified.append(tx)
            continue

        count += 1
        companies.add(tx.company_id)
        is_invoice = tx.source_kind is SourceKind.INVOICE_REVENUE
        gross = tx.gross if tx.gross is not None else (tx.amount if tx.classification.is_flow else ZERO)
        lines.append(
            BucketLine(
                classification=tx.classification,
                source_kind=tx.source_kind,
                category=tx.category,
                subcategory=tx.subcategory,
                currency=tx.currency,
                non_cash=tx.non_cash,
                amount=tx.amount,
                gross=gross,
                cogs=tx.cogs,
                linked_expenses=tx.linked_expenses,
                count=1,
            )
        )

        if is_invoice and tx.cogs > 0:
            difference = tx.cogs - tx.linked_expenses
            remainder = PayableRemainder(
                transaction_id=tx.id,
                source_id=tx.source_id,
                currency=tx.currency,
                cogs=tx.cogs,
                paid=tx.linked_expenses,
                remaining=max(ZERO, difference),
                overpaid=max(ZERO, -difference),
            )
            if remainder.overpaid > 0:
                logger.warning(
                    "Invoice %s: linked expenses exceed COGS by %s %s",
                    tx.source_id,
                    remainder.overpaid,
                    tx.currency,
                )
            payables.append(remainder)

    logger.debug(
        "Aggregated %d transactions for %s (%d unclassified skipped)",
        count,
        period.period_id,
        len(unclassified),
    )
    return AggregatedBuckets(
        period=period,
        lines=_merge(lines),
        payables=tuple(payables),
        unclassified=tuple(unclassified),
        company_ids=tuple(sorted(companies)),
        transaction_count=count,
    )


def aggregate_by_company(
    transactions: Sequence[NormalizedTransaction],
    period: ReportingPeriod,
) -> dict[str, AggregatedBuckets]:
    """One AggregatedBuckets per company present in ``transactions``."""
    company_ids = sorted({tx.company_id for tx in transactions})
    return {cid: aggregate(transactions, period, company_ids=[cid]) for cid in company_ids}


def restrict_to_currency(
    buckets: AggregatedBuckets,
    currency: str,
    rates: Optional[RateTable] = None,
) -> tuple[AggregatedBuckets, tuple[str, ...]]:
    """
    Select or convert bucket lines into a single presentation currency.

    Without a rate table, only lines already in ``currency`` are kept. With
    a rate table, other currencies are converted; currencies without a rate
    are dropped. Payable remainders follow the same rule.

    Returns
    -------
    (buckets, excluded_currencies)
    """
    target = currency.upper()
    excluded: set[str] = set()

    def factor(code: str) -> Optional[Decimal]:
        if code == target:
            return Decimal(1)
        if rates is None:
            excluded.add(code)
            return None
        try:
            return rates.convert(Decimal(1), code, target)
        except MissingRate:
            logger.warning("No exchange rate for %s, amounts left out of the %s statement", code, target)
            excluded.add(code)
            return None

    lines: list[BucketLine] = []
    for line in buckets.lines:
        f = factor(line.currency)
        if f is None:
            continue
        lines.append(
            replace(
                line,
                currency=target,
                amount=line.amount * f,
                gross=line.gross * f,
                cogs=line.cogs * f,
                linked_expenses=line.linked_expenses * f,
            )
        )

    payables: list[PayableRemainder] = []
    for p in buckets.payables:
        f = factor(p.currency)
        if f is None:
            continue
        payables.append(
            replace(
                p,
                currency=target,
                cogs=p.cogs * f,
                paid=p.paid * f,
                remaining=p.remaining * f,
                overpaid=p.overpaid * f,
            )
        )

    restricted = replace(buckets, lines=_merge(lines), payables=tuple(payables))
    return restricted, tuple(sorted(excluded))
