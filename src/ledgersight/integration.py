# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Integrated statement generation.

``generate_statements()`` runs the whole pipeline for one company and one
period request:

    normalize -> resolve (+ comparison period) -> aggregate
              -> build balance sheet / P&L / cash flow
              -> attach comparatives -> validate
              -> cross-statement checks -> summary

The balance sheet is built from cumulative buckets (``period.as_of()``);
the P&L and the cash flow from the period buckets.

Cross-statement checks
----------------------
PL_BS_LINKAGE      info     net profit not reflected in the retained earnings line (IAS 1.106)
CF_BS_CASH         error    cash movement does not reconcile (IAS 7.45)
PL_CF_NET_PROFIT   error    net profit differs between P&L and cash flow (IAS 7.18)
COMPLETE_SET       warning  not all three statements were generated (IAS 1.10)
PERIOD_MISMATCH    error    statements cover different periods
CURRENCY_MISMATCH  error    statements are presented in different currencies
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from .balance_sheet import BalanceSheetData, build_balance_sheet
from .cash_flow import CashFlowData, build_cash_flow
from .comparison import attach_comparatives
from .config import CompanySettings
from .engine import AggregatedBuckets, aggregate
from .logging_setup import get_logger
from .money import RateTable, format_amount, to_decimal
from .periods import PeriodRequest, ReportingPeriod, resolve_with_comparison
from .profit_loss import ProfitLossData, build_profit_loss
from .ratios import RatioResult, ratios_for_statements
from .sources import LedgerRecord, NormalizedTransaction, normalize
from .validation import (
    Severity,
    StatementKind,
    StatementResult,
    ValidationFinding,
    aggregation_findings,
    filter_findings,
    make_result,
)

logger = get_logger(__name__)

ALL_STATEMENTS = (
    StatementKind.BALANCE_SHEET,
    StatementKind.PROFIT_LOSS,
    StatementKind.CASH_FLOW,
)

_RETAINED_KEYWORDS = ("retained", "profit for the period")
_LINK_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class StatementOptions:
    """What to build and how.

    Attributes:
        statements: Statement kinds to build (all three by default).
        method: Cash flow method, 'indirect' or 'direct'.
        group_by: P&L breakdown, 'category' or 'subcategory'.
        currency: Presentation currency (functional currency by default).
        opening_cash, closing_cash: Ledger cash balances for the cash flow
            reconciliation. They belong to one company, one period and the
            presentation currency; batch builds take per-unit balances instead.
        profit_in_equity: Add the period's net profit to balance sheet
            equity as 'Profit for the period'.
        ratios_level: When set, ratios of that level are computed.
        ratios_rules_file: Ratio rules (packaged default when None).
    """

    statements: tuple[StatementKind, ...] = ALL_STATEMENTS
    method: str = "indirect"
    group_by: str = "category"
    currency: Optional[str] = None
    opening_cash: Optional[Decimal] = None
    closing_cash: Optional[Decimal] = None
    profit_in_equity: bool = False
    ratios_level: Optional[str] = None
    ratios_rules_file: Optional[Path] = None


# (opening cash, closing cash) of one statement set.
CashBalance = tuple[Optional[Decimal], Optional[Decimal]]


def with_cash_balance(options: StatementOptions, balance: Optional[CashBalance]) -> StatementOptions:
    """Return ``options`` carrying the ledger cash balances of one unit.

    Without a balance, both are cleared and the closing cash is derived.
    """
    opening, closing = balance if balance is not None else (None, None)
    return replace(
        options,
        opening_cash=to_decimal(opening) if opening is not None else None,
        closing_cash=to_decimal(closing) if closing is not None else None,
    )


@dataclass(frozen=True)
class Highlight:
    metric: str
    status: str
    message: str


@dataclass(frozen=True)
class StatementsSummary:
    key_metrics: dict[str, Optional[Decimal]]
    highlights: tuple[Highlight, ...]


@dataclass(frozen=True)
class IntegratedStatements:
    """Statements of one company and period, with all findings."""

    company_id: str
    period: ReportingPeriod
    prior_period: Optional[ReportingPeriod]
    currency: str
    balance_sheet: Optional[StatementResult[BalanceSheetData]]
    profit_loss: Optional[StatementResult[ProfitLossData]]
    cash_flow: Optional[StatementResult[CashFlowData]]
    cross_statement: tuple[ValidationFinding, ...]
    summary: StatementsSummary
    ratios: tuple[RatioResult, ...] = field(default_factory=tuple)

    def results(self) -> list[StatementResult]:
        return [r for r in (self.balance_sheet, self.profit_loss, self.cash_flow) if r is not None]

    @property
    def findings(self) -> tuple[ValidationFinding, ...]:
        out: list[ValidationFinding] = []
        for result in self.results():
            out.extend(result.validation)
        out.extend(self.cross_statement)
        return tuple(out)

    @property
    def status(self) -> str:
        severities = {f.severity for f in self.findings}
        if Severity.ERROR in severities:
            return "error"
        if Severity.WARNING in severities:
            return "warning"
        return "ok"


def _cross_statement_findings(
    bs: Optional[BalanceSheetData],
    pl: Optional[ProfitLossData],
    cf: Optional[CashFlowData],
) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []

    if bs is not None and pl is not None and pl.net_profit.amount != 0:
        retained = [
            item
            for item in _equity_leaves(bs)
            if any(k in item.label.lower() for k in _RETAINED_KEYWORDS)
        ]
        movement = sum(
            (
                (item.variance_absolute.amount if item.variance_absolute is not None else item.current.amount)
                for item in retained
            ),
            Decimal("0"),
        )
        # Only checked when equity carries a retained earnings line.
        if retained and abs(movement - pl.net_profit.amount) > _LINK_TOLERANCE:
            out.append(
                ValidationFinding(
                    code="PL_BS_LINKAGE",
                    severity=Severity.INFO,
                    message=(
                        f"Net profit ({pl.net_profit.formatted}) is not fully reflected in the "
                        f"retained earnings movement ({format_amount(movement, bs.currency)})."
                    ),
                    suggestion="Consider dividends and other equity movements.",
                    standard_reference="IAS 1.106",
                )
            )

    if bs is not None and cf is not None:
        rec = cf.reconciliation
        if rec.closing_supplied and not rec.is_reconciled:
            out.append(
                ValidationFinding(
                    code="CF_BS_CASH",
                    severity=Severity.ERROR,
                    message=(
                        "Cash movement in the cash flow statement does not reconcile with "
                        f"the closing cash position (difference {rec.formatted_difference})."
                    ),
                    suggestion="Review cash and cash equivalents classification.",
                    standard_reference="IAS 7.45",
                )
            )

    if pl is not None and cf is not None and cf.method == "indirect":
        np_line = cf.line("NP")
        if np_line is not None and abs(np_line.current.amount - pl.net_profit.amount) > _LINK_TOLERANCE:
            out.append(
                ValidationFinding(
                    code="PL_CF_NET_PROFIT",
                    severity=Severity.ERROR,
                    message=(
                        f"Net profit in the cash flow statement ({np_line.current.formatted}) "
                        f"does not match the P&L ({pl.net_profit.formatted})."
                    ),
                    suggestion="Build both statements from the same records and currency.",
                    standard_reference="IAS 7.18",
                )
            )

    built = [s for s in (bs, pl, cf) if s is not None]
    if len(built) < 3:
        out.append(
            ValidationFinding(
                code="COMPLETE_SET",
                severity=Severity.WARNING,
                message="A complete set of financial statements was not generated.",
                suggestion="Generate the balance sheet, P&L and cash flow statement together.",
                standard_reference="IAS 1.10",
            )
        )

    period_ends = {s.period.end for s in built}
    flow_periods = {s.period.period_id for s in (pl, cf) if s is not None}
    if len(period_ends) > 1 or len(flow_periods) > 1:
        out.append(
            ValidationFinding(
                code="PERIOD_MISMATCH",
                severity=Severity.ERROR,
                message="The statements do not cover the same reporting period.",
                suggestion="Build every statement from the same period request.",
            )
        )

    currencies = sorted({s.currency for s in built})
    if len(currencies) > 1:
        out.append(
            ValidationFinding(
                code="CURRENCY_MISMATCH",
                severity=Severity.ERROR,
                message="The statements are presented in different currencies: " + ", ".join(currencies) + ".",
                suggestion="Use a single presentation currency.",
            )
        )
    return out


def _equity_leaves(bs: BalanceSheetData):
    for item in bs.lines:
        if item.code == "BS_EQUITY":
            return item.children
    return ()


def _pct(numerator: Decimal, denominator: Optional[Decimal]) -> Optional[Decimal]:
    if denominator is None or denominator <= 0:
        return None
    return (numerator / denominator * Decimal("100")).quantize(Decimal("0.01"))


def summarize(
    bs: Optional[BalanceSheetData],
    pl: Optional[ProfitLossData],
    cf: Optional[CashFlowData],
) -> StatementsSummary:
    """Key metrics and highlights of a statement set."""
    metrics: dict[str, Optional[Decimal]] = {
        "total_assets": None,
        "total_liabilities": None,
        "total_equity": None,
        "revenue": None,
        "net_profit": None,
        "operating_cash_flow": None,
        "current_ratio": None,
        "debt_to_equity": None,
        "return_on_assets_pct": None,
        "return_on_equity_pct": None,
    }
    currency = next((s.currency for s in (bs, pl, cf) if s is not None), "USD")

    if bs is not None:
        metrics["total_assets"] = bs.total_assets.amount
        metrics["total_liabilities"] = bs.total_liabilities.amount
        metrics["total_equity"] = bs.total_equity.amount
        for key in ("current_ratio", "debt_to_equity"):
            r = bs.ratio(key)
            if r is not None and r.value is not None:
                metrics[key] = Decimal(str(round(r.value, 4)))

    if pl is not None:
        metrics["revenue"] = pl.revenue.amount
        metrics["net_profit"] = pl.net_profit.amount
        metrics["return_on_assets_pct"] = _pct(pl.net_profit.amount, metrics["total_assets"])
        metrics["return_on_equity_pct"] = _pct(pl.net_profit.amount, metrics["total_equity"])

    if cf is not None:
        metrics["operating_cash_flow"] = cf.operating_cash_flow.amount

    highlights: list[Highlight] = []

    net = metrics["net_profit"]
    if net is not None and net > 0:
        highlights.append(Highlight("Profitability", "positive", f"Net profit of {format_amount(net, currency)}"))
    elif net is not None and net < 0:
        highlights.append(Highlight("Profitability", "negative", f"Net loss of {format_amount(-net, currency)}"))

    cr = metrics["current_ratio"]
    if cr is not None and cr > 2:
        highlights.append(Highlight("Liquidity", "positive", f"Strong liquidity with current ratio of {cr:.2f}"))
    elif cr is not None and cr < 1:
        highlights.append(Highlight("Liquidity", "warning", f"Liquidity concern with current ratio of {cr:.2f}"))

    ocf = metrics["operating_cash_flow"]
    if ocf is not None and ocf > 0:
        highlights.append(
            Highlight("Cash generation", "positive", f"Positive operating cash flow of {format_amount(ocf, currency)}")
        )
    elif ocf is not None and ocf < 0:
        highlights.append(
            Highlight("Cash generation", "warning", f"Negative operating cash flow of {format_amount(-ocf, currency)}")
        )

    return StatementsSummary(key_metrics=metrics, highlights=tuple(highlights))


def _build_set(
    period_buckets: AggregatedBuckets,
    position_buckets: AggregatedBuckets,
    settings: CompanySettings,
    options: StatementOptions,
    rates: Optional[RateTable],
    *,
    opening_cash: Optional[Decimal],
    closing_cash: Optional[Decimal],
) -> tuple[Optional[BalanceSheetData], Optional[ProfitLossData], Optional[CashFlowData]]:
    wanted = set(options.statements)
    pl = cf = bs = None

    if StatementKind.PROFIT_LOSS in wanted or options.profit_in_equity:
        pl = build_profit_loss(
            period_buckets, settings, currency=options.currency, rates=rates, group_by=options.group_by
        )
    if StatementKind.CASH_FLOW in wanted:
        cf = build_cash_flow(
            period_buckets,
            settings,
            method=options.method,
            opening_cash=opening_cash,
            closing_cash=closing_cash,
            currency=options.currency,
            rates=rates,
        )
    if StatementKind.BALANCE_SHEET in wanted:
        bs = build_balance_sheet(
            position_buckets,
            settings,
            currency=options.currency,
            rates=rates,
            profit_for_period=pl.net_profit.amount if options.profit_in_equity and pl is not None else None,
        )
    if StatementKind.PROFIT_LOSS not in wanted:
        pl = None
    return bs, pl, cf


def generate_from_transactions(
    transactions: Sequence[NormalizedTransaction],
    period: ReportingPeriod,
    settings: CompanySettings,
    *,
    prior_period: Optional[ReportingPeriod] = None,
    options: Optional[StatementOptions] = None,
    rates: Optional[RateTable] = None,
) -> IntegratedStatements:
    """Build, compare and validate statements from normalized transactions."""
    options = options or StatementOptions()
    company = [settings.company_id]

    period_buckets = aggregate(transactions, period, company_ids=company)
    position_buckets = aggregate(transactions, period.as_of(), company_ids=company)
    bs, pl, cf = _build_set(
        period_buckets,
        position_buckets,
        settings,
        options,
        rates,
        opening_cash=options.opening_cash,
        closing_cash=options.closing_cash,
    )

    if prior_period is not None:
        prior_bs, prior_pl, prior_cf = _build_set(
            aggregate(transactions, prior_period, company_ids=company),
            aggregate(transactions, prior_period.as_of(), company_ids=company),
            settings,
            options,
            rates,
            opening_cash=None,
            closing_cash=None,
        )
        if bs is not None:
            bs = attach_comparatives(bs, prior_bs)
        if pl is not None:
            pl = attach_comparatives(pl, prior_pl)
        if cf is not None:
            cf = attach_comparatives(cf, prior_cf)

    built = [s for s in (bs, pl, cf) if s is not None]
    excluded = sorted({c for s in built for c in s.excluded_currencies})
    data_findings = aggregation_findings(period_buckets, excluded, settings)

    results: dict[StatementKind, StatementResult] = {}
    first = True
    for kind, statement in (
        (StatementKind.BALANCE_SHEET, bs),
        (StatementKind.PROFIT_LOSS, pl),
        (StatementKind.CASH_FLOW, cf),
    ):
        if statement is None:
            continue
        # Input-data findings are reported once, on the first statement.
        results[kind] = make_result(statement, kind, settings, extra=data_findings if first else ())
        first = False

    cross = filter_findings(_cross_statement_findings(bs, pl, cf), settings.ifrs)

    ratios: tuple[RatioResult, ...] = ()
    if options.ratios_level:
        ratios = tuple(
            ratios_for_statements(
                bs, pl, cf, rules_file=options.ratios_rules_file, level=options.ratios_level
            )
        )

    currency = built[0].currency if built else (options.currency or settings.functional_currency).upper()
    integrated = IntegratedStatements(
        company_id=settings.company_id,
        period=period,
        prior_period=prior_period,
        currency=currency,
        balance_sheet=results.get(StatementKind.BALANCE_SHEET),
        profit_loss=results.get(StatementKind.PROFIT_LOSS),
        cash_flow=results.get(StatementKind.CASH_FLOW),
        cross_statement=tuple(cross),
        summary=summarize(bs, pl, cf),
        ratios=ratios,
    )
    logger.debug(
        "Generated %d statement(s) for %s over %s: %s",
        len(built),
        settings.company_id,
        period.period_id,
        integrated.status,
    )
    return integrated


def generate_statements(
    records: Iterable[LedgerRecord],
    request: PeriodRequest,
    settings: CompanySettings,
    *,
    options: Optional[StatementOptions] = None,
    rates: Optional[RateTable] = None,
    today: Optional[date] = None,
    max_days: Optional[int] = None,
) -> IntegratedStatements:
    """
    Generate the integrated statements of one company.

    Parameters
    ----------
    records:
        Raw ledger records of the company.
    request:
        Period request, optionally with a comparison mode.
    settings:
        The company's settings.
    options:
        StatementOptions (all statements, indirect method by default).
    rates:
        Optional exchange-rate table for the presentation currency.
    today, max_days:
        Passed to the period resolver.

    Raises
    ------
    InvalidPeriod
        If the request is invalid, or a cash flow is requested for an
        all-time period.
    MissingCompanySettings
        If a record belongs to another company.
    """
    transactions = normalize(records, settings)
    period, prior = resolve_with_comparison(
        request,
        settings.timezone,
        today=today,
        fiscal_year_start_month=settings.fiscal_year_start_month,
        max_days=max_days,
    )
    return generate_from_transactions(
        transactions, period, settings, prior_period=prior, options=options, rates=rates
    )


def generate_per_currency(
    records: Iterable[LedgerRecord],
    request: PeriodRequest,
    settings: CompanySettings,
    *,
    options: Optional[StatementOptions] = None,
    cash_balances: Optional[Mapping[str, CashBalance]] = None,
    today: Optional[date] = None,
    max_days: Optional[int] = None,
) -> dict[str, IntegratedStatements]:
    """
    One statement set per currency found in the records (no conversion).

    ``cash_balances`` maps a currency to its (opening, closing) ledger cash
    balances. Balances set on ``options`` belong to the presentation
    currency (the functional currency unless ``options.currency`` is set).
    Currencies without balances derive their closing cash.
    """
    options = options or StatementOptions()
    balances = {c.upper(): b for c, b in (cash_balances or {}).items()}
    presentation = (options.currency or settings.functional_currency).upper()
    if options.opening_cash is not None or options.closing_cash is not None:
        balances.setdefault(presentation, (options.opening_cash, options.closing_cash))
    transactions = normalize(records, settings)
    period, prior = resolve_with_comparison(
        request,
        settings.timezone,
        today=today,
        fiscal_year_start_month=settings.fiscal_year_start_month,
        max_days=max_days,
    )
    currencies = sorted({t.currency for t in transactions}) or [settings.functional_currency]
    out: dict[str, IntegratedStatements] = {}
    for ccy in currencies:
        per_ccy = with_cash_balance(replace(options, currency=ccy), balances.get(ccy))
        out[ccy] = generate_from_transactions(
            transactions, period, settings, prior_period=prior, options=per_ccy
        )
    return out

