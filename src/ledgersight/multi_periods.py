# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Multi-period and multi-company orchestration.

One statement build (one company, one period) is one unit of work. The
records are normalized once, then every unit runs the integrated pipeline
of ``integration.generate_from_transactions``. Units are independent and
share no mutable state, so they can be fanned out over a thread pool
(``max_workers > 1``); results always come back in request order.

Results are returned as long-format DataFrames, one row per statement
line, finding or ratio, with ``period_label`` and ``company_id`` columns
for filtering, pivoting and CSV export:

- ``statements`` : period_label, company_id, statement, display_order,
                   code, level, name, type, amount, ... (see views)
- ``findings``   : period_label, company_id, statement, code, severity, ...
- ``ratios``     : period_label, company_id, key, label, value, unit, ...
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Optional, TypeVar

import pandas as pd

from .config import CompanySettings
from .integration import (
    CashBalance,
    IntegratedStatements,
    StatementOptions,
    generate_from_transactions,
    with_cash_balance,
)
from .logging_setup import get_logger
from .money import RateTable
from .periods import PeriodRequest, ReportingPeriod, resolve_with_comparison
from .sources import LedgerRecord, NormalizedTransaction, normalize
from .views import findings_to_dataframe, ratios_to_dataframe, statement_to_dataframe

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class MultiPeriodResult:
    """
    Results of a batch build.

    Attributes
    ----------
    units :
        IntegratedStatements per unit, in request order.
    statements :
        Long-format statement lines of every unit.
    findings :
        Validation and cross-statement findings of every unit.
    ratios :
        Ratios of every unit (empty unless a ratio level was requested).
    """

    units: tuple[IntegratedStatements, ...]
    statements: pd.DataFrame
    findings: pd.DataFrame
    ratios: pd.DataFrame

    def unit(self, period_label: str, company_id: Optional[str] = None) -> Optional[IntegratedStatements]:
        for u in self.units:
            if u.period.label == period_label and (company_id is None or u.company_id == company_id):
                return u
        return None


def _run(func: Callable[[T], R], items: Sequence[T], max_workers: Optional[int]) -> list[R]:
    """Map ``func`` over ``items`` preserving order, on a pool when asked."""
    if not max_workers or max_workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(func, items))


def _to_frames(units: Sequence[IntegratedStatements]) -> MultiPeriodResult:
    statement_frames: list[pd.DataFrame] = []
    finding_frames: list[pd.DataFrame] = []
    ratio_frames: list[pd.DataFrame] = []

    for u in units:
        keys = {"period_label": u.period.label, "company_id": u.company_id}
        for result in u.results():
            df = statement_to_dataframe(result.statement)
            df.insert(0, "statement", result.kind.value)
            statement_frames.append(df.assign(**keys))

            fdf = findings_to_dataframe(result.validation)
            fdf.insert(0, "statement", result.kind.value)
            finding_frames.append(fdf.assign(**keys))

        cross = findings_to_dataframe(u.cross_statement)
        cross.insert(0, "statement", "cross-statement")
        finding_frames.append(cross.assign(**keys))

        if u.ratios:
            ratio_frames.append(ratios_to_dataframe(u.ratios, decimals=None).assign(**keys))

    def concat(frames: list[pd.DataFrame]) -> pd.DataFrame:
        if not frames:
            return pd.DataFrame(columns=["period_label", "company_id"])
        df = pd.concat(frames, ignore_index=True)
        lead = ["period_label", "company_id"]
        return df[lead + [c for c in df.columns if c not in lead]]

    return MultiPeriodResult(
        units=tuple(units),
        statements=concat(statement_frames),
        findings=concat(finding_frames),
        ratios=concat(ratio_frames),
    )


def _unit_options(options: Optional[StatementOptions], caller: str) -> StatementOptions:
    options = options or StatementOptions()
    if options.opening_cash is not None or options.closing_cash is not None:
        raise ValueError(
            f"{caller}: cash balances differ per unit, pass them as cash_balances."
        )
    return options


def _check_balance_keys(cash_balances: Mapping, keys: Iterable, caller: str) -> None:
    unknown = set(cash_balances) - set(keys)
    if unknown:
        raise ValueError(
            f"{caller}: cash balances given for unknown unit(s): "
            + ", ".join(sorted(map(str, unknown)))
        )


def _resolve_all(
    requests: Sequence[PeriodRequest],
    settings: CompanySettings,
    today: Optional[date],
    max_days: Optional[int],
) -> list[tuple[ReportingPeriod, Optional[ReportingPeriod]]]:
    return [
        resolve_with_comparison(
            request,
            settings.timezone,
            today=today,
            fiscal_year_start_month=settings.fiscal_year_start_month,
            max_days=max_days,
        )
        for request in requests
    ]


def build_multi_period(
    records: Iterable[LedgerRecord],
    requests: Sequence[PeriodRequest],
    settings: CompanySettings,
    *,
    options: Optional[StatementOptions] = None,
    cash_balances: Optional[Mapping[str, CashBalance]] = None,
    rates: Optional[RateTable] = None,
    today: Optional[date] = None,
    max_days: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> MultiPeriodResult:
    """
    Build the statements of one company for several periods.

    ``cash_balances`` maps a period label to that period's (opening,
    closing) ledger cash balances. Periods without balances derive their
    closing cash.

    Raises
    ------
    ValueError
        If no period request is given, if ``options`` carries cash
        balances, or if a balance names an unknown period label.
    InvalidPeriod
        If any request is invalid (nothing is built in that case).
    """
    if not requests:
        raise ValueError("build_multi_period requires at least one period request.")
    options = _unit_options(options, "build_multi_period")
    cash_balances = cash_balances or {}

    transactions = normalize(records, settings)
    periods = _resolve_all(requests, settings, today, max_days)
    _check_balance_keys(cash_balances, (p.label for p, _ in periods), "build_multi_period")

    def unit(pair: tuple[ReportingPeriod, Optional[ReportingPeriod]]) -> IntegratedStatements:
        period, prior = pair
        return generate_from_transactions(
            transactions,
            period,
            settings,
            prior_period=prior,
            options=with_cash_balance(options, cash_balances.get(period.label)),
            rates=rates,
        )

    units = _run(unit, periods, max_workers)
    logger.debug("Built %d period(s) for %s", len(units), settings.company_id)
    return _to_frames(units)


def build_for_companies(
    records: Iterable[LedgerRecord],
    requests: Sequence[PeriodRequest],
    settings: Mapping[str, CompanySettings],
    *,
    options: Optional[StatementOptions] = None,
    cash_balances: Optional[Mapping[tuple[str, str], CashBalance]] = None,
    rates: Optional[RateTable] = None,
    today: Optional[date] = None,
    max_days: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> MultiPeriodResult:
    """
    Build statements for every (company, period) pair.

    Each company's periods are resolved in its own timezone and fiscal
    calendar. Companies are never consolidated. ``cash_balances`` is keyed
    by ``(company_id, period_label)``.

    Raises
    ------
    ValueError
        If no period request or no company is given, if ``options``
        carries cash balances, or if a balance names an unknown unit.
    MissingCompanySettings
        If a record belongs to a company without settings.
    """
    if not requests:
        raise ValueError("build_for_companies requires at least one period request.")
    if not settings:
        raise ValueError("build_for_companies requires at least one company.")
    options = _unit_options(options, "build_for_companies")
    cash_balances = cash_balances or {}

    transactions: list[NormalizedTransaction] = normalize(records, settings)

    work: list[tuple[CompanySettings, ReportingPeriod, Optional[ReportingPeriod]]] = []
    for company_id in sorted(settings):
        company = settings[company_id]
        for period, prior in _resolve_all(requests, company, today, max_days):
            work.append((company, period, prior))
    _check_balance_keys(
        cash_balances, ((c.company_id, p.label) for c, p, _ in work), "build_for_companies"
    )

    def unit(item: tuple[CompanySettings, ReportingPeriod, Optional[ReportingPeriod]]) -> IntegratedStatements:
        company, period, prior = item
        return generate_from_transactions(
            transactions,
            period,
            company,
            prior_period=prior,
            options=with_cash_balance(options, cash_balances.get((company.company_id, period.label))),
            rates=rates,
        )

    units = _run(unit, work, max_workers)
    logger.debug("Built %d unit(s) for %d companies", len(units), len(settings))
    return _to_frames(units)
