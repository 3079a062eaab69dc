# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Validation engine.

``validate(statement, kind)`` runs the rule set of one statement kind and
returns severity-tagged findings. Rules never raise on financial problems:
an unbalanced balance sheet or an unreconciled cash position is exactly what
a user generates a statement to discover.

Rule codes
----------
Balance sheet:  BS_BALANCE (error), BS_NEGATIVE_EQUITY (warning),
                BS_COMPARATIVE (info), BS_CLASSIFICATION (info)
Cash flow:      CF_RECONCILIATION (error), CF_EARNINGS_QUALITY (warning),
                CF_NO_OPERATING (warning), CF_RECONCILIATION_DERIVED (info),
                CF_COMPARATIVE (info)
P&L:            PL_NEGATIVE_GROSS_MARGIN (warning), PL_ZERO_REVENUE (info),
                PL_COMPARATIVE (info)
All kinds:      LINE_SUMS (error)
Aggregation:    UNCLASSIFIED (warning), AP_OVERPAYMENT (warning),
                CURRENCY_EXCLUDED (info)

Standard references are documentation only.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from .balance_sheet import BalanceSheetData
from .cash_flow import CashFlowData
from .config import CompanySettings, IfrsSettings
from .engine import AggregatedBuckets
from .lines import sum_mismatches
from .money import format_amount
from .profit_loss import ProfitLossData


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class StatementKind(str, Enum):
    BALANCE_SHEET = "balance-sheet"
    CASH_FLOW = "cash-flow"
    PROFIT_LOSS = "profit-loss"


@dataclass(frozen=True)
class ValidationFinding:
    code: str
    severity: Severity
    message: str
    suggestion: Optional[str] = None
    standard_reference: Optional[str] = None


StatementData = Union[BalanceSheetData, CashFlowData, ProfitLossData]
T = TypeVar("T", BalanceSheetData, CashFlowData, ProfitLossData)


@dataclass(frozen=True)
class StatementResult(Generic[T]):
    """A built statement together with its validation findings."""

    kind: StatementKind
    statement: T
    validation: tuple[ValidationFinding, ...]

    @property
    def has_errors(self) -> bool:
        return any(f.severity is Severity.ERROR for f in self.validation)

    @property
    def status(self) -> str:
        if self.has_errors:
            return "error"
        if any(f.severity is Severity.WARNING for f in self.validation):
            return "warning"
        return "ok"


# Rules that only exist for IFRS presentation; IfrsSettings.enabled = False
# switches them off.
IFRS_PRESENTATION_RULES = frozenset(
    {"BS_COMPARATIVE", "BS_CLASSIFICATION", "CF_COMPARATIVE", "CF_NO_OPERATING", "PL_COMPARATIVE"}
)


def _line_sums(statement: StatementData) -> list[ValidationFinding]:
    out = []
    for path, parent, children in sum_mismatches(statement.lines):
        out.append(
            ValidationFinding(
                code="LINE_SUMS",
                severity=Severity.ERROR,
                message=(
                    f"'{' > '.join(path)}' is {format_amount(parent, statement.currency)} "
                    f"but its lines add up to {format_amount(children, statement.currency)}."
                ),
                suggestion="Rebuild the statement; subtotals must equal the sum of their lines.",
                standard_reference="IAS 1.55",
            )
        )
    return out


def _comparative(code: str, statement: StatementData) -> list[ValidationFinding]:
    if statement.has_comparative:
        return []
    return [
        ValidationFinding(
            code=code,
            severity=Severity.INFO,
            message="No comparative period is presented.",
            suggestion="Request a comparison with the previous period.",
            standard_reference="IAS 1.38",
        )
    ]


def _balance_sheet_rules(bs: BalanceSheetData) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []
    if not bs.is_balanced:
        out.append(
            ValidationFinding(
                code="BS_BALANCE",
                severity=Severity.ERROR,
                message=(
                    f"Total assets ({bs.total_assets.formatted}) do not equal total "
                    f"liabilities ({bs.total_liabilities.formatted}) plus total equity "
                    f"({bs.total_equity.formatted}); difference {bs.difference.formatted}."
                ),
                suggestion="Look for missing or misclassified asset, liability or equity entries.",
                standard_reference="IAS 1.54",
            )
        )
    if bs.total_equity.amount < 0:
        out.append(
            ValidationFinding(
                code="BS_NEGATIVE_EQUITY",
                severity=Severity.WARNING,
                message=f"Total equity is negative ({bs.total_equity.formatted}).",
                suggestion="Assess going concern and disclose the capital position.",
                standard_reference="IAS 1.25",
            )
        )
    out.extend(_comparative("BS_COMPARATIVE", bs))
    if not bs.has_current_split:
        out.append(
            ValidationFinding(
                code="BS_CLASSIFICATION",
                severity=Severity.INFO,
                message="No asset or liability is classified as current.",
                suggestion="Set subcategories so current and non-current items are separated.",
                standard_reference="IAS 1.60",
            )
        )
    return out


def _cash_flow_rules(cf: CashFlowData) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []
    rec = cf.reconciliation
    if not rec.is_reconciled:
        out.append(
            ValidationFinding(
                code="CF_RECONCILIATION",
                severity=Severity.ERROR,
                message=(
                    f"Opening cash {rec.opening_cash.formatted} plus net cash flow "
                    f"{rec.net_cash_flow.formatted} does not match closing cash "
                    f"{rec.closing_cash.formatted} (difference {rec.formatted_difference})."
                ),
                suggestion="Check for missing bank, wallet or manual cash transactions.",
                standard_reference="IAS 7.45",
            )
        )
    if not rec.closing_supplied:
        out.append(
            ValidationFinding(
                code="CF_RECONCILIATION_DERIVED",
                severity=Severity.INFO,
                message="No closing cash balance was supplied; closing cash is derived from the flows.",
                suggestion="Pass the ledger closing balance to reconcile cash.",
                standard_reference="IAS 7.45",
            )
        )
    if cf.operating_cash_flow.amount < 0 and cf.net_profit.amount > 0:
        out.append(
            ValidationFinding(
                code="CF_EARNINGS_QUALITY",
                severity=Severity.WARNING,
                message=(
                    f"Operating cash flow is negative ({cf.operating_cash_flow.formatted}) "
                    f"while net profit is positive ({cf.net_profit.formatted})."
                ),
                suggestion="Review receivables collection and working capital.",
            )
        )
    if cf.operating_item_count == 0:
        out.append(
            ValidationFinding(
                code="CF_NO_OPERATING",
                severity=Severity.WARNING,
                message="No operating activities were recorded for the period.",
                suggestion="Check that revenue and expense entries are classified as operating.",
                standard_reference="IAS 7.13",
            )
        )
    out.extend(_comparative("CF_COMPARATIVE", cf))
    return out


def _profit_loss_rules(pl: ProfitLossData) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []
    revenue = pl.revenue.amount
    if revenue > 0 and pl.gross_profit.amount < 0:
        out.append(
            ValidationFinding(
                code="PL_NEGATIVE_GROSS_MARGIN",
                severity=Severity.WARNING,
                message=f"Gross profit is negative ({pl.gross_profit.formatted}).",
                suggestion="Review pricing and cost of sales.",
                standard_reference="IAS 1.99",
            )
        )
    expenses = (
        pl.cost_of_sales.amount + pl.operating_expenses.amount + pl.other_expenses.amount
    )
    if revenue == 0 and expenses != 0:
        out.append(
            ValidationFinding(
                code="PL_ZERO_REVENUE",
                severity=Severity.INFO,
                message="No revenue was recorded while expenses were.",
                suggestion="Check for missing revenue entries or invoices.",
            )
        )
    out.extend(_comparative("PL_COMPARATIVE", pl))
    return out


_RULES: dict[StatementKind, Callable[..., list[ValidationFinding]]] = {
    StatementKind.BALANCE_SHEET: _balance_sheet_rules,
    StatementKind.CASH_FLOW: _cash_flow_rules,
    StatementKind.PROFIT_LOSS: _profit_loss_rules,
}

_TYPES = {
    StatementKind.BALANCE_SHEET: BalanceSheetData,
    StatementKind.CASH_FLOW: CashFlowData,
    StatementKind.PROFIT_LOSS: ProfitLossData,
}


def filter_findings(
    findings: Iterable[ValidationFinding],
    ifrs: Optional[IfrsSettings],
) -> list[ValidationFinding]:
    """Drop findings switched off by the company's IFRS settings."""
    if ifrs is None:
        return list(findings)
    out = []
    for f in findings:
        if f.code in ifrs.disabled_rules:
            continue
        if not ifrs.enabled and f.code in IFRS_PRESENTATION_RULES:
            continue
        out.append(f)
    return out


def validate(
    statement: StatementData,
    kind: Union[StatementKind, str],
    settings: Optional[CompanySettings] = None,
) -> list[ValidationFinding]:
    """
    Run the rule set for ``kind`` over a built statement.

    Raises:
        ValueError: if ``kind`` is unknown.
        TypeError: if ``statement`` does not match ``kind``.
    """
    try:
        kind = StatementKind(kind)
    except ValueError:
        raise ValueError(f"Unknown statement kind: {kind!r}") from None
    if not isinstance(statement, _TYPES[kind]):
        raise TypeError(f"{type(statement).__name__} is not a {kind.value} statement.")

    findings = _line_sums(statement) + _RULES[kind](statement)
    return filter_findings(findings, settings.ifrs if settings is not None else None)


def aggregation_findings(
    buckets: AggregatedBuckets,
    excluded_currencies: Sequence[str] = (),
    settings: Optional[CompanySettings] = None,
) -> list[ValidationFinding]:
    """Findings about the input data rather than a statement."""
    out: list[ValidationFinding] = []
    if buckets.unclassified:
        n = len(buckets.unclassified)
        out.append(
            ValidationFinding(
                code="UNCLASSIFIED",
                severity=Severity.WARNING,
                message=f"{n} transaction{'s' if n != 1 else ''} could not be classified.",
                suggestion="Set a valid type or activity on the listed records: "
                + ", ".join(t.source_id for t in buckets.unclassified[:10]),
            )
        )
    for p in buckets.overpayments():
        out.append(
            ValidationFinding(
                code="AP_OVERPAYMENT",
                severity=Severity.WARNING,
                message=(
                    f"Linked expenses of invoice {p.source_id} exceed its COGS by "
                    f"{format_amount(p.overpaid, p.currency)}."
                ),
                suggestion="Check the expenses linked to this invoice.",
            )
        )
    if excluded_currencies:
        out.append(
            ValidationFinding(
                code="CURRENCY_EXCLUDED",
                severity=Severity.INFO,
                message=(
                    "Amounts in " + ", ".join(excluded_currencies)
                    + " are not included; build a statement per currency or supply exchange rates."
                ),
                standard_reference="IAS 21.39",
            )
        )
    return filter_findings(out, settings.ifrs if settings is not None else None)


def make_result(
    statement: T,
    kind: StatementKind,
    settings: Optional[CompanySettings] = None,
    extra: Iterable[ValidationFinding] = (),
) -> StatementResult[T]:
    """Validate a statement and wrap it in a StatementResult."""
    findings = list(extra) + validate(statement, kind, settings)
    return StatementResult(kind=kind, statement=statement, validation=tuple(findings))
