from dataclasses import replace
from datetime import date
from decimal import Decimal

from ledgersight.balance_sheet import build_balance_sheet, safe_ratio
from ledgersight.config import CompanySettings, IfrsSettings
from ledgersight.engine import aggregate
from ledgersight.lines import find
from ledgersight.periods import PeriodRequest, resolve
from ledgersight.sources import BookkeepingEntry, normalize
from ledgersight.validation import Severity, StatementKind, validate

ACME = CompanySettings(company_id="acme")
AS_OF_MARCH = resolve(PeriodRequest("thisMonth"), today=date(2025, 3, 15)).as_of()


def _entry(id_, type_, amount, category, subcategory="", day=date(2025, 3, 1)):
    return BookkeepingEntry(id_, "acme", day, type_, Decimal(amount), "USD", category, subcategory)


def _build(records, settings=ACME, **kwargs):
    return build_balance_sheet(aggregate(normalize(records, settings), AS_OF_MARCH), settings, **kwargs)


def test_unbalanced_balance_sheet_reports_a_balance_error() -> None:
    """1500 of assets against 300 + 1100 leaves a 100 difference."""
    bs = _build(
        [
            _entry("a1", "asset", "1000", "Cash"),
            _entry("a2", "asset", "500", "Accounts Receivable"),
            _entry("l1", "liability", "300", "Accounts Payable"),
            _entry("q1", "equity", "1100", "Share capital"),
        ]
    )

    assert bs.total_assets.amount == Decimal("1500")
    assert bs.total_liabilities.amount == Decimal("300")
    assert bs.total_equity.amount == Decimal("1100")
    assert bs.difference.amount == Decimal("100")
    assert bs.is_balanced is False

    findings = validate(bs, StatementKind.BALANCE_SHEET, ACME)
    [balance] = [f for f in findings if f.code == "BS_BALANCE"]
    assert balance.severity is Severity.ERROR
    assert balance.standard_reference == "IAS 1.54"


def test_balanced_sheet_with_current_split_and_ratios() -> None:
    bs = _build(
        [
            _entry("a1", "asset", "1000", "Cash"),
            _entry("a2", "asset", "2000", "Machinery"),
            _entry("l1", "liability", "500", "Accounts Payable"),
            _entry("l2", "liability", "1000", "Bank loan", "Long-term debt"),
            _entry("q1", "equity", "1500", "Share capital"),
        ]
    )

    assert bs.is_balanced
    assert bs.current_assets.amount == Decimal("1000")
    assert bs.current_liabilities.amount == Decimal("500")
    assert find(bs.lines, "BS_NON_CURRENT_LIABILITIES").current.amount == Decimal("1000")
    assert bs.ratio("current_ratio").value == 2.0
    assert bs.ratio("debt_to_equity").value == 1.0
    assert not [f for f in validate(bs, StatementKind.BALANCE_SHEET) if f.severity is Severity.ERROR]


def test_ratios_are_not_available_without_the_needed_sides() -> None:
    """No liabilities and no current split: both ratios are N/A (None)."""
    bs = _build(
        [
            _entry("a1", "asset", "800", "Machinery"),
            _entry("q1", "equity", "800", "Share capital"),
        ]
    )

    assert bs.ratio("current_ratio").value is None
    assert bs.ratio("debt_to_equity").value is None
    assert not bs.has_current_split
    codes = {f.code for f in validate(bs, StatementKind.BALANCE_SHEET)}
    assert "BS_CLASSIFICATION" in codes


def test_position_is_cumulative_up_to_period_end() -> None:
    bs = _build(
        [
            _entry("a0", "asset", "100", "Cash", day=date(2024, 6, 1)),
            _entry("a1", "asset", "50", "Cash", day=date(2025, 3, 31)),
            _entry("a2", "asset", "999", "Cash", day=date(2025, 4, 1)),
            _entry("q1", "equity", "150", "Share capital", day=date(2024, 6, 1)),
        ]
    )
    assert bs.total_assets.amount == Decimal("150")
    assert bs.is_balanced


def test_profit_for_the_period_and_tolerance() -> None:
    records = [
        _entry("a1", "asset", "1000.005", "Cash"),
        _entry("q1", "equity", "900", "Share capital"),
    ]
    bs = _build(records, profit_for_period=Decimal("100"))
    labels = [c.label for c in find(bs.lines, "BS_EQUITY").children]
    assert labels == ["Profit for the period", "Share capital"]
    assert bs.is_balanced  # 0.005 is within the default 0.01 tolerance

    strict = replace(ACME, ifrs=IfrsSettings(balance_tolerance=Decimal("0.001")))
    assert not _build(records, settings=strict, profit_for_period=Decimal("100")).is_balanced


def test_negative_equity_warning() -> None:
    bs = _build(
        [
            _entry("l1", "liability", "500", "Accounts Payable"),
            _entry("q1", "equity", "-500", "Accumulated losses"),
        ]
    )
    assert bs.is_balanced
    findings = {f.code: f for f in validate(bs, StatementKind.BALANCE_SHEET)}
    assert findings["BS_NEGATIVE_EQUITY"].severity is Severity.WARNING


def test_safe_ratio() -> None:
    assert safe_ratio(Decimal("3"), Decimal("2")) == 1.5
    assert safe_ratio(Decimal("3"), Decimal("0")) is None
    assert safe_ratio(None, Decimal("2")) is None
