from datetime import date
from decimal import Decimal

import pytest

from ledgersight.balance_sheet import build_balance_sheet
from ledgersight.config import CompanySettings
from ledgersight.engine import aggregate
from ledgersight.periods import PeriodRequest, resolve
from ledgersight.profit_loss import build_profit_loss
from ledgersight.ratios import (
    compute_derived_measures,
    compute_ratios,
    default_rules_file,
    ratios_for_statements,
    statement_measures,
)
from ledgersight.sources import BookkeepingEntry, normalize

ACME = CompanySettings(company_id="acme")
MARCH = resolve(PeriodRequest("thisMonth"), today=date(2025, 3, 15))


def _statements(records):
    txs = normalize(records, ACME)
    bs = build_balance_sheet(aggregate(txs, MARCH.as_of()), ACME)
    pl = build_profit_loss(aggregate(txs, MARCH), ACME)
    return bs, pl


def _entry(id_, type_, amount, category):
    return BookkeepingEntry(id_, "acme", date(2025, 3, 2), type_, Decimal(amount), "USD", category)


def test_basic_ratios_from_statements() -> None:
    """Basic level only contains the four basic ratios, in file order."""
    bs, pl = _statements(
        [
            _entry("a", "asset", "3000", "Cash"),
            _entry("l", "liability", "1000", "Accounts Payable"),
            _entry("q", "equity", "2000", "Share capital"),
            _entry("r", "revenue", "1000", "Sales Revenue"),
            _entry("c", "expense", "400", "COGS"),
            _entry("o", "expense", "100", "Insurance"),
        ]
    )
    ratios = {r.key: r for r in ratios_for_statements(bs, pl, level="basic")}

    assert list(ratios) == ["gross_margin_pct", "net_margin_pct", "current_ratio", "debt_to_equity"]
    assert ratios["gross_margin_pct"].value == pytest.approx(60.0)
    assert ratios["net_margin_pct"].value == pytest.approx(50.0)
    assert ratios["current_ratio"].value == pytest.approx(3.0)
    assert ratios["debt_to_equity"].value == pytest.approx(0.5)
    assert {r.level for r in ratios.values()} == {"basic"}


def test_levels_are_cumulative() -> None:
    measures = {"revenue": 100.0, "net_profit": 10.0}
    basic = compute_ratios(measures, level="basic")
    advanced = compute_ratios(measures, level="advanced")
    full = compute_ratios(measures, level="full")

    assert len(basic) < len(advanced) < len(full)
    assert {r.level for r in full} == {"basic", "advanced", "full"}


def test_undefined_ratios_are_none() -> None:
    """Missing measures and zero denominators give None, not an exception."""
    ratios = {r.key: r for r in compute_ratios({"revenue": 0.0, "gross_profit": 0.0}, level="advanced")}

    assert ratios["gross_margin_pct"].value is None
    assert ratios["current_ratio"].value is None
    assert ratios["roe_pct"].value is None


def test_statement_measures_skip_current_split_when_absent() -> None:
    bs, pl = _statements(
        [_entry("a", "asset", "500", "Machinery"), _entry("q", "equity", "500", "Share capital")]
    )
    measures = statement_measures(bs, pl)

    assert "current_assets" not in measures
    assert measures["total_assets"] == 500.0
    assert measures["net_profit"] == 0.0


def test_derived_measures_and_full_level() -> None:
    base = {
        "operating_cash_flow": 300.0,
        "investing_cash_flow": -120.0,
        "current_assets": 900.0,
        "current_liabilities": 400.0,
    }
    measures = compute_derived_measures(base, default_rules_file())

    assert measures["free_cash_flow"] == pytest.approx(180.0)
    assert measures["working_capital"] == pytest.approx(500.0)

    full = {r.key: r.value for r in compute_ratios(measures, level="full")}
    assert full["free_cash_flow"] == pytest.approx(180.0)
    assert full["working_capital"] == pytest.approx(500.0)


def test_custom_rules_file(tmp_path) -> None:
    rules = tmp_path / "rules.toml"
    rules.write_text(
        """
[measures.double_revenue]
formula = "revenue * 2"

[ratios.basic.revenue_x2]
label = "Revenue x2"
formula = "double_revenue"
unit = "amount"

[ratios.custom.only_here]
formula = "revenue / 4"
""",
        encoding="utf-8",
    )
    measures = compute_derived_measures({"revenue": 10.0}, rules)
    [ratio] = compute_ratios(measures, rules, level="basic")
    assert ratio.key == "revenue_x2"
    assert ratio.value == pytest.approx(20.0)

    [custom] = compute_ratios(measures, rules, level="custom")
    assert custom.value == pytest.approx(2.5)
    assert custom.unit == "amount"

    with pytest.raises(FileNotFoundError):
        compute_ratios({}, tmp_path / "missing.toml")
