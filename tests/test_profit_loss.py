from datetime import date
from decimal import Decimal

import pytest

from ledgersight.config import CompanySettings
from ledgersight.engine import aggregate
from ledgersight.lines import find
from ledgersight.periods import PeriodRequest, resolve
from ledgersight.profit_loss import build_profit_loss
from ledgersight.sources import BankTransaction, BookkeepingEntry, InvoiceRevenueEntry, normalize

ACME = CompanySettings(company_id="acme")
MARCH = resolve(PeriodRequest("thisMonth"), today=date(2025, 3, 15))


def _entry(id_, type_, amount, category, subcategory=""):
    return BookkeepingEntry(id_, "acme", date(2025, 3, 10), type_, Decimal(amount), "USD", category, subcategory)


def _build(records, **kwargs):
    return build_profit_loss(aggregate(normalize(records, ACME), MARCH), ACME, **kwargs)


def test_invoice_gross_feeds_revenue_and_cogs_feeds_cost_of_sales() -> None:
    """Gross 1000 with COGS 200 gives a gross profit of 800."""
    invoice = InvoiceRevenueEntry(
        "inv-1", "acme", date(2025, 3, 3), Decimal("1000"), "USD",
        cogs=Decimal("200"), linked_expenses=(Decimal("150"),),
    )
    bank = BankTransaction("b-1", "acme", "main", date(2025, 3, 4), "USD", incoming_amount=Decimal("500"))
    pl = _build([invoice, bank])

    assert pl.revenue.amount == Decimal("1000")
    assert pl.cost_of_sales.amount == Decimal("200")
    assert pl.gross_profit.amount == Decimal("800")
    # Bank movements have no P&L counterpart.
    assert pl.net_profit.amount == Decimal("800")
    assert find(pl.lines, "PL_COST_OF_SALES:Invoice COGS").current.amount == Decimal("200")
    assert pl.gross_margin_pct == Decimal("80.00")


def test_sections_subtotals_and_margins() -> None:
    pl = _build(
        [
            _entry("r1", "revenue", "2000", "Sales Revenue"),
            _entry("r2", "income", "100", "Interest Income"),
            _entry("c1", "expense", "500", "COGS"),
            _entry("o1", "expense", "300", "Rent and utilities"),
            _entry("o2", "expense", "50", "Depreciation - laptops"),
            _entry("x1", "expense", "150", "Interest Expense"),
        ]
    )

    assert pl.revenue.amount == Decimal("2000")
    assert pl.other_income.amount == Decimal("100")
    assert pl.cost_of_sales.amount == Decimal("500")
    assert pl.operating_expenses.amount == Decimal("350")
    assert pl.other_expenses.amount == Decimal("150")
    assert pl.gross_profit.amount == Decimal("1500")
    assert pl.operating_income.amount == Decimal("1150")
    assert pl.net_profit.amount == Decimal("1100")
    assert pl.operating_margin_pct == Decimal("57.50")
    assert pl.net_margin_pct == Decimal("55.00")


def test_zero_revenue_leaves_margins_undefined() -> None:
    pl = _build([_entry("o1", "expense", "300", "Rent and utilities")])

    assert pl.revenue.amount == Decimal("0")
    assert pl.net_profit.amount == Decimal("-300")
    assert pl.gross_margin_pct is None
    assert pl.net_margin_pct is None


def test_group_by_subcategory() -> None:
    records = [
        _entry("o1", "expense", "100", "Payroll and benefits", "Salaries"),
        _entry("o2", "expense", "40", "Payroll and benefits", "Bonuses"),
    ]
    by_category = _build(records)
    by_sub = _build(records, group_by="subcategory")

    opex = find(by_category.lines, "PL_OPEX")
    assert [c.label for c in opex.children] == ["Payroll and benefits"]
    opex_sub = find(by_sub.lines, "PL_OPEX")
    assert [c.label for c in opex_sub.children] == ["Bonuses", "Salaries"]

    with pytest.raises(ValueError):
        _build(records, group_by="month")


def test_other_currencies_are_excluded_without_rates() -> None:
    records = [
        _entry("r1", "revenue", "100", "Sales Revenue"),
        BookkeepingEntry("r2", "acme", date(2025, 3, 10), "revenue", Decimal("50"), "EUR", "Sales Revenue"),
    ]
    pl = _build(records)

    assert pl.revenue.amount == Decimal("100")
    assert pl.excluded_currencies == ("EUR",)
