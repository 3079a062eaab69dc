from datetime import date
from decimal import Decimal

import pytest

from ledgersight.cash_flow import build_cash_flow, reconcile
from ledgersight.config import CompanySettings
from ledgersight.engine import aggregate
from ledgersight.errors import InvalidPeriod
from ledgersight.periods import PeriodRequest, resolve
from ledgersight.sources import (
    BankTransaction,
    BookkeepingEntry,
    InvoiceRevenueEntry,
    ManualAdjustment,
    WalletTransaction,
    normalize,
)
from ledgersight.validation import StatementKind, validate

ACME = CompanySettings(company_id="acme")
MARCH = resolve(PeriodRequest("thisMonth"), today=date(2025, 3, 15))


def _records():
    return [
        InvoiceRevenueEntry(
            "inv-1", "acme", date(2025, 3, 3), Decimal("1000"), "USD",
            cogs=Decimal("200"), linked_expenses=(Decimal("150"),),
        ),
        BookkeepingEntry("e-1", "acme", date(2025, 3, 6), "expense", Decimal("120"), "USD", "Rent and utilities"),
        BookkeepingEntry("e-2", "acme", date(2025, 3, 7), "expense", Decimal("40"), "USD", "Depreciation"),
        BookkeepingEntry("e-3", "acme", date(2025, 3, 8), "expense", Decimal("700"), "USD", "Equipment", activity="investing"),
        BookkeepingEntry("e-4", "acme", date(2025, 3, 9), "revenue", Decimal("2000"), "USD", "Loan proceeds", activity="financing"),
        BankTransaction("b-1", "acme", "main", date(2025, 3, 4), "USD", incoming_amount=Decimal("500")),
        BankTransaction("b-2", "acme", "main", date(2025, 3, 5), "USD", outgoing_amount=Decimal("300")),
        BookkeepingEntry("e-5", "acme", date(2025, 3, 10), "expense", Decimal("25"), "USD", "Interest Expense"),
    ]


def _build(records, **kwargs):
    return build_cash_flow(aggregate(normalize(records, ACME), MARCH), ACME, **kwargs)


def test_direct_and_indirect_methods_agree() -> None:
    """Both methods give the same operating and net cash flow."""
    direct = _build(_records(), method="direct")
    indirect = _build(_records(), method="indirect")

    assert direct.operating_cash_flow == indirect.operating_cash_flow
    assert direct.net_cash_flow == indirect.net_cash_flow
    # 650 invoice + 500 - 300 bank - 120 rent - 25 interest
    assert direct.operating_cash_flow.amount == Decimal("705")
    assert direct.investing_cash_flow.amount == Decimal("-700")
    assert direct.financing_cash_flow.amount == Decimal("2000")
    assert direct.net_cash_flow.amount == Decimal("2005")


def test_indirect_method_lines() -> None:
    cf = _build(_records())

    # 1000 - 200 - 120 - 40 - 25
    assert cf.line("NP").current.amount == Decimal("615")
    assert cf.line("DEP").current.amount == Decimal("40")
    assert cf.line("WC_PAY").current.amount == Decimal("-150")
    assert cf.line("CFO_UNRECOGNISED").current.amount == Decimal("200")
    assert cf.net_profit.amount == Decimal("615")


def test_direct_method_lines() -> None:
    cf = _build(_records(), method="direct")

    assert cf.line("CFO_CUST").current.amount == Decimal("650")
    assert cf.line("CFO_SUPP").current.amount == Decimal("-145")
    assert cf.line("CFO_OTHER_IN").current.amount == Decimal("500")
    assert cf.line("CFO_OTHER_OUT").current.amount == Decimal("-300")
    assert cf.line("CFI:Equipment").current.amount == Decimal("-700")


def test_supplementary_disclosures() -> None:
    cf = _build(_records())
    by_code = {item.code: item.current.amount for item in cf.supplementary}
    assert by_code == {"INT_PAID": Decimal("25"), "TAX_PAID": Decimal("0")}


def test_reconciliation_with_matching_closing_balance() -> None:
    cf = _build(_records(), opening_cash=Decimal("1000"), closing_cash=Decimal("3005"))
    rec = cf.reconciliation

    assert rec.is_reconciled
    assert rec.closing_supplied
    assert rec.difference.amount == Decimal("0")


def test_omitting_a_transaction_breaks_the_reconciliation() -> None:
    """The ledger closing balance includes a 300 payment the input lacks."""
    records = [r for r in _records() if r.id != "b-2"]
    cf = _build(records, opening_cash=Decimal("1000"), closing_cash=Decimal("3005"))

    assert cf.reconciliation.is_reconciled is False
    assert cf.reconciliation.difference.amount == Decimal("-300")
    codes = {f.code for f in validate(cf, StatementKind.CASH_FLOW)}
    assert "CF_RECONCILIATION" in codes


def test_derived_closing_balance_is_flagged() -> None:
    cf = _build(_records(), opening_cash=Decimal("10"))
    assert cf.reconciliation.closing_supplied is False
    assert cf.reconciliation.closing_cash.amount == Decimal("2015")
    codes = {f.code for f in validate(cf, StatementKind.CASH_FLOW)}
    assert "CF_RECONCILIATION_DERIVED" in codes
    assert "CF_RECONCILIATION" not in codes


def test_reconcile_uses_a_strict_tolerance() -> None:
    assert reconcile(Decimal("0"), Decimal("100"), Decimal("100.009"), "USD", Decimal("0.01")).is_reconciled
    assert not reconcile(Decimal("0"), Decimal("100"), Decimal("100.01"), "USD", Decimal("0.01")).is_reconciled


def test_wallets_and_adjustments_are_cash_movements() -> None:
    records = [
        WalletTransaction("w-1", "acme", "hot", date(2025, 3, 2), "USD", incoming_amount=Decimal("80")),
        ManualAdjustment("adj-1", "acme", "main", "bank", "outflow", Decimal("5"), "USD", "2025-03", "Fees"),
    ]
    cf = _build(records, method="direct")

    assert cf.line("CFO_OTHER_IN").current.amount == Decimal("80")
    assert cf.line("CFO_OTHER_OUT").current.amount == Decimal("-5")
    assert cf.operating_cash_flow == _build(records).operating_cash_flow


def test_earnings_quality_and_no_operating_findings() -> None:
    negative = [
        InvoiceRevenueEntry(
            "inv-1", "acme", date(2025, 3, 3), Decimal("100"), "USD",
            cogs=Decimal("10"), linked_expenses=(Decimal("10"),),
        ),
        BankTransaction("b-1", "acme", "main", date(2025, 3, 4), "USD", outgoing_amount=Decimal("500")),
    ]
    codes = {f.code for f in validate(_build(negative), StatementKind.CASH_FLOW)}
    assert "CF_EARNINGS_QUALITY" in codes

    empty = _build([])
    codes = {f.code for f in validate(empty, StatementKind.CASH_FLOW)}
    assert "CF_NO_OPERATING" in codes


def test_all_time_period_and_unknown_method_are_rejected() -> None:
    all_time = resolve(PeriodRequest("allTime"), today=date(2025, 3, 15))
    with pytest.raises(InvalidPeriod):
        build_cash_flow(aggregate([], all_time), ACME)
    with pytest.raises(ValueError):
        _build([], method="magic")
