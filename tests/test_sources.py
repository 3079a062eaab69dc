from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from ledgersight.config import CompanySettings
from ledgersight.errors import MissingCompanySettings
from ledgersight.sources import (
    AccountRef,
    BankTransaction,
    BookkeepingEntry,
    Classification,
    InvoiceRevenueEntry,
    ManualAdjustment,
    SourceKind,
    WalletTransaction,
    normalize,
)

ACME = CompanySettings(company_id="acme", timezone="Europe/Paris")


def test_invoice_contributes_its_net_amount() -> None:
    """net = gross - cogs - linked expenses; gross is kept for the P&L."""
    invoice = InvoiceRevenueEntry(
        id="inv-1",
        company_id="acme",
        date=date(2025, 3, 5),
        gross_amount=Decimal("1000"),
        currency="usd",
        cogs=Decimal("200"),
        linked_expenses=(Decimal("100"), Decimal("50")),
    )

    [tx] = normalize([invoice], ACME)

    assert tx.classification is Classification.OPERATING_INFLOW
    assert tx.amount == Decimal("650")
    assert tx.gross == Decimal("1000")
    assert tx.cogs == Decimal("200")
    assert tx.linked_expenses == Decimal("150")
    assert tx.currency == "USD"
    assert tx.source_kind is SourceKind.INVOICE_REVENUE


def test_bank_transaction_with_both_legs_yields_two_transactions() -> None:
    tx = BankTransaction(
        id="b-1",
        company_id="acme",
        account_id="main",
        date=datetime(2025, 3, 5, 10, 30),
        currency="USD",
        incoming_amount=Decimal("500"),
        outgoing_amount=Decimal("300"),
    )

    legs = normalize([tx], ACME)

    assert [leg.id for leg in legs] == ["b-1:in", "b-1:out"]
    assert [leg.amount for leg in legs] == [Decimal("500"), Decimal("-300")]
    assert legs[0].classification is Classification.OPERATING_INFLOW
    assert legs[1].classification is Classification.OPERATING_OUTFLOW
    assert all(leg.account == AccountRef("main", "USD") for leg in legs)
    # Naive datetimes are read in the company timezone.
    assert legs[0].date.tzinfo == ZoneInfo("Europe/Paris")
    assert sum(leg.amount for leg in legs) == Decimal("200")


def test_wallet_balances_are_separate_accounts_per_currency() -> None:
    records = [
        WalletTransaction("w-1", "acme", "cold", date(2025, 3, 1), "BTC", incoming_amount=Decimal("0.5")),
        WalletTransaction("w-2", "acme", "cold", date(2025, 3, 1), "EUR", outgoing_amount=Decimal("20")),
    ]
    txs = normalize(records, ACME)

    assert {t.account for t in txs} == {AccountRef("cold", "BTC"), AccountRef("cold", "EUR")}
    assert txs[1].amount == Decimal("-20")


def test_bookkeeping_entries_by_type_and_activity() -> None:
    """Revenue is positive, expenses negative; depreciation is non-cash."""
    entries = [
        BookkeepingEntry("e-1", "acme", date(2025, 3, 1), "revenue", Decimal("-400"), "USD", "Consulting"),
        BookkeepingEntry("e-2", "acme", date(2025, 3, 2), "expense", Decimal("120"), "USD", "Depreciation - vans"),
        BookkeepingEntry("e-3", "acme", date(2025, 3, 3), "expense", Decimal("900"), "USD", "Equipment", activity="Investing"),
        BookkeepingEntry("e-4", "acme", date(2025, 3, 4), "liability", Decimal("300"), "USD", "Loan"),
    ]
    revenue, depreciation, capex, loan = normalize(entries, ACME)

    assert revenue.amount == Decimal("400")
    assert revenue.classification is Classification.OPERATING_INFLOW
    assert depreciation.amount == Decimal("-120")
    assert depreciation.non_cash is True
    assert capex.classification is Classification.INVESTING_OUTFLOW
    assert capex.non_cash is False
    assert loan.classification is Classification.LIABILITY


def test_unknown_type_or_activity_is_unclassified() -> None:
    entries = [
        BookkeepingEntry("e-1", "acme", date(2025, 3, 1), "gift", Decimal("10"), "USD"),
        BookkeepingEntry("e-2", "acme", date(2025, 3, 1), "expense", Decimal("10"), "USD", activity="hobby"),
        BankTransaction("b-1", "acme", "main", date(2025, 3, 1), "USD"),
    ]
    txs = normalize(entries, ACME)

    assert [t.classification for t in txs] == [Classification.UNCLASSIFIED] * 3
    assert "unknown entry type" in txs[0].description


def test_manual_adjustment_is_dated_on_first_day_of_its_month() -> None:
    adj = ManualAdjustment(
        id="adj-1",
        company_id="acme",
        account_id="main",
        account_kind="bank",
        direction="outflow",
        amount=Decimal("75"),
        currency="USD",
        period="2025-03",
        description="Bank fees",
    )
    [tx] = normalize([adj], ACME)

    assert tx.date == datetime(2025, 3, 1, tzinfo=ZoneInfo("Europe/Paris"))
    assert tx.amount == Decimal("-75")
    assert tx.source_kind is SourceKind.MANUAL_ADJUSTMENT


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": Decimal("0")},
        {"period": "2025-13"},
        {"direction": "sideways"},
        {"account_kind": "safe"},
        {"description": "  "},
    ],
)
def test_manual_adjustment_validation(overrides) -> None:
    fields = dict(
        id="adj-1",
        company_id="acme",
        account_id="main",
        account_kind="bank",
        direction="inflow",
        amount=Decimal("10"),
        currency="USD",
        period="2025-03",
        description="Correction",
    )
    fields.update(overrides)
    with pytest.raises(ValueError):
        ManualAdjustment(**fields)


def test_records_of_unknown_company_are_rejected() -> None:
    entry = BookkeepingEntry("e-1", "other", date(2025, 3, 1), "revenue", Decimal("1"), "USD")
    with pytest.raises(MissingCompanySettings) as excinfo:
        normalize([entry], ACME)
    assert excinfo.value.company_id == "other"

    other = CompanySettings(company_id="other")
    assert len(normalize([entry], {"acme": ACME, "other": other})) == 1
