from datetime import date, datetime
from decimal import Decimal

import pytest

from ledgersight.io import read_ledger_records
from ledgersight.sources import (
    BankTransaction,
    BookkeepingEntry,
    InvoiceRevenueEntry,
    ManualAdjustment,
    WalletTransaction,
)

HEADER = (
    "source_kind,id,company_id,date,type,amount,currency,category,activity,"
    "gross_amount,cogs,linked_expenses,account_id,incoming_amount,outgoing_amount,"
    "account_kind,direction,period,description\n"
)


def _write(tmp_path, body: str):
    path = tmp_path / "records.csv"
    path.write_text(HEADER + body, encoding="utf-8")
    return path


def test_every_record_kind_is_read(tmp_path) -> None:
    """One row per kind, each mapped to its record type."""
    path = _write(
        tmp_path,
        "manual-entry,e-1,acme,2025-03-02,expense,120,usd,Insurance,,,,,,,,,,,Yearly policy\n"
        "invoice-revenue,inv-1,acme,2025-03-03,,,USD,,,1000,200,100;50,,,,,,,\n"
        "bank-transaction,b-1,acme,2025-03-04 14:30,,,USD,,,,,,main,500,,,,,\n"
        "wallet-transaction,w-1,acme,2025-03-05,,,BTC,,investing,,,,cold,,0.25,,,,\n"
        "manual-adjustment,adj-1,acme,,,75,USD,,,,,,main,,,bank,Outflow,2025-03,Bank fees\n",
    )

    entry, invoice, bank, wallet, adjustment = read_ledger_records(path)

    assert isinstance(entry, BookkeepingEntry)
    assert entry.date == date(2025, 3, 2)
    assert entry.amount == Decimal("120")
    assert entry.currency == "USD"
    assert entry.description == "Yearly policy"
    assert entry.activity is None

    assert isinstance(invoice, InvoiceRevenueEntry)
    assert invoice.linked_expenses == (Decimal("100"), Decimal("50"))
    assert invoice.cogs == Decimal("200")
    assert invoice.category == "Sales Revenue"

    assert isinstance(bank, BankTransaction)
    assert bank.date == datetime(2025, 3, 4, 14, 30)
    assert bank.incoming_amount == Decimal("500")
    assert bank.outgoing_amount is None

    assert isinstance(wallet, WalletTransaction)
    assert wallet.wallet_id == "cold"
    assert wallet.activity == "investing"

    assert isinstance(adjustment, ManualAdjustment)
    assert adjustment.direction == "outflow"
    assert adjustment.period == "2025-03"


def test_column_names_are_case_insensitive(tmp_path) -> None:
    path = tmp_path / "upper.csv"
    path.write_text(
        "Source_Kind,ID,Company_ID,Date,Type,Amount,Currency\n"
        "manual-entry,e-1,acme,2025-03-02,revenue,10,USD\n",
        encoding="utf-8",
    )
    [entry] = read_ledger_records(path)
    assert entry.type == "revenue"


@pytest.mark.parametrize(
    "row, message",
    [
        ("loan,x,acme,,,,USD,,,,,,,,,,,,\n", "unknown source_kind"),
        ("manual-entry,e-1,acme,2025-03-02,revenue,,USD,,,,,,,,,,,,\n", "'amount' is required"),
        ("manual-entry,e-1,acme,03/32/2025,revenue,1,USD,,,,,,,,,,,,\n", "invalid date"),
        ("manual-entry,e-1,acme,2025-03-02,revenue,ten,USD,,,,,,,,,,,,\n", "invalid amount"),
        ("manual-adjustment,a-1,acme,,,5,USD,,,,,,main,,,bank,inflow,2025-3,Fix\n", "YYYY-MM"),
    ],
)
def test_malformed_rows_name_the_row(tmp_path, row, message) -> None:
    path = _write(tmp_path, row)
    with pytest.raises(ValueError, match=message) as excinfo:
        read_ledger_records(path)
    assert str(excinfo.value).startswith("Row 2")


def test_missing_base_columns(tmp_path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("id,date,amount\n1,2025-01-01,10\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Missing column"):
        read_ledger_records(path)
