# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for SMB LedgerSight.

Reads ledger records from a single CSV file so the engine can be driven
from the command line. Every row carries a ``source_kind`` column that
selects the record type; the other columns used depend on that kind
(column names are case-insensitive, unused columns may be left empty):

    source_kind          required columns
    -------------------  ---------------------------------------------------
    manual-entry         id, company_id, date, type, amount, currency
                         (+ category, subcategory, description, activity)
    invoice-revenue      id, company_id, date, gross_amount, currency
                         (+ cogs, linked_expenses, category, description)
    bank-transaction     id, company_id, account_id, date, currency and at
                         least one of incoming_amount / outgoing_amount
                         (+ activity, category, description)
    wallet-transaction   same as bank-transaction, account_id is the wallet
    manual-adjustment    id, company_id, account_id, account_kind,
                         direction, amount, currency, period, description
                         (+ activity)

``linked_expenses`` is a ';'-separated list of amounts.

Any structural problem (missing column, unknown kind, invalid date or
amount) raises a ValueError naming the row and the column.
"""

import os
from decimal import Decimal
from typing import Optional, Union

import pandas as pd

from .money import to_decimal
from .sources import (
    BankTransaction,
    BookkeepingEntry,
    InvoiceRevenueEntry,
    LedgerRecord,
    ManualAdjustment,
    SourceKind,
    WalletTransaction,
)

_BASE_COLUMNS = {"source_kind", "id", "company_id", "currency"}

_REQUIRED = {
    SourceKind.MANUAL_ENTRY: ("date", "type", "amount"),
    SourceKind.INVOICE_REVENUE: ("date", "gross_amount"),
    SourceKind.BANK_TRANSACTION: ("date", "account_id"),
    SourceKind.WALLET_TRANSACTION: ("date", "account_id"),
    SourceKind.MANUAL_ADJUSTMENT: (
        "account_id",
        "account_kind",
        "direction",
        "amount",
        "period",
        "description",
    ),
}


class _Row:
    """Accessor over one CSV row with row-numbered error messages."""

    def __init__(self, number: int, data: dict[str, str]):
        self.number = number
        self.data = data

    def text(self, column: str) -> str:
        return str(self.data.get(column, "") or "").strip()

    def required(self, column: str) -> str:
        value = self.text(column)
        if not value:
            raise ValueError(f"Row {self.number}: column '{column}' is required.")
        return value

    def amount(self, column: str) -> Decimal:
        try:
            return to_decimal(self.required(column))
        except ValueError as exc:
            raise ValueError(f"Row {self.number}: invalid amount in '{column}'.") from exc

    def optional_amount(self, column: str) -> Optional[Decimal]:
        return self.amount(column) if self.text(column) else None

    def date(self, column: str = "date"):
        raw = self.required(column)
        try:
            ts = pd.to_datetime(raw, errors="raise")
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Row {self.number}: invalid date in '{column}': {raw!r}.") from exc
        # Date-only values stay dates so they are read as midnight in the
        # company timezone.
        if ts.hour == 0 and ts.minute == 0 and ts.second == 0 and ts.microsecond == 0 and ts.tzinfo is None:
            return ts.date()
        return ts.to_pydatetime()

    def amounts_list(self, column: str) -> tuple[Decimal, ...]:
        raw = self.text(column)
        if not raw:
            return ()
        try:
            return tuple(to_decimal(p) for p in raw.split(";") if p.strip())
        except ValueError as exc:
            raise ValueError(f"Row {self.number}: invalid amount in '{column}'.") from exc


def _record(row: _Row, kind: SourceKind) -> LedgerRecord:
    for column in _REQUIRED[kind]:
        row.required(column)

    common = dict(id=row.required("id"), company_id=row.required("company_id"))
    currency = row.required("currency").upper()

    if kind is SourceKind.MANUAL_ENTRY:
        return BookkeepingEntry(
            date=row.date(),
            type=row.text("type"),
            amount=row.amount("amount"),
            currency=currency,
            category=row.text("category"),
            subcategory=row.text("subcategory"),
            description=row.text("description"),
            activity=row.text("activity") or None,
            **common,
        )

    if kind is SourceKind.INVOICE_REVENUE:
        return InvoiceRevenueEntry(
            date=row.date(),
            gross_amount=row.amount("gross_amount"),
            currency=currency,
            cogs=row.optional_amount("cogs") or Decimal("0"),
            linked_expenses=row.amounts_list("linked_expenses"),
            category=row.text("category") or "Sales Revenue",
            description=row.text("description"),
            **common,
        )

    if kind in (SourceKind.BANK_TRANSACTION, SourceKind.WALLET_TRANSACTION):
        fields = dict(
            date=row.date(),
            currency=currency,
            incoming_amount=row.optional_amount("incoming_amount"),
            outgoing_amount=row.optional_amount("outgoing_amount"),
            activity=row.text("activity") or None,
            category=row.text("category"),
            description=row.text("description"),
            **common,
        )
        if kind is SourceKind.BANK_TRANSACTION:
            return BankTransaction(account_id=row.required("account_id"), **fields)
        return WalletTransaction(wallet_id=row.required("account_id"), **fields)

    amount = row.amount("amount")
    try:
        return ManualAdjustment(
            account_id=row.required("account_id"),
            account_kind=row.text("account_kind").lower(),
            direction=row.text("direction").lower(),
            amount=amount,
            currency=currency,
            period=row.text("period"),
            description=row.text("description"),
            activity=row.text("activity") or None,
            **common,
        )
    except ValueError as exc:
        raise ValueError(f"Row {row.number}: {exc}") from exc


def read_ledger_records(path: Union[str, "os.PathLike[str]"]) -> list[LedgerRecord]:
    """
    Read ledger records from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file (see module docstring for the columns).

    Returns
    -------
    list[LedgerRecord]
        One record per row, in file order.

    Raises
    ------
    ValueError
        If a base column is missing, a row has an unknown ``source_kind``
        or a required value is missing or malformed.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.lower().strip() for c in df.columns]

    missing = _BASE_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(
            "Invalid ledger records structure. Missing column(s): "
            + ", ".join(sorted(missing))
            + ". Every row needs source_kind, id, company_id and currency."
        )

    records: list[LedgerRecord] = []
    # Row numbers follow the file (header is line 1).
    for number, data in enumerate(df.to_dict(orient="records"), start=2):
        row = _Row(number, data)
        raw_kind = row.required("source_kind").lower()
        try:
            kind = SourceKind(raw_kind)
        except ValueError:
            raise ValueError(
                f"Row {number}: unknown source_kind {raw_kind!r}, expected one of "
                + ", ".join(k.value for k in SourceKind)
                + "."
            ) from None
        records.append(_record(row, kind))
    return records
