# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Ledger source adapter.

The surrounding application stores money movements in several shapes:

- manual bookkeeping entries (a ``type`` of revenue/expense/asset/...),
- invoice-derived revenue entries (gross amount with COGS and linked
  expenses),
- bank transactions (separate incoming/outgoing amounts),
- digital-wallet transactions (one wallet, several currencies),
- manual cashflow adjustments (keyed by a ``YYYY-MM`` period).

Each shape has its own record type below. ``normalize()`` converts a list of
such records into NormalizedTransaction objects sharing one sign convention:
inflows are positive, outflows negative.

Invoice revenue entries are netted: the transaction amount (which feeds
operating cash flow) is ``gross - cogs - sum(linked expenses)``, while the
gross amount is kept on the transaction for P&L revenue.

Records whose classification hint is missing or unknown are returned with
the ``unclassified`` classification. Aggregation skips them and validation
reports how many there were.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .config import CompanySettings
from .errors import MissingCompanySettings
from .logging_setup import get_logger
from .mapping import is_non_cash
from .money import ZERO, to_decimal

logger = get_logger(__name__)

_PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

ACTIVITIES = ("operating", "investing", "financing")


class Classification(str, Enum):
    OPERATING_INFLOW = "operating-inflow"
    OPERATING_OUTFLOW = "operating-outflow"
    INVESTING_INFLOW = "investing-inflow"
    INVESTING_OUTFLOW = "investing-outflow"
    FINANCING_INFLOW = "financing-inflow"
    FINANCING_OUTFLOW = "financing-outflow"
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    UNCLASSIFIED = "unclassified"

    @property
    def is_flow(self) -> bool:
        return self.value.endswith(("-inflow", "-outflow"))

    @property
    def is_inflow(self) -> bool:
        return self.value.endswith("-inflow")

    @property
    def is_outflow(self) -> bool:
        return self.value.endswith("-outflow")

    @property
    def activity(self) -> Optional[str]:
        """'operating', 'investing' or 'financing' for flows, else None."""
        if not self.is_flow:
            return None
        return self.value.split("-", 1)[0]

    @classmethod
    def flow(cls, activity: str, inflow: bool) -> "Classification":
        return cls(f"{activity}-{'inflow' if inflow else 'outflow'}")


class SourceKind(str, Enum):
    MANUAL_ENTRY = "manual-entry"
    INVOICE_REVENUE = "invoice-revenue"
    BANK_TRANSACTION = "bank-transaction"
    WALLET_TRANSACTION = "wallet-transaction"
    MANUAL_ADJUSTMENT = "manual-adjustment"


DateLike = Union[date, datetime]


@dataclass(frozen=True)
class AccountRef:
    """A cash account in one currency (a wallet holding BTC and EUR is two)."""

    account_id: str
    currency: str


@dataclass(frozen=True)
class BookkeepingEntry:
    """Manual bookkeeping entry.

    ``type`` is one of revenue, income, expense, asset, liability, equity.
    ``activity`` places revenue and expense entries in the cash flow
    statement (operating when omitted).
    """

    id: str
    company_id: str
    date: DateLike
    type: Optional[str]
    amount: Decimal
    currency: str
    category: str = ""
    subcategory: str = ""
    description: str = ""
    activity: Optional[str] = None


@dataclass(frozen=True)
class InvoiceRevenueEntry:
    id: str
    company_id: str
    date: DateLike
    gross_amount: Decimal
    currency: str
    cogs: Decimal = ZERO
    linked_expenses: tuple[Decimal, ...] = ()
    category: str = "Sales Revenue"
    description: str = ""


@dataclass(frozen=True)
class BankTransaction:
    id: str
    company_id: str
    account_id: str
    date: DateLike
    currency: str
    incoming_amount: Optional[Decimal] = None
    outgoing_amount: Optional[Decimal] = None
    activity: Optional[str] = None
    category: str = ""
    description: str = ""


@dataclass(frozen=True)
class WalletTransaction:
    id: str
    company_id: str
    wallet_id: str
    date: DateLike
    currency: str
    incoming_amount: Optional[Decimal] = None
    outgoing_amount: Optional[Decimal] = None
    activity: Optional[str] = None
    category: str = ""
    description: str = ""


@dataclass(frozen=True)
class ManualAdjustment:
    """Manual cashflow adjustment on a bank or wallet account.

    Raises:
        ValueError: on construction when a required field is missing, the
            amount is not positive or the period is not 'YYYY-MM'.
    """

    id: str
    company_id: str
    account_id: str
    account_kind: str
    direction: str
    amount: Decimal
    currency: str
    period: str
    description: str
    activity: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.company_id:
            raise ValueError("Manual adjustment: company is required.")
        if not self.account_id:
            raise ValueError("Manual adjustment: account is required.")
        if self.account_kind not in ("bank", "wallet"):
            raise ValueError("Manual adjustment: account_kind must be 'bank' or 'wallet'.")
        if self.direction not in ("inflow", "outflow"):
            raise ValueError("Manual adjustment: direction must be 'inflow' or 'outflow'.")
        if to_decimal(self.amount) <= 0:
            raise ValueError("Manual adjustment: amount must be positive.")
        if not (self.description or "").strip():
            raise ValueError("Manual adjustment: description is required.")
        if not _PERIOD_RE.match(self.period or ""):
            raise ValueError("Manual adjustment: period must use the YYYY-MM format.")


LedgerRecord = Union[
    BookkeepingEntry,
    InvoiceRevenueEntry,
    BankTransaction,
    WalletTransaction,
    ManualAdjustment,
]


@dataclass(frozen=True)
class NormalizedTransaction:
    """One money movement in the common shape used by the engine."""

    id: str
    company_id: str
    date: datetime
    amount: Decimal
    currency: str
    classification: Classification
    source_kind: SourceKind
    source_id: str
    category: str = ""
    subcategory: str = ""
    description: str = ""
    account: Optional[AccountRef] = None
    non_cash: bool = False
    gross: Optional[Decimal] = None
    cogs: Decimal = ZERO
    linked_expenses: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.classification.is_inflow and self.amount < 0:
            raise ValueError(f"Transaction {self.id}: inflow amounts cannot be negative.")
        if self.classification.is_outflow and self.amount > 0:
            raise ValueError(f"Transaction {self.id}: outflow amounts cannot be positive.")


def _localize(value: DateLike, tz: ZoneInfo) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    return datetime.combine(value, time.min, tzinfo=tz)


def _activity(raw: Optional[str]) -> Optional[str]:
    """Normalized activity, 'operating' when omitted, None when unknown."""
    if raw is None or not str(raw).strip():
        return "operating"
    value = str(raw).strip().lower()
    return value if value in ACTIVITIES else None


def _settings_for(
    company_id: str,
    settings: Union[CompanySettings, Mapping[str, CompanySettings]],
) -> CompanySettings:
    if isinstance(settings, CompanySettings):
        if settings.company_id != company_id:
            raise MissingCompanySettings(company_id)
        return settings
    try:
        return settings[company_id]
    except KeyError:
        raise MissingCompanySettings(company_id) from None


def _unclassified(
    record: LedgerRecord,
    kind: SourceKind,
    when: datetime,
    amount: Decimal,
    currency: str,
    reason: str,
) -> NormalizedTransaction:
    logger.warning("Record %s (%s) could not be classified: %s", record.id, kind.value, reason)
    return NormalizedTransaction(
        id=str(record.id),
        company_id=record.company_id,
        date=when,
        amount=amount,
        currency=currency.upper(),
        classification=Classification.UNCLASSIFIED,
        source_kind=kind,
        source_id=str(record.id),
        description=reason,
    )


def _from_bookkeeping(
    entry: BookkeepingEntry, settings: CompanySettings, tz: ZoneInfo
) -> NormalizedTransaction:
    when = _localize(entry.date, tz)
    amount = to_decimal(entry.amount)
    entry_type = (entry.type or "").strip().lower()
    common = dict(
        id=str(entry.id),
        company_id=entry.company_id,
        date=when,
        currency=entry.currency.upper(),
        source_kind=SourceKind.MANUAL_ENTRY,
        source_id=str(entry.id),
        category=entry.category,
        subcategory=entry.subcategory,
        description=entry.description,
    )

    if entry_type in ("asset", "liability", "equity"):
        return NormalizedTransaction(
            amount=amount, classification=Classification(entry_type), **common
        )

    if entry_type in ("revenue", "income", "expense"):
        activity = _activity(entry.activity)
        if activity is None:
            return _unclassified(
                entry, SourceKind.MANUAL_ENTRY, when, amount, entry.currency,
                f"unknown activity {entry.activity!r}",
            )
        inflow = entry_type != "expense"
        signed = abs(amount) if inflow else -abs(amount)
        non_cash = (
            not inflow
            and activity == "operating"
            and is_non_cash(entry.category, settings.classification)
        )
        return NormalizedTransaction(
            amount=signed,
            classification=Classification.flow(activity, inflow),
            non_cash=non_cash,
            **common,
        )

    return _unclassified(
        entry, SourceKind.MANUAL_ENTRY, when, amount, entry.currency,
        f"unknown entry type {entry.type!r}",
    )


def _from_invoice(entry: InvoiceRevenueEntry, tz: ZoneInfo) -> NormalizedTransaction:
    gross = to_decimal(entry.gross_amount)
    cogs = to_decimal(entry.cogs or ZERO)
    linked = sum((to_decimal(x) for x in entry.linked_expenses), ZERO)
    net = gross - cogs - linked
    return NormalizedTransaction(
        id=str(entry.id),
        company_id=entry.company_id,
        date=_localize(entry.date, tz),
        amount=net,
        currency=entry.currency.upper(),
        classification=Classification.flow("operating", net >= 0),
        source_kind=SourceKind.INVOICE_REVENUE,
        source_id=str(entry.id),
        category=entry.category,
        description=entry.description,
        gross=gross,
        cogs=cogs,
        linked_expenses=linked,
    )


def _from_account_legs(
    record: Union[BankTransaction, WalletTransaction],
    kind: SourceKind,
    account: AccountRef,
    tz: ZoneInfo,
) -> list[NormalizedTransaction]:
    when = _localize(record.date, tz)
    incoming = abs(to_decimal(record.incoming_amount)) if record.incoming_amount else ZERO
    outgoing = abs(to_decimal(record.outgoing_amount)) if record.outgoing_amount else ZERO

    if incoming == 0 and outgoing == 0:
        return [
            _unclassified(record, kind, when, ZERO, record.currency, "no incoming or outgoing amount")
        ]

    activity = _activity(record.activity)
    if activity is None:
        return [
            _unclassified(
                record, kind, when, incoming - outgoing, record.currency,
                f"unknown activity {record.activity!r}",
            )
        ]

    legs = [(incoming, True, "in"), (outgoing, False, "out")]
    legs = [leg for leg in legs if leg[0] != 0]
    out: list[NormalizedTransaction] = []
    for value, inflow, suffix in legs:
        tx_id = str(record.id) if len(legs) == 1 else f"{record.id}:{suffix}"
        out.append(
            NormalizedTransaction(
                id=tx_id,
                company_id=record.company_id,
                date=when,
                amount=value if inflow else -value,
                currency=account.currency,
                classification=Classification.flow(activity, inflow),
                source_kind=kind,
                source_id=str(record.id),
                category=record.category,
                description=record.description,
                account=account,
            )
        )
    return out


def _from_adjustment(adj: ManualAdjustment, tz: ZoneInfo) -> NormalizedTransaction:
    year, month = (int(p) for p in adj.period.split("-"))
    when = datetime.combine(date(year, month, 1), time.min, tzinfo=tz)
    activity = _activity(adj.activity)
    amount = abs(to_decimal(adj.amount))
    inflow = adj.direction == "inflow"
    if activity is None:
        return _unclassified(
            adj, SourceKind.MANUAL_ADJUSTMENT, when, amount if inflow else -amount,
            adj.currency, f"unknown activity {adj.activity!r}",
        )
    return NormalizedTransaction(
        id=str(adj.id),
        company_id=adj.company_id,
        date=when,
        amount=amount if inflow else -amount,
        currency=adj.currency.upper(),
        classification=Classification.flow(activity, inflow),
        source_kind=SourceKind.MANUAL_ADJUSTMENT,
        source_id=str(adj.id),
        description=adj.description,
        account=AccountRef(adj.account_id, adj.currency.upper()),
    )


def normalize_record(
    record: LedgerRecord,
    settings: CompanySettings,
) -> list[NormalizedTransaction]:
    """Normalize a single record (one record may produce two legs)."""
    tz = ZoneInfo(settings.timezone)
    if isinstance(record, BookkeepingEntry):
        return [_from_bookkeeping(record, settings, tz)]
    if isinstance(record, InvoiceRevenueEntry):
        return [_from_invoice(record, tz)]
    if isinstance(record, BankTransaction):
        account = AccountRef(record.account_id, record.currency.upper())
        return _from_account_legs(record, SourceKind.BANK_TRANSACTION, account, tz)
    if isinstance(record, WalletTransaction):
        account = AccountRef(record.wallet_id, record.currency.upper())
        return _from_account_legs(record, SourceKind.WALLET_TRANSACTION, account, tz)
    if isinstance(record, ManualAdjustment):
        return [_from_adjustment(record, tz)]
    raise TypeError(f"Unsupported ledger record type: {type(record).__name__}")


def normalize(
    records: Iterable[LedgerRecord],
    settings: Union[CompanySettings, Mapping[str, CompanySettings]],
) -> list[NormalizedTransaction]:
    """
    Normalize heterogeneous ledger records into NormalizedTransaction objects.

    Parameters
    ----------
    records:
        Bookkeeping entries, invoice revenue entries, bank and wallet
        transactions and manual adjustments, in any mix.
    settings:
        Settings of the single company the records belong to, or a mapping
        ``company_id -> CompanySettings`` for multi-company inputs.

    Returns
    -------
    list[NormalizedTransaction]
        Normalized transactions in input order. Unclassifiable records are
        included with ``Classification.UNCLASSIFIED``.

    Raises
    ------
    MissingCompanySettings
        If a record belongs to a company without settings.
    """
    out: list[NormalizedTransaction] = []
    for record in records:
        company = _settings_for(record.company_id, settings)
        out.extend(normalize_record(record, company))

    unclassified = sum(1 for t in out if t.classification is Classification.UNCLASSIFIED)
    logger.debug("Normalized %d transactions (%d unclassified)", len(out), unclassified)
    return out
