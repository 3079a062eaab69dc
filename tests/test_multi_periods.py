from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from ledgersight.config import CompanySettings
from ledgersight.errors import InvalidPeriod
from ledgersight.integration import StatementOptions
from ledgersight.multi_periods import build_for_companies, build_multi_period
from ledgersight.periods import PeriodRequest
from ledgersight.sources import BankTransaction, BookkeepingEntry
from ledgersight.validation import StatementKind

ACME = CompanySettings(company_id="acme")
BETA = CompanySettings(company_id="beta", functional_currency="EUR", timezone="Europe/Paris")
TODAY = date(2025, 3, 15)

REQUESTS = [
    PeriodRequest("lastMonth"),
    PeriodRequest("thisMonth"),
    PeriodRequest("quarter", year=2025, quarter=1),
]


def _records():
    return [
        BookkeepingEntry("a-jan", "acme", date(2025, 1, 10), "revenue", Decimal("100"), "USD", "Sales Revenue"),
        BookkeepingEntry("a-feb", "acme", date(2025, 2, 10), "revenue", Decimal("200"), "USD", "Sales Revenue"),
        BookkeepingEntry("a-mar", "acme", date(2025, 3, 10), "revenue", Decimal("300"), "USD", "Sales Revenue"),
        BookkeepingEntry("b-mar", "beta", date(2025, 3, 10), "revenue", Decimal("50"), "EUR", "Sales Revenue"),
    ]


def test_build_multi_period_long_format() -> None:
    """One unit per request, in request order, with a period_label column."""
    result = build_multi_period(
        [r for r in _records() if r.company_id == "acme"], REQUESTS, ACME, today=TODAY
    )

    assert [u.period.label for u in result.units] == ["lastMonth", "thisMonth", "2025-Q1"]
    assert list(result.statements.columns[:3]) == ["period_label", "company_id", "statement"]

    net = result.statements[
        (result.statements["statement"] == StatementKind.PROFIT_LOSS.value)
        & (result.statements["code"] == "PL_NET_PROFIT")
    ]
    assert net.set_index("period_label")["amount"].to_dict() == {
        "lastMonth": 200.0,
        "thisMonth": 300.0,
        "2025-Q1": 600.0,
    }
    assert set(result.findings["statement"]) >= {"balance-sheet", "cross-statement"}
    assert result.ratios.empty


def test_thread_pool_gives_the_same_result_as_sequential() -> None:
    records = [r for r in _records() if r.company_id == "acme"]
    options = StatementOptions(ratios_level="basic")

    sequential = build_multi_period(records, REQUESTS, ACME, options=options, today=TODAY)
    pooled = build_multi_period(records, REQUESTS, ACME, options=options, today=TODAY, max_workers=3)

    pd.testing.assert_frame_equal(sequential.statements, pooled.statements)
    pd.testing.assert_frame_equal(sequential.ratios, pooled.ratios)
    assert not pooled.ratios.empty
    assert pooled.unit("thisMonth").profit_loss.statement.revenue.amount == Decimal("300")


def test_build_for_companies_keeps_companies_apart() -> None:
    result = build_for_companies(
        _records(),
        [PeriodRequest("thisMonth")],
        {"beta": BETA, "acme": ACME},
        today=TODAY,
        max_workers=2,
    )

    assert [(u.company_id, u.currency) for u in result.units] == [("acme", "USD"), ("beta", "EUR")]
    beta = result.unit("thisMonth", "beta")
    assert beta.profit_loss.statement.revenue.amount == Decimal("50")
    assert set(result.statements["company_id"]) == {"acme", "beta"}


def test_invalid_batches() -> None:
    with pytest.raises(ValueError):
        build_multi_period(_records(), [], ACME)
    with pytest.raises(ValueError):
        build_for_companies(_records(), REQUESTS, {})
    with pytest.raises(InvalidPeriod):
        build_multi_period(
            [], [PeriodRequest("thisMonth"), PeriodRequest("quarter", year=2025)], ACME, today=TODAY
        )


def test_cash_balances_are_applied_per_period() -> None:
    """Each period reconciles against its own ledger balances."""
    records = [
        BankTransaction("feb", "acme", "main", date(2025, 2, 10), "USD", incoming_amount=Decimal("100")),
        BankTransaction("mar", "acme", "main", date(2025, 3, 10), "USD", incoming_amount=Decimal("500")),
    ]
    months = [PeriodRequest("lastMonth"), PeriodRequest("thisMonth")]

    result = build_multi_period(
        records,
        months,
        ACME,
        cash_balances={
            "lastMonth": (Decimal("0"), Decimal("100")),
            "thisMonth": (Decimal("100"), Decimal("600")),
        },
        today=TODAY,
    )
    reconciliations = [u.cash_flow.statement.reconciliation for u in result.units]
    assert all(r.closing_supplied and r.is_reconciled for r in reconciliations)
    assert "CF_BS_CASH" not in set(result.findings["code"])

    partial = build_multi_period(
        records, months, ACME, cash_balances={"thisMonth": (100, 600)}, today=TODAY, max_workers=2
    )
    last = partial.unit("lastMonth").cash_flow.statement.reconciliation
    assert not last.closing_supplied
    assert last.is_reconciled
    assert partial.unit("thisMonth").cash_flow.statement.reconciliation.closing_supplied


def test_cash_balances_are_keyed_by_company_and_period() -> None:
    result = build_for_companies(
        _records(),
        [PeriodRequest("thisMonth")],
        {"beta": BETA, "acme": ACME},
        cash_balances={("acme", "thisMonth"): (Decimal("0"), Decimal("300"))},
        today=TODAY,
    )

    assert result.unit("thisMonth", "acme").cash_flow.statement.reconciliation.closing_supplied
    assert not result.unit("thisMonth", "beta").cash_flow.statement.reconciliation.closing_supplied


def test_batch_cash_balances_are_validated() -> None:
    acme_records = [r for r in _records() if r.company_id == "acme"]

    with pytest.raises(ValueError, match="cash_balances"):
        build_multi_period(
            acme_records, REQUESTS, ACME, options=StatementOptions(closing_cash=Decimal("600")), today=TODAY
        )
    with pytest.raises(ValueError, match="unknown unit"):
        build_multi_period(acme_records, REQUESTS, ACME, cash_balances={"March": (0, 1)}, today=TODAY)
    with pytest.raises(ValueError, match="unknown unit"):
        build_for_companies(
            _records(),
            [PeriodRequest("thisMonth")],
            {"beta": BETA, "acme": ACME},
            cash_balances={("gamma", "thisMonth"): (0, 1)},
            today=TODAY,
        )
