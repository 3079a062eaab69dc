from datetime import date
from decimal import Decimal

import pytest

from ledgersight.comparison import (
    attach_comparatives,
    compare,
    significance,
    trend,
    variance_direction,
    variance_percent,
)
from ledgersight.config import CompanySettings
from ledgersight.engine import aggregate
from ledgersight.errors import CurrencyMismatch
from ledgersight.lines import find, group, leaf, sum_mismatches
from ledgersight.periods import PeriodRequest, resolve
from ledgersight.profit_loss import build_profit_loss
from ledgersight.sources import BookkeepingEntry, normalize


def test_variance_against_zero_prior_has_no_percent() -> None:
    """100 vs 0: absolute variance 100, percent undefined."""
    [line] = compare([leaf("Sales", Decimal("100"), "USD")], [leaf("Sales", Decimal("0"), "USD")])

    assert line.variance_absolute.amount == Decimal("100")
    assert line.variance_percent is None
    assert variance_percent(Decimal("100"), Decimal("0")) is None


def test_variance_percent_uses_absolute_prior() -> None:
    assert variance_percent(Decimal("150"), Decimal("100")) == Decimal("50.00")
    assert variance_percent(Decimal("-50"), Decimal("-100")) == Decimal("50.00")


def test_compare_merges_by_label_and_keeps_prior_only_lines() -> None:
    current = [group("Opex", [leaf("Rent", Decimal("120"), "USD")], "USD")]
    prior = [
        group(
            "Opex",
            [leaf("Rent", Decimal("100"), "USD"), leaf("Travel", Decimal("30"), "USD")],
            "USD",
        )
    ]

    [opex] = compare(current, prior)

    assert [c.label for c in opex.children] == ["Rent", "Travel"]
    travel = opex.children[1]
    assert travel.current.amount == Decimal("0")
    assert travel.prior.amount == Decimal("30")
    assert travel.variance_percent == Decimal("-100.00")
    assert opex.variance_absolute.amount == Decimal("-10")
    assert sum_mismatches([opex]) == []


def test_compare_refuses_mixed_currencies() -> None:
    with pytest.raises(CurrencyMismatch):
        compare([leaf("Sales", Decimal("1"), "USD")], [leaf("Sales", Decimal("1"), "EUR")])


def test_attach_comparatives_on_profit_loss() -> None:
    settings = CompanySettings(company_id="acme")
    entries = [
        BookkeepingEntry("feb", "acme", date(2025, 2, 10), "revenue", Decimal("80"), "USD", "Sales Revenue"),
        BookkeepingEntry("mar", "acme", date(2025, 3, 10), "revenue", Decimal("100"), "USD", "Sales Revenue"),
    ]
    txs = normalize(entries, settings)
    march = resolve(PeriodRequest("thisMonth"), today=date(2025, 3, 15))

    current = build_profit_loss(aggregate(txs, march), settings)
    prior = build_profit_loss(aggregate(txs, march.previous()), settings)
    merged = attach_comparatives(current, prior)

    assert merged.has_comparative
    revenue = find(merged.lines, "PL_REVENUE")
    assert revenue.prior.amount == Decimal("80")
    assert revenue.variance_percent == Decimal("25.00")
    net = find(merged.lines, "PL_NET_PROFIT")
    assert net.variance_absolute.amount == Decimal("20")


def test_direction_significance_and_trend() -> None:
    assert variance_direction(Decimal("5")) == "increase"
    assert variance_direction(Decimal("-5")) == "decrease"
    assert variance_direction(Decimal("0")) == "no-change"

    assert significance(Decimal("200000"), None) == "material"
    assert significance(Decimal("100"), Decimal("20")) == "significant"
    assert significance(Decimal("100"), Decimal("6")) == "noteworthy"
    assert significance(Decimal("100"), Decimal("1")) == "immaterial"

    rising = trend([Decimal("10"), Decimal("20"), Decimal("30")])
    assert rising.direction == "up"
    assert rising.slope == pytest.approx(10.0)
    assert rising.r_squared == pytest.approx(1.0)

    flat = trend([Decimal("5"), Decimal("5")])
    assert flat.direction == "stable"
    assert flat.r_squared is None

    with pytest.raises(ValueError):
        trend([Decimal("1")])
