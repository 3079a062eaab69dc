# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for SMB LedgerSight.

This module turns a PeriodRequest ("this month", "last year", a custom
range, a fiscal year, a quarter, or all time) into a concrete
ReportingPeriod with inclusive start/end instants expressed in the
company's timezone.

Boundaries
----------
A period starts at 00:00:00 on its first day and ends at 23:59:59.999999
on its last day, both in the company timezone. Consecutive periods
therefore never overlap nor leave a gap: Jan 31 23:59:59 belongs to
January, Feb 1 00:00:00 to February.

All-time periods have no start. They cannot be compared with a prior
period and cannot be used where a closing-balance reconciliation is
required.
"""

from calendar import monthrange
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidPeriod

_END_OF_DAY = time(23, 59, 59, 999999)


class PeriodKind(str, Enum):
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    THIS_YEAR = "thisYear"
    LAST_YEAR = "lastYear"
    ALL_TIME = "allTime"
    CUSTOM = "custom"
    FISCAL_YEAR = "fiscalYear"
    QUARTER = "quarter"


COMPARISON_MODES = ("previous-period", "previous-year")


@dataclass(frozen=True)
class PeriodRequest:
    """A reporting period as requested by a caller.

    Attributes:
        kind: One of the PeriodKind values (plain strings are accepted).
        start, end: Dates for custom periods.
        year: Year for fiscal-year and quarter requests.
        quarter: Quarter number (1-4) for quarter requests.
        compare: Optional comparison mode ('previous-period' or
            'previous-year').
    """

    kind: str
    start: Optional[date] = None
    end: Optional[date] = None
    year: Optional[int] = None
    quarter: Optional[int] = None
    compare: Optional[str] = None


@dataclass(frozen=True)
class ReportingPeriod:
    """Resolved period with inclusive bounds and a human-readable label."""

    start: Optional[datetime]
    end: datetime
    label: str
    timezone: str = "UTC"

    @property
    def is_open_ended(self) -> bool:
        return self.start is None

    @property
    def period_id(self) -> str:
        """Stable identifier, e.g. '2025-02-01..2025-02-28'."""
        start = self.start.date().isoformat() if self.start is not None else ""
        return f"{start}..{self.end.date().isoformat()}"

    def contains(self, instant: datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        return instant <= self.end

    def as_of(self) -> "ReportingPeriod":
        """Cumulative view ending at this period's end (balance sheet date)."""
        return replace(self, start=None, label=f"As of {self.end.date().isoformat()}")

    def previous(self) -> "ReportingPeriod":
        """The period of the same shape immediately before this one."""
        start_day, end_day = self._require_bounds("compare")
        if start_day.day == 1 and end_day == _month_end(end_day.year, end_day.month):
            months = (end_day.year - start_day.year) * 12 + end_day.month - start_day.month + 1
            new_start = _add_months(start_day, -months)
            new_end = start_day - timedelta(days=1)
        else:
            length = end_day - start_day
            new_end = start_day - timedelta(days=1)
            new_start = new_end - length
        return _make_period(new_start, new_end, f"Previous period ({new_start} → {new_end})", self.timezone)

    def previous_year(self) -> "ReportingPeriod":
        """Same calendar window one year earlier (Feb 29 clamps to Feb 28)."""
        start_day, end_day = self._require_bounds("compare")
        new_start = _shift_year(start_day, -1)
        new_end = _shift_year(end_day, -1)
        if end_day == _month_end(end_day.year, end_day.month):
            new_end = _month_end(new_end.year, new_end.month)
        return _make_period(new_start, new_end, f"Previous year ({new_start} → {new_end})", self.timezone)

    def _require_bounds(self, field: str) -> tuple[date, date]:
        if self.start is None:
            raise InvalidPeriod(field, "an all-time period has no prior period.")
        return self.start.date(), self.end.date()


def _zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidPeriod("timezone", f"unknown timezone {timezone!r}.") from exc


def _today(timezone: str) -> date:
    """Return today's date in the given timezone (isolated for easier testing)."""
    return datetime.now(_zone(timezone)).date()


def _month_end(year: int, month: int) -> date:
    return date(year, month, monthrange(year, month)[1])


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + day.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def _shift_year(day: date, years: int) -> date:
    year = day.year + years
    return date(year, day.month, min(day.day, monthrange(year, day.month)[1]))


def _make_period(start: Optional[date], end: date, label: str, timezone: str) -> ReportingPeriod:
    tz = _zone(timezone)
    start_dt = datetime.combine(start, time.min, tzinfo=tz) if start is not None else None
    return ReportingPeriod(
        start=start_dt,
        end=datetime.combine(end, _END_OF_DAY, tzinfo=tz),
        label=label,
        timezone=timezone,
    )


def _fiscal_year_bounds(year: int, start_month: int) -> tuple[date, date]:
    """Fiscal year ``year`` is the one that *starts* in that calendar year."""
    start = date(year, start_month, 1)
    end = _add_months(start, 12) - timedelta(days=1)
    return start, end


def resolve(
    request: PeriodRequest,
    timezone: str = "UTC",
    *,
    today: Optional[date] = None,
    fiscal_year_start_month: int = 1,
    max_days: Optional[int] = None,
) -> ReportingPeriod:
    """
    Resolve a period request into a ReportingPeriod.

    Parameters
    ----------
    request:
        The requested period.
    timezone:
        IANA timezone of the company. Month and year boundaries, as well as
        "today", are evaluated in that timezone.
    today:
        Override of the current date (defaults to today in ``timezone``).
    fiscal_year_start_month:
        First month of the company's fiscal year (fiscalYear requests).
    max_days:
        Optional maximum length of custom periods, in days.

    Raises
    ------
    InvalidPeriod
        With the offending field name when the request is invalid.
    """
    _zone(timezone)
    try:
        kind = PeriodKind(request.kind)
    except ValueError:
        raise InvalidPeriod("kind", f"unknown period kind {request.kind!r}.") from None

    if request.compare is not None:
        if request.compare not in COMPARISON_MODES:
            raise InvalidPeriod(
                "compare",
                f"unknown comparison {request.compare!r}, expected one of "
                f"{', '.join(COMPARISON_MODES)}.",
            )
        if kind is PeriodKind.ALL_TIME:
            raise InvalidPeriod("compare", "an all-time period cannot be compared.")

    current = today or _today(timezone)

    if kind is PeriodKind.THIS_MONTH:
        start = current.replace(day=1)
        return _make_period(start, _month_end(start.year, start.month), "thisMonth", timezone)

    if kind is PeriodKind.LAST_MONTH:
        start = _add_months(current.replace(day=1), -1)
        return _make_period(start, _month_end(start.year, start.month), "lastMonth", timezone)

    if kind is PeriodKind.THIS_YEAR:
        return _make_period(
            date(current.year, 1, 1), date(current.year, 12, 31), "thisYear", timezone
        )

    if kind is PeriodKind.LAST_YEAR:
        year = current.year - 1
        return _make_period(date(year, 1, 1), date(year, 12, 31), "lastYear", timezone)

    if kind is PeriodKind.ALL_TIME:
        return _make_period(None, current, "allTime", timezone)

    if kind is PeriodKind.FISCAL_YEAR:
        if request.year is None:
            raise InvalidPeriod("year", "a fiscal year request needs a year.")
        start, end = _fiscal_year_bounds(request.year, fiscal_year_start_month)
        label = f"FY{request.year}" if fiscal_year_start_month == 1 else f"FY{request.year}-{request.year + 1}"
        return _make_period(start, end, label, timezone)

    if kind is PeriodKind.QUARTER:
        if request.year is None:
            raise InvalidPeriod("year", "a quarter request needs a year.")
        if request.quarter not in (1, 2, 3, 4):
            raise InvalidPeriod("quarter", f"quarter must be 1-4, got {request.quarter!r}.")
        start = date(request.year, 3 * (request.quarter - 1) + 1, 1)
        end = _month_end(request.year, start.month + 2)
        return _make_period(start, end, f"{request.year}-Q{request.quarter}", timezone)

    # Custom range
    if request.start is None:
        raise InvalidPeriod("start", "a custom period needs a start date.")
    if request.end is None:
        raise InvalidPeriod("end", "a custom period needs an end date.")
    if request.start > request.end:
        raise InvalidPeriod("end", "end date cannot be before start date.")
    if max_days is not None and (request.end - request.start).days + 1 > max_days:
        raise InvalidPeriod("end", f"custom periods cannot exceed {max_days} days.")
    return _make_period(
        request.start,
        request.end,
        f"{request.start.isoformat()} → {request.end.isoformat()}",
        timezone,
    )


def resolve_with_comparison(
    request: PeriodRequest,
    timezone: str = "UTC",
    *,
    today: Optional[date] = None,
    fiscal_year_start_month: int = 1,
    max_days: Optional[int] = None,
) -> tuple[ReportingPeriod, Optional[ReportingPeriod]]:
    """Resolve a request and, when it asks for one, its comparison period."""
    period = resolve(
        request,
        timezone,
        today=today,
        fiscal_year_start_month=fiscal_year_start_month,
        max_days=max_days,
    )
    if request.compare is None:
        return period, None
    if request.compare == "previous-year":
        return period, period.previous_year()
    return period, period.previous()
