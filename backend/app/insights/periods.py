"""Canonical period identities for insights.

Weekly periods follow ISO-8601 week numbering (weeks start on Monday, week 1
is the week holding the year's first Thursday) and are keyed ``YYYY-Www``.
Monthly periods are calendar months keyed ``YYYY-MM``. Nothing here reads
the clock: callers pass the local date they consider "today".
"""

# ruff: noqa: RUF001

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Literal, NamedTuple

from ..core.errors import InvalidPeriodKey

PeriodType = Literal["weekly", "monthly"]
WEEKLY: PeriodType = "weekly"
MONTHLY: PeriodType = "monthly"
PERIOD_TYPES: tuple[PeriodType, ...] = (WEEKLY, MONTHLY)

_WEEK_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")

_MONTH_NAMES = {
    "ru": (
        "Январь",
        "Февраль",
        "Март",
        "Апрель",
        "Май",
        "Июнь",
        "Июль",
        "Август",
        "Сентябрь",
        "Октябрь",
        "Ноябрь",
        "Декабрь",
    ),
    "en": (
        "January",
        "February",
        "March",
        "April",
        "May",
        "June",
        "July",
        "August",
        "September",
        "October",
        "November",
        "December",
    ),
}


class IsoWeek(NamedTuple):
    year: int
    week: int


@dataclass(frozen=True, order=True)
class Period:
    """A weekly or monthly period; ``index`` is the ISO week or the month."""

    type: PeriodType
    year: int
    index: int

    @property
    def key(self) -> str:
        if self.type == WEEKLY:
            return format_week_key(self.year, self.index)
        return format_month_key(self.year, self.index)

    @property
    def exists(self) -> bool:
        if self.type == WEEKLY:
            return 1 <= self.index <= weeks_in_iso_year(self.year)
        return 1 <= self.index <= 12

    def date_range(self) -> tuple[date, date]:
        if self.type == WEEKLY:
            return week_date_range(self.year, self.index)
        return month_date_range(self.year, self.index)

    def label(self, locale: str = "ru") -> str:
        return period_label(self, locale)


def iso_week_of(value: date) -> IsoWeek:
    thursday = value + timedelta(days=3 - value.weekday())
    day_of_year = thursday.timetuple().tm_yday
    return IsoWeek(thursday.year, math.ceil(day_of_year / 7))


def weeks_in_iso_year(iso_year: int) -> int:
    # December 28th always falls in the last ISO week of its year.
    return iso_week_of(date(iso_year, 12, 28)).week


def week_date_range(iso_year: int, iso_week: int) -> tuple[date, date]:
    january_fourth = date(iso_year, 1, 4)
    first_monday = january_fourth - timedelta(days=january_fourth.weekday())
    monday = first_monday + timedelta(weeks=iso_week - 1)
    return monday, monday + timedelta(days=6)


def month_date_range(year: int, month: int) -> tuple[date, date]:
    first_day = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return first_day, next_month - timedelta(days=1)


def days_in_month(year: int, month: int) -> int:
    return month_date_range(year, month)[1].day


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    absolute = year * 12 + (month - 1) + delta
    return absolute // 12, absolute % 12 + 1


def format_week_key(iso_year: int, iso_week: int) -> str:
    return f"{iso_year:04d}-W{iso_week:02d}"


def format_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def period_for_date(period_type: PeriodType, value: date) -> Period:
    if period_type == WEEKLY:
        iso = iso_week_of(value)
        return Period(WEEKLY, iso.year, iso.week)
    return Period(MONTHLY, value.year, value.month)


def current_period(period_type: PeriodType, today: date) -> Period:
    """Return the period that contains ``today`` (a local calendar date)."""

    return period_for_date(period_type, today)


def parse_period_key(period_type: str, key: str) -> Period:
    """Parse ``key`` for ``period_type``.

    ``2025-W53`` parses even though 2025 has 52 ISO weeks; check
    :attr:`Period.exists` before reading data for it.
    """

    if period_type == WEEKLY:
        match = _WEEK_KEY_RE.match(key)
        if not match:
            raise InvalidPeriodKey(f"weekly period key must look like YYYY-Www, got {key!r}")
        year, week = int(match.group(1)), int(match.group(2))
        if not 1 <= week <= 53:
            raise InvalidPeriodKey(f"ISO week must be between 01 and 53, got {key!r}")
        return Period(WEEKLY, year, week)
    if period_type == MONTHLY:
        match = _MONTH_KEY_RE.match(key)
        if not match:
            raise InvalidPeriodKey(f"monthly period key must look like YYYY-MM, got {key!r}")
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise InvalidPeriodKey(f"month must be between 01 and 12, got {key!r}")
        return Period(MONTHLY, year, month)
    raise InvalidPeriodKey(f"unknown period type {period_type!r}")


def period_label(period: Period, locale: str = "ru") -> str:
    if period.type == WEEKLY:
        if locale == "en":
            return f"Week {period.index}, {period.year}"
        return f"Неделя {period.index}, {period.year}"
    names = _MONTH_NAMES.get(locale, _MONTH_NAMES["ru"])
    return f"{names[period.index - 1]} {period.year}"


__all__ = [
    "MONTHLY",
    "PERIOD_TYPES",
    "WEEKLY",
    "IsoWeek",
    "Period",
    "PeriodType",
    "current_period",
    "days_in_month",
    "format_month_key",
    "format_week_key",
    "iso_week_of",
    "month_date_range",
    "parse_period_key",
    "period_for_date",
    "period_label",
    "shift_month",
    "week_date_range",
    "weeks_in_iso_year",
]
