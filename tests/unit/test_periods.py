from __future__ import annotations

from datetime import date, timedelta

import pytest

from backend.app.core.errors import InvalidPeriodKey
from backend.app.insights.periods import (
    MONTHLY,
    WEEKLY,
    IsoWeek,
    Period,
    current_period,
    days_in_month,
    iso_week_of,
    month_date_range,
    parse_period_key,
    shift_month,
    week_date_range,
    weeks_in_iso_year,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (date(2025, 1, 1), IsoWeek(2025, 1)),
        (date(2024, 12, 31), IsoWeek(2025, 1)),
        (date(2021, 1, 3), IsoWeek(2020, 53)),
        (date(2021, 1, 4), IsoWeek(2021, 1)),
        (date(2026, 12, 31), IsoWeek(2026, 53)),
        (date(2025, 6, 27), IsoWeek(2025, 26)),
    ],
)
def test_iso_week_of_matches_iso_calendar(value: date, expected: IsoWeek) -> None:
    assert iso_week_of(value) == expected


def test_iso_week_of_agrees_with_isocalendar() -> None:
    day = date(2019, 12, 1)
    while day < date(2028, 2, 1):
        iso = day.isocalendar()
        assert iso_week_of(day) == IsoWeek(iso.year, iso.week)
        day += timedelta(days=1)


def test_weeks_in_iso_year() -> None:
    assert weeks_in_iso_year(2020) == 53
    assert weeks_in_iso_year(2025) == 52
    assert weeks_in_iso_year(2026) == 53


def test_week_date_range_starts_on_monday() -> None:
    assert week_date_range(2025, 1) == (date(2024, 12, 30), date(2025, 1, 5))
    assert week_date_range(2025, 22) == (date(2025, 5, 26), date(2025, 6, 1))
    assert week_date_range(2020, 53) == (date(2020, 12, 28), date(2021, 1, 3))


def test_month_date_range_handles_leap_years_and_december() -> None:
    assert month_date_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_date_range(2025, 2) == (date(2025, 2, 1), date(2025, 2, 28))
    assert month_date_range(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))
    assert days_in_month(2025, 6) == 30


def test_shift_month_crosses_year_boundaries() -> None:
    assert shift_month(2025, 1, -1) == (2024, 12)
    assert shift_month(2024, 12, 1) == (2025, 1)
    assert shift_month(2025, 6, 0) == (2025, 6)


def test_current_period_contains_today() -> None:
    today = date(2025, 6, 27)
    week = current_period(WEEKLY, today)
    month = current_period(MONTHLY, today)

    assert week.key == "2025-W26"
    assert month.key == "2025-06"
    start, end = week.date_range()
    assert start <= today <= end


def test_parse_period_key_round_trips() -> None:
    assert parse_period_key("weekly", "2025-W05") == Period(WEEKLY, 2025, 5)
    assert parse_period_key("monthly", "2025-06").key == "2025-06"


def test_parse_period_key_keeps_nonexistent_week_53() -> None:
    period = parse_period_key("weekly", "2025-W53")
    assert period.exists is False
    assert parse_period_key("weekly", "2020-W53").exists is True


@pytest.mark.parametrize(
    ("period_type", "key"),
    [
        ("weekly", "2025-W5"),
        ("weekly", "2025-W00"),
        ("weekly", "2025-W54"),
        ("weekly", "2025-06"),
        ("monthly", "2025-13"),
        ("monthly", "2025-00"),
        ("monthly", "2025-W01"),
        ("daily", "2025-06-01"),
    ],
)
def test_parse_period_key_rejects_malformed_keys(period_type: str, key: str) -> None:
    with pytest.raises(InvalidPeriodKey):
        parse_period_key(period_type, key)


def test_period_labels_follow_locale() -> None:
    assert Period(WEEKLY, 2025, 23).label("ru") == "Неделя 23, 2025"
    assert Period(WEEKLY, 2025, 23).label("en") == "Week 23, 2025"
    assert Period(MONTHLY, 2025, 6).label() == "Июнь 2025"
    assert Period(MONTHLY, 2025, 6).label("en") == "June 2025"


def test_periods_order_chronologically() -> None:
    assert Period(WEEKLY, 2024, 52) < Period(WEEKLY, 2025, 1)
    assert Period(MONTHLY, 2025, 5) < Period(MONTHLY, 2025, 6)
