from __future__ import annotations

from datetime import date, timedelta

import pytest

from backend.app.core.errors import IneligiblePeriod
from backend.app.insights.eligibility import EligibilityGate, EligibilityState
from backend.app.insights.periods import MONTHLY, WEEKLY, Period


@pytest.fixture()
def gate() -> EligibilityGate:
    return EligibilityGate()


def test_monthly_window_opens_four_days_before_month_end(gate: EligibilityGate) -> None:
    june = Period(MONTHLY, 2025, 6)

    locked = gate.check(june, date(2025, 6, 25))
    assert locked.state is EligibilityState.CURRENT_LOCKED
    assert locked.days_remaining == 1

    for day in range(26, 31):
        assert gate.check(june, date(2025, 6, day)).allowed


def test_monthly_window_in_leap_february(gate: EligibilityGate) -> None:
    february = Period(MONTHLY, 2024, 2)
    assert gate.check(february, date(2024, 2, 24)).state is EligibilityState.CURRENT_LOCKED
    assert gate.check(february, date(2024, 2, 25)).allowed
    assert gate.check(february, date(2024, 2, 1)).days_remaining == 24


def test_monthly_future_and_past(gate: EligibilityGate) -> None:
    today = date(2025, 6, 27)
    assert gate.check(Period(MONTHLY, 2025, 7), today).state is EligibilityState.FUTURE
    assert gate.check(Period(MONTHLY, 2025, 5), today).state is EligibilityState.PAST
    assert gate.check(Period(MONTHLY, 2024, 12), date(2025, 1, 30)).state is EligibilityState.PAST


def test_weekly_window_is_weekend_only(gate: EligibilityGate) -> None:
    week = Period(WEEKLY, 2025, 26)
    monday = date(2025, 6, 23)

    for offset in range(5):
        result = gate.check(week, monday + timedelta(days=offset))
        assert result.state is EligibilityState.CURRENT_LOCKED
        assert result.days_remaining == 5 - offset

    assert gate.check(week, date(2025, 6, 28)).allowed
    assert gate.check(week, date(2025, 6, 29)).allowed


def test_weekly_state_across_iso_year_boundary(gate: EligibilityGate) -> None:
    # 2024-12-31 already belongs to 2025-W01
    today = date(2024, 12, 31)
    assert gate.check(Period(WEEKLY, 2025, 1), today).state is EligibilityState.CURRENT_LOCKED
    assert gate.check(Period(WEEKLY, 2024, 52), today).state is EligibilityState.PAST
    assert gate.check(Period(WEEKLY, 2025, 2), today).state is EligibilityState.FUTURE


def test_ensure_can_generate_raises_with_countdown(gate: EligibilityGate) -> None:
    with pytest.raises(IneligiblePeriod) as excinfo:
        gate.ensure_can_generate(Period(MONTHLY, 2025, 6), date(2025, 6, 20))

    assert excinfo.value.reason == "locked"
    assert excinfo.value.to_payload()["days_remaining"] == 6


def test_ensure_can_generate_future_has_no_countdown(gate: EligibilityGate) -> None:
    with pytest.raises(IneligiblePeriod) as excinfo:
        gate.ensure_can_generate(Period(WEEKLY, 2025, 30), date(2025, 6, 28))

    payload = excinfo.value.to_payload()
    assert payload["reason"] == "future"
    assert "days_remaining" not in payload


def test_ensure_can_generate_returns_unlocked(gate: EligibilityGate) -> None:
    result = gate.ensure_can_generate(Period(MONTHLY, 2025, 6), date(2025, 6, 27))
    assert result.state is EligibilityState.CURRENT_UNLOCKED
