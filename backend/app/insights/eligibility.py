from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date

from ..core.errors import IneligiblePeriod
from .periods import MONTHLY, WEEKLY, Period, current_period, days_in_month

SATURDAY = 5
MONTHLY_WINDOW_DAYS = 5


class EligibilityState(str, enum.Enum):
    FUTURE = "future"
    PAST = "past"
    CURRENT_LOCKED = "locked"
    CURRENT_UNLOCKED = "unlocked"


@dataclass(frozen=True)
class Eligibility:
    state: EligibilityState
    reason: str
    days_remaining: int = 0

    @property
    def allowed(self) -> bool:
        return self.state is EligibilityState.CURRENT_UNLOCKED


class EligibilityGate:
    """Decide whether an insight may be generated for a period on a given day.

    Weekly insights unlock on Saturday and Sunday of the current ISO week,
    monthly insights on the last five days of the current month. Past and
    future periods never unlock. Nothing is stored: every call recomputes
    the state from ``today``.
    """

    def check(self, target: Period, today: date) -> Eligibility:
        current = current_period(target.type, today)
        if target > current:
            return Eligibility(EligibilityState.FUTURE, "cannot generate for future periods")
        if target < current:
            return Eligibility(EligibilityState.PAST, "cannot generate for past periods")

        days_remaining = self.days_until_window(target, today)
        if days_remaining > 0:
            return Eligibility(
                EligibilityState.CURRENT_LOCKED,
                f"too early: generation opens in {days_remaining} day(s)",
                days_remaining,
            )
        return Eligibility(EligibilityState.CURRENT_UNLOCKED, "generation window is open")

    def ensure_can_generate(self, target: Period, today: date) -> Eligibility:
        result = self.check(target, today)
        if not result.allowed:
            days = result.days_remaining if result.state is EligibilityState.CURRENT_LOCKED else None
            raise IneligiblePeriod(result.state.value, result.reason, days)
        return result

    @staticmethod
    def days_until_window(period: Period, today: date) -> int:
        """Days from ``today`` until the window of the current ``period`` opens."""

        if period.type == WEEKLY:
            return max(SATURDAY - today.weekday(), 0)
        if period.type == MONTHLY:
            opens_on = days_in_month(today.year, today.month) - (MONTHLY_WINDOW_DAYS - 1)
            return max(opens_on - today.day, 0)
        raise ValueError(f"unknown period type {period.type!r}")


__all__ = ["Eligibility", "EligibilityGate", "EligibilityState"]
