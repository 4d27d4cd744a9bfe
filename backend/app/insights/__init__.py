"""Periodic insight generation: periods, eligibility, mood rollups and the generator."""

from __future__ import annotations

from .eligibility import Eligibility, EligibilityGate, EligibilityState
from .generator import GenerationOutcome, InsightGenerator
from .periods import MONTHLY, WEEKLY, Period, current_period, parse_period_key

__all__ = [
    "MONTHLY",
    "WEEKLY",
    "Eligibility",
    "EligibilityGate",
    "EligibilityState",
    "GenerationOutcome",
    "InsightGenerator",
    "Period",
    "current_period",
    "parse_period_key",
]
