from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class InsightPeriod(BaseModel):
    type: Literal["weekly", "monthly"]
    label: str
    key: str


class MoodTrendNote(BaseModel):
    summary: str = ""


class InsightTheme(BaseModel):
    tag: str
    note: str = ""


class NotableMoment(BaseModel):
    title: str
    date: str
    summary: str = ""


class InsightMeta(BaseModel):
    tokens_used: int | None = None


class StructuredInsight(BaseModel):
    """Generated insight payload stored as JSON on the insight row."""

    period: InsightPeriod
    language: str
    overview: str
    mood_trend: MoodTrendNote = Field(default_factory=MoodTrendNote)
    themes: list[InsightTheme] = Field(default_factory=list)
    notable_moments: list[NotableMoment] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    meta: InsightMeta | None = None


class InsightModel(BaseModel):
    id: int
    user_id: int
    type: Literal["weekly", "monthly"]
    period_key: str
    period_label: str
    content: StructuredInsight
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InsightListResponse(BaseModel):
    items: list[InsightModel]
    total: int
    page: int
    per_page: int
    total_pages: int


class EligibilityResponse(BaseModel):
    type: Literal["weekly", "monthly"]
    period_key: str
    state: Literal["future", "past", "locked", "unlocked"]
    allowed: bool
    reason: str
    days_remaining: int = Field(ge=0)
    has_insight: bool


__all__ = [
    "EligibilityResponse",
    "InsightListResponse",
    "InsightMeta",
    "InsightModel",
    "InsightPeriod",
    "InsightTheme",
    "MoodTrendNote",
    "NotableMoment",
    "StructuredInsight",
]
