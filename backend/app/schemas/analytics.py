from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class DailyMoodPoint(BaseModel):
    date: dt.date
    mood_rating: float
    num_entries: int = Field(ge=1)


class MonthlyMoodPoint(BaseModel):
    month: int = Field(ge=1, le=12)
    mood_rating: float | None
    num_entries: int = Field(ge=0)


class YearlyMoodResponse(BaseModel):
    year: int
    months: list[MonthlyMoodPoint]


class KeyEntry(BaseModel):
    id: int
    mood_rating: float
    created_at: dt.datetime
    tags: list[str] | None

    model_config = ConfigDict(from_attributes=True)


class BestWorstDayResponse(BaseModel):
    best_entry: KeyEntry | None
    worst_entry: KeyEntry | None


class MonthComparisonResponse(BaseModel):
    current_mood_rating: float | None
    previous_mood_rating: float | None
    mood_rating_difference: float | None


class ThemeItem(BaseModel):
    tag: str
    frequency: int = Field(ge=1)
    relative_percentage: float


class ThemesResponse(BaseModel):
    themes: list[ThemeItem]
