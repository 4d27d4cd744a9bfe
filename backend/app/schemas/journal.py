from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..insights.mood import MOOD_MAX, MOOD_MIN


def _clean_tags(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    cleaned = [tag.strip() for tag in value if tag and tag.strip()]
    return cleaned or None


class _TaggedModel(BaseModel):
    @field_validator("tags", check_fields=False)
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)


class EntryCreate(_TaggedModel):
    content: str = Field(..., min_length=1, max_length=20000)
    title: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = None
    is_draft: bool = False


class EntryUpdate(_TaggedModel):
    content: str | None = Field(default=None, min_length=1, max_length=20000)
    title: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = None
    is_draft: bool | None = None


class EntryAnalysis(_TaggedModel):
    mood_rating: float | None = Field(default=None, ge=MOOD_MIN, le=MOOD_MAX)
    tags: list[str] | None = None


class EntryModel(BaseModel):
    id: int
    user_id: int
    title: str | None
    content: str
    mood_rating: float | None
    tags: list[str] | None
    is_draft: bool
    created_at: datetime
    updated_at: datetime
    ai_processed_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class EntryListResponse(BaseModel):
    entries: list[EntryModel]
    total: int
    page: int
    per_page: int
    total_pages: int
