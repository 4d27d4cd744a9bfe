from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, Protocol

MOOD_MIN = -2.0
MOOD_MAX = 2.0

logger = logging.getLogger(__name__)


class MoodEntry(Protocol):  # pragma: no cover - structural typing helper
    id: int
    mood_rating: float | None
    created_at: datetime
    tags: list[str] | None
    is_draft: bool


@dataclass(frozen=True)
class DailyMood:
    date: date
    mood_rating: float
    num_entries: int


@dataclass(frozen=True)
class MonthlyMood:
    month: int
    mood_rating: float | None
    num_entries: int

    @property
    def has_data(self) -> bool:
        return self.num_entries > 0


@dataclass(frozen=True)
class BestWorst:
    best_entry: Any | None
    worst_entry: Any | None


@dataclass(frozen=True)
class MoodComparison:
    current: float | None
    previous: float | None
    difference: float | None


@dataclass(frozen=True)
class Theme:
    tag: str
    frequency: int
    relative_percentage: float


def local_date(created_at: datetime, tz_offset_minutes: int = 0) -> date:
    """Calendar date of a UTC timestamp as seen at ``tz_offset_minutes``."""

    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(UTC).replace(tzinfo=None)
    return (created_at + timedelta(minutes=tz_offset_minutes)).date()


def utc_window(start: date, end: date, tz_offset_minutes: int = 0) -> tuple[datetime, datetime]:
    """Half-open naive UTC bounds covering local days ``start``..``end`` inclusive."""

    offset = timedelta(minutes=tz_offset_minutes)
    lower = datetime.combine(start, datetime.min.time()) - offset
    upper = datetime.combine(end + timedelta(days=1), datetime.min.time()) - offset
    return lower, upper


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def rated_entries(entries: Iterable[MoodEntry]) -> list[MoodEntry]:
    """Entries that carry a usable mood rating, in chronological order.

    Drafts and unrated entries are skipped. Ratings outside [-2, 2] are
    dropped with a warning rather than clamped.
    """

    rated = []
    for entry in entries:
        if getattr(entry, "is_draft", False) or entry.mood_rating is None:
            continue
        if not MOOD_MIN <= entry.mood_rating <= MOOD_MAX:
            logger.warning(
                "skipping out-of-range mood rating",
                extra={"extra_fields": {"entry_id": entry.id, "mood_rating": entry.mood_rating}},
            )
            continue
        rated.append(entry)
    rated.sort(key=lambda item: item.created_at)
    return rated


def _group_by_day(
    entries: Iterable[MoodEntry],
    start: date | None,
    end: date | None,
    tz_offset_minutes: int,
) -> dict[date, list[MoodEntry]]:
    grouped: dict[date, list[MoodEntry]] = defaultdict(list)
    for entry in rated_entries(entries):
        day = local_date(entry.created_at, tz_offset_minutes)
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        grouped[day].append(entry)
    return grouped


def daily_rollup(
    entries: Iterable[MoodEntry],
    day: date,
    *,
    tz_offset_minutes: int = 0,
) -> DailyMood | None:
    """Mean rating for ``day``; ``None`` when the day has no rated entries."""

    same_day = _group_by_day(entries, day, day, tz_offset_minutes).get(day)
    if not same_day:
        return None
    ratings = [entry.mood_rating for entry in same_day]
    return DailyMood(date=day, mood_rating=round(_mean(ratings), 2), num_entries=len(ratings))


def daily_rollups(
    entries: Iterable[MoodEntry],
    start: date,
    end: date,
    *,
    tz_offset_minutes: int = 0,
) -> list[DailyMood]:
    grouped = _group_by_day(entries, start, end, tz_offset_minutes)
    return [
        DailyMood(
            date=day,
            mood_rating=round(_mean([entry.mood_rating for entry in items]), 2),
            num_entries=len(items),
        )
        for day, items in sorted(grouped.items())
    ]


def period_mean(
    entries: Iterable[MoodEntry],
    start: date,
    end: date,
    *,
    tz_offset_minutes: int = 0,
) -> float | None:
    grouped = _group_by_day(entries, start, end, tz_offset_minutes)
    ratings = [entry.mood_rating for items in grouped.values() for entry in items]
    if not ratings:
        return None
    return round(_mean(ratings), 2)


def best_and_worst_day(
    entries: Iterable[MoodEntry],
    start: date,
    end: date,
    *,
    tz_offset_minutes: int = 0,
) -> BestWorst:
    """Pick the best and worst day by daily mean and return one entry for each.

    Within the chosen day the representative is the entry with the extreme
    individual rating; equal ratings go to the earliest ``created_at``.
    Days with equal means go to the earlier day.
    """

    grouped = _group_by_day(entries, start, end, tz_offset_minutes)
    if not grouped:
        return BestWorst(best_entry=None, worst_entry=None)

    means = {day: _mean([entry.mood_rating for entry in items]) for day, items in grouped.items()}
    best_day = min(means, key=lambda day: (-means[day], day))
    worst_day = min(means, key=lambda day: (means[day], day))

    best_entry = min(grouped[best_day], key=lambda entry: (-entry.mood_rating, entry.created_at))
    worst_entry = min(grouped[worst_day], key=lambda entry: (entry.mood_rating, entry.created_at))
    return BestWorst(best_entry=best_entry, worst_entry=worst_entry)


def month_over_month(current_mean: float | None, previous_mean: float | None) -> MoodComparison:
    difference = None
    if current_mean is not None and previous_mean is not None:
        difference = round(current_mean - previous_mean, 2)
    return MoodComparison(current=current_mean, previous=previous_mean, difference=difference)


def yearly_monthly_rollup(
    entries: Iterable[MoodEntry],
    year: int,
    *,
    tz_offset_minutes: int = 0,
) -> list[MonthlyMood]:
    """Twelve monthly means for ``year``; months without entries have ``mood_rating=None``."""

    buckets: dict[int, list[float]] = defaultdict(list)
    for entry in rated_entries(entries):
        day = local_date(entry.created_at, tz_offset_minutes)
        if day.year == year:
            buckets[day.month].append(entry.mood_rating)

    result = []
    for month in range(1, 13):
        ratings = buckets.get(month, [])
        mean = round(_mean(ratings), 2) if ratings else None
        result.append(MonthlyMood(month=month, mood_rating=mean, num_entries=len(ratings)))
    return result


def main_themes(
    entries: Iterable[MoodEntry],
    start: date,
    end: date,
    *,
    limit: int = 10,
    tz_offset_minutes: int = 0,
) -> list[Theme]:
    """Most frequent tags in the range, scaled against the top tag (100%)."""

    counter: Counter[str] = Counter()
    for entry in entries:
        if getattr(entry, "is_draft", False) or not entry.tags:
            continue
        day = local_date(entry.created_at, tz_offset_minutes)
        if not start <= day <= end:
            continue
        for tag in entry.tags:
            normalized = tag.strip().lower()
            if normalized:
                counter[normalized] += 1

    top = counter.most_common(limit)
    if not top:
        return []
    peak = top[0][1]
    return [
        Theme(tag=tag, frequency=count, relative_percentage=round(count / peak * 100, 1))
        for tag, count in top
    ]


__all__ = [
    "BestWorst",
    "DailyMood",
    "MOOD_MAX",
    "MOOD_MIN",
    "MonthlyMood",
    "MoodComparison",
    "Theme",
    "best_and_worst_day",
    "daily_rollup",
    "daily_rollups",
    "local_date",
    "main_themes",
    "month_over_month",
    "period_mean",
    "rated_entries",
    "utc_window",
    "yearly_monthly_rollup",
]
