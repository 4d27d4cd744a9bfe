from __future__ import annotations

import math
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from ...core.config import Settings, normalize_locale
from ...core.security import resolve_authenticated_user
from ...db.models import Insight, User
from ...insights import InsightGenerator
from ...insights.mood import (
    best_and_worst_day,
    daily_rollups,
    main_themes,
    month_over_month,
    period_mean,
    utc_window,
    yearly_monthly_rollup,
)
from ...insights.periods import month_date_range, parse_period_key, shift_month
from ...metrics import USER_API_COUNTER
from ...schemas.analytics import (
    BestWorstDayResponse,
    DailyMoodPoint,
    KeyEntry,
    MonthComparisonResponse,
    MonthlyMoodPoint,
    ThemeItem,
    ThemesResponse,
    YearlyMoodResponse,
)
from ...schemas.insights import (
    EligibilityResponse,
    InsightListResponse,
    InsightModel,
    StructuredInsight,
)
from ...schemas.journal import (
    EntryAnalysis,
    EntryCreate,
    EntryListResponse,
    EntryModel,
    EntryUpdate,
)
from ...services.ratelimit import RateLimiter
from ...services.storage import StorageService

router = APIRouter(prefix="/api/v1", tags=["core"])

PeriodTypeParam = Literal["weekly", "monthly"]
GENERATION_LIMIT_PER_MINUTE = 10
ENTRY_LIMIT_PER_MINUTE = 30


def get_storage_service(request: Request) -> StorageService:
    return request.app.state.storage_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_insight_generator(request: Request) -> InsightGenerator:
    return request.app.state.insight_generator


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def date_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> tuple[date, date]:
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must not be before start_date",
        )
    return start_date, end_date


def _enforce_rate_limit(limiter: RateLimiter, key: str, limit: int) -> None:
    if not limiter.allow(key, limit=limit, window_seconds=60):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limited",
            headers={"Retry-After": str(limiter.retry_after(key, window_seconds=60))},
        )


def _total_pages(total: int, per_page: int) -> int:
    return math.ceil(total / per_page) if total else 0


def _insight_model(row: Insight) -> InsightModel:
    return InsightModel(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        period_key=row.period_key,
        period_label=row.period_label,
        content=StructuredInsight.model_validate_json(row.content),
        created_at=row.created_at,
    )


def _user_locale(user: User, settings: Settings) -> str:
    return normalize_locale(user.locale, settings.default_locale)


# -- insights -------------------------------------------------------------
@router.get("/insights", response_model=InsightListResponse)
async def list_insights(
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
    insight_type: PeriodTypeParam | None = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
) -> InsightListResponse:
    rows, total = await storage.list_insights(
        user.id,
        insight_type=insight_type,
        page=page,
        per_page=per_page,
    )
    USER_API_COUNTER.labels(endpoint="insights_list").inc()
    return InsightListResponse(
        items=[_insight_model(row) for row in rows],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=_total_pages(total, per_page),
    )


@router.get("/insights/{period_type}/{period_key}", response_model=InsightModel)
async def read_insight(
    period_type: PeriodTypeParam,
    period_key: str,
    generator: InsightGenerator = Depends(get_insight_generator),
    user: User = Depends(resolve_authenticated_user),
) -> InsightModel:
    row = await generator.read(
        user.id,
        period_type,
        period_key,
        tz_offset_minutes=user.tz_offset_minutes,
    )
    USER_API_COUNTER.labels(endpoint="insight_get").inc()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="insight not found")
    return _insight_model(row)


@router.get(
    "/insights/{period_type}/{period_key}/eligibility",
    response_model=EligibilityResponse,
)
async def read_insight_eligibility(
    period_type: PeriodTypeParam,
    period_key: str,
    generator: InsightGenerator = Depends(get_insight_generator),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> EligibilityResponse:
    period = parse_period_key(period_type, period_key)
    result = generator.eligibility(period, user.tz_offset_minutes)
    existing = await storage.get_insight(user.id, period.type, period.key)
    return EligibilityResponse(
        type=period.type,
        period_key=period.key,
        state=result.state.value,
        allowed=result.allowed and existing is None,
        reason=result.reason,
        days_remaining=result.days_remaining,
        has_insight=existing is not None,
    )


@router.post("/insights/{period_type}/{period_key}", response_model=InsightModel)
async def generate_insight(
    period_type: PeriodTypeParam,
    period_key: str,
    response: Response,
    generator: InsightGenerator = Depends(get_insight_generator),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings_from_app),
    user: User = Depends(resolve_authenticated_user),
) -> InsightModel:
    _enforce_rate_limit(limiter, f"insight:{user.id}", GENERATION_LIMIT_PER_MINUTE)
    outcome = await generator.generate(
        user.id,
        period_type,
        period_key,
        locale=_user_locale(user, settings),
        tz_offset_minutes=user.tz_offset_minutes,
    )
    USER_API_COUNTER.labels(endpoint="insight_post").inc()
    response.status_code = status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK
    return _insight_model(outcome.insight)


# -- analytics ------------------------------------------------------------
@router.get("/analytics/mood-trend", response_model=list[DailyMoodPoint])
async def mood_trend(
    dates: tuple[date, date] = Depends(date_range),
    tz_offset: float | None = Query(default=None, ge=-14, le=14),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> list[DailyMoodPoint]:
    start, end = dates
    offset = user.tz_offset_minutes if tz_offset is None else round(tz_offset * 60)
    lower, upper = utc_window(start, end, offset)
    entries = await storage.fetch_entries_between(user.id, lower, upper)
    USER_API_COUNTER.labels(endpoint="mood_trend").inc()
    return [
        DailyMoodPoint(date=item.date, mood_rating=item.mood_rating, num_entries=item.num_entries)
        for item in daily_rollups(entries, start, end, tz_offset_minutes=offset)
    ]


@router.get("/analytics/best-worst-day", response_model=BestWorstDayResponse)
async def best_worst_day(
    dates: tuple[date, date] = Depends(date_range),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> BestWorstDayResponse:
    start, end = dates
    lower, upper = utc_window(start, end, user.tz_offset_minutes)
    entries = await storage.fetch_entries_between(user.id, lower, upper)
    result = best_and_worst_day(entries, start, end, tz_offset_minutes=user.tz_offset_minutes)
    USER_API_COUNTER.labels(endpoint="best_worst_day").inc()
    return BestWorstDayResponse(
        best_entry=KeyEntry.model_validate(result.best_entry) if result.best_entry else None,
        worst_entry=KeyEntry.model_validate(result.worst_entry) if result.worst_entry else None,
    )


@router.get("/analytics/compare-months", response_model=MonthComparisonResponse)
async def compare_months(
    generator: InsightGenerator = Depends(get_insight_generator),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> MonthComparisonResponse:
    offset = user.tz_offset_minutes
    today = generator.local_today(offset)
    current_start, current_end = month_date_range(today.year, today.month)
    previous_start, previous_end = month_date_range(*shift_month(today.year, today.month, -1))

    lower, upper = utc_window(previous_start, current_end, offset)
    entries = await storage.fetch_entries_between(user.id, lower, upper)
    comparison = month_over_month(
        period_mean(entries, current_start, current_end, tz_offset_minutes=offset),
        period_mean(entries, previous_start, previous_end, tz_offset_minutes=offset),
    )
    USER_API_COUNTER.labels(endpoint="compare_months").inc()
    return MonthComparisonResponse(
        current_mood_rating=comparison.current,
        previous_mood_rating=comparison.previous,
        mood_rating_difference=comparison.difference,
    )


@router.get("/analytics/yearly", response_model=YearlyMoodResponse)
async def yearly_mood(
    year: int = Query(..., ge=1970, le=9999),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> YearlyMoodResponse:
    offset = user.tz_offset_minutes
    lower, upper = utc_window(date(year, 1, 1), date(year, 12, 31), offset)
    entries = await storage.fetch_entries_between(user.id, lower, upper)
    months = yearly_monthly_rollup(entries, year, tz_offset_minutes=offset)
    USER_API_COUNTER.labels(endpoint="yearly_mood").inc()
    return YearlyMoodResponse(
        year=year,
        months=[
            MonthlyMoodPoint(
                month=item.month,
                mood_rating=item.mood_rating,
                num_entries=item.num_entries,
            )
            for item in months
        ],
    )


@router.get("/analytics/themes", response_model=ThemesResponse)
async def themes(
    dates: tuple[date, date] = Depends(date_range),
    limit: int = Query(default=10, ge=1, le=50),
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> ThemesResponse:
    start, end = dates
    lower, upper = utc_window(start, end, user.tz_offset_minutes)
    entries = await storage.fetch_entries_between(user.id, lower, upper)
    items = main_themes(entries, start, end, limit=limit, tz_offset_minutes=user.tz_offset_minutes)
    USER_API_COUNTER.labels(endpoint="themes").inc()
    return ThemesResponse(
        themes=[
            ThemeItem(
                tag=item.tag,
                frequency=item.frequency,
                relative_percentage=item.relative_percentage,
            )
            for item in items
        ]
    )


# -- entries --------------------------------------------------------------
@router.post("/entries", response_model=EntryModel, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: EntryCreate,
    storage: StorageService = Depends(get_storage_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    user: User = Depends(resolve_authenticated_user),
) -> EntryModel:
    _enforce_rate_limit(limiter, f"entry:{user.id}", ENTRY_LIMIT_PER_MINUTE)
    entry = await storage.add_entry(
        user_id=user.id,
        content=payload.content,
        title=payload.title,
        tags=payload.tags,
        is_draft=payload.is_draft,
    )
    USER_API_COUNTER.labels(endpoint="entries_post").inc()
    return EntryModel.model_validate(entry)


@router.get("/entries", response_model=EntryListResponse)
async def list_entries(
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
) -> EntryListResponse:
    rows, total = await storage.list_entries(user.id, page=page, per_page=per_page)
    USER_API_COUNTER.labels(endpoint="entries_get").inc()
    return EntryListResponse(
        entries=[EntryModel.model_validate(row) for row in rows],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=_total_pages(total, per_page),
    )


@router.get("/entries/{entry_id}", response_model=EntryModel)
async def read_entry(
    entry_id: int,
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> EntryModel:
    entry = await storage.get_entry(user.id, entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entry not found")
    return EntryModel.model_validate(entry)


@router.patch("/entries/{entry_id}", response_model=EntryModel)
async def update_entry(
    entry_id: int,
    payload: EntryUpdate,
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> EntryModel:
    fields = payload.model_dump(exclude_unset=True)
    entry = await storage.update_entry(user.id, entry_id, **fields)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entry not found")
    return EntryModel.model_validate(entry)


@router.post("/entries/{entry_id}/analysis", response_model=EntryModel)
async def apply_entry_analysis(
    entry_id: int,
    payload: EntryAnalysis,
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> EntryModel:
    entry = await storage.apply_entry_analysis(
        user.id,
        entry_id,
        mood_rating=payload.mood_rating,
        tags=payload.tags,
    )
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entry not found")
    return EntryModel.model_validate(entry)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: int,
    storage: StorageService = Depends(get_storage_service),
    user: User = Depends(resolve_authenticated_user),
) -> Response:
    deleted = await storage.delete_entry(user.id, entry_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entry not found")
    USER_API_COUNTER.labels(endpoint="entries_delete").inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
