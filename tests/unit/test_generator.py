from __future__ import annotations

import asyncio
import json
from datetime import datetime
from types import SimpleNamespace

import pytest

from backend.app.ai.openai_client import Completion, OpenAIClient
from backend.app.core.errors import (
    GenerationTimeout,
    GenerationUpstreamError,
    IneligiblePeriod,
    InsufficientData,
    InvalidPeriodKey,
)
from backend.app.insights import InsightGenerator, parse_period_key
from backend.app.schemas.insights import StructuredInsight
from backend.app.services.storage import StorageService

STRUCTURED_REPLY = json.dumps(
    {
        "overview": "June had a bright end.",
        "mood_trend": {"summary": "Up then down"},
        "themes": [{"tag": "walk", "note": "evening walks"}],
        "notable_moments": [{"title": "Park", "date": "2025-06-26", "summary": "Sunset"}],
        "suggestions": ["Keep walking"],
    }
)


class _FakeClient:
    def __init__(self, reply: str = STRUCTURED_REPLY, *, delay: float = 0, error: Exception | None = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []
        self.available = True

    async def complete(self, **kwargs) -> Completion:
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Completion(self.reply, 100, 50)


def _clock(value: datetime):
    return lambda: value


async def _seed_june(storage: StorageService, external_id: str = "june-user") -> int:
    user = await storage.ensure_user(external_id)
    for created_at, mood in ((datetime(2025, 6, 26, 10), 1.0), (datetime(2025, 6, 28, 10), -0.5)):
        entry = await storage.add_entry(
            user_id=user.id,
            content="Сегодня гулял в парке",
            created_at=created_at,
        )
        await storage.apply_entry_analysis(user.id, entry.id, mood_rating=mood, tags=["walk"])
    return user.id


def _generator(storage, client, settings, now: datetime) -> InsightGenerator:
    return InsightGenerator(storage, client, settings=settings, clock=_clock(now))


@pytest.mark.anyio
async def test_monthly_insight_generated_inside_window(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    client = _FakeClient()
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 27, 12))

    outcome = await generator.generate(user_id, "monthly", "2025-06", locale="ru")

    assert outcome.created is True
    assert outcome.insight.period_key == "2025-06"
    assert outcome.insight.period_label == "Июнь 2025"
    content = StructuredInsight.model_validate_json(outcome.insight.content)
    assert content.overview == "June had a bright end."
    assert content.period.label == "Июнь 2025"
    assert content.language == "ru"
    assert content.meta is not None and content.meta.tokens_used == 150
    assert "Записей: 2" in client.calls[0]["prompt"]


@pytest.mark.anyio
async def test_repeated_generation_returns_stored_insight(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    client = _FakeClient()
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 27, 12))

    first = await generator.generate(user_id, "monthly", "2025-06")
    second = await generator.generate(user_id, "monthly", "2025-06")

    assert first.created is True
    assert second.created is False
    assert second.insight.id == first.insight.id
    assert len(client.calls) == 1


@pytest.mark.anyio
async def test_concurrent_generation_persists_one_insight(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    client = _FakeClient(delay=0.05)
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 27, 12))

    outcomes = await asyncio.gather(
        *(generator.generate(user_id, "monthly", "2025-06") for _ in range(4))
    )

    assert len({outcome.insight.id for outcome in outcomes}) == 1
    assert len({outcome.insight.content for outcome in outcomes}) == 1
    assert len(client.calls) == 1
    _, total = await storage.list_insights(user_id)
    assert total == 1


@pytest.mark.anyio
async def test_plain_text_reply_is_stored_as_overview(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    client = _FakeClient("Everything's fine this week")
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 28, 12))

    outcome = await generator.generate(user_id, "weekly", "2025-W26", locale="en")

    content = StructuredInsight.model_validate_json(outcome.insight.content)
    assert content.overview == "Everything's fine this week"
    assert content.themes == []
    assert content.notable_moments == []
    assert content.suggestions == []
    assert outcome.insight.period_label == "Week 26, 2025"


@pytest.mark.anyio
async def test_locked_period_reports_countdown(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    client = _FakeClient()
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 20, 12))

    with pytest.raises(IneligiblePeriod) as excinfo:
        await generator.generate(user_id, "monthly", "2025-06")

    assert excinfo.value.reason == "locked"
    assert excinfo.value.days_remaining == 6
    assert client.calls == []


@pytest.mark.anyio
async def test_past_and_future_periods_rejected(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    generator = _generator(storage, _FakeClient(), insight_settings, datetime(2025, 6, 27, 12))

    with pytest.raises(IneligiblePeriod) as past:
        await generator.generate(user_id, "monthly", "2025-05")
    with pytest.raises(IneligiblePeriod) as future:
        await generator.generate(user_id, "monthly", "2025-07")

    assert past.value.reason == "past"
    assert future.value.reason == "future"


@pytest.mark.anyio
async def test_timezone_offset_moves_today(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    # 23:30 UTC Friday is already Saturday at UTC+3
    generator = _generator(storage, _FakeClient(), insight_settings, datetime(2025, 6, 27, 23, 30))

    with pytest.raises(IneligiblePeriod):
        await generator.generate(user_id, "weekly", "2025-W26")
    outcome = await generator.generate(user_id, "weekly", "2025-W26", tz_offset_minutes=180)
    assert outcome.created is True


@pytest.mark.anyio
async def test_missing_week_53_is_insufficient_data(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    generator = _generator(storage, _FakeClient(), insight_settings, datetime(2025, 12, 28, 12))

    with pytest.raises(InsufficientData):
        await generator.generate(user_id, "weekly", "2025-W53")
    with pytest.raises(InsufficientData):
        generator.eligibility(parse_period_key("weekly", "2025-W53"))
    with pytest.raises(InvalidPeriodKey):
        await generator.generate(user_id, "weekly", "2025-53")


@pytest.mark.anyio
async def test_empty_period_is_insufficient_data(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user = await storage.ensure_user("empty-user")
    draft = await storage.add_entry(
        user_id=user.id,
        content="draft only",
        is_draft=True,
        created_at=datetime(2025, 6, 27, 9),
    )
    assert draft.id > 0
    client = _FakeClient()
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 27, 12))

    with pytest.raises(InsufficientData):
        await generator.generate(user.id, "monthly", "2025-06")

    assert client.calls == []
    assert await storage.get_insight(user.id, "monthly", "2025-06") is None


@pytest.mark.anyio
async def test_slow_collaborator_times_out(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    insight_settings.insights_generation_timeout_seconds = 0.05
    generator = _generator(storage, _FakeClient(delay=1), insight_settings, datetime(2025, 6, 27, 12))

    with pytest.raises(GenerationTimeout):
        await generator.generate(user_id, "monthly", "2025-06")

    assert await storage.get_insight(user_id, "monthly", "2025-06") is None


@pytest.mark.anyio
async def test_collaborator_failure_is_upstream_error(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    insight_settings.insights_retry_attempts = 2
    client = _FakeClient(error=RuntimeError("503 from provider"))
    generator = _generator(storage, client, insight_settings, datetime(2025, 6, 27, 12))

    with pytest.raises(GenerationUpstreamError):
        await generator.generate(user_id, "monthly", "2025-06")

    assert len(client.calls) == 2
    assert await storage.get_insight(user_id, "monthly", "2025-06") is None


@pytest.mark.anyio
async def test_unconfigured_client_stores_nothing(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    generator = _generator(storage, OpenAIClient(None), insight_settings, datetime(2025, 6, 27, 12))

    with pytest.raises(GenerationUpstreamError):
        await generator.generate(user_id, "monthly", "2025-06")

    assert await storage.get_insight(user_id, "monthly", "2025-06") is None

    configured = _generator(storage, _FakeClient(), insight_settings, datetime(2025, 6, 27, 12))
    outcome = await configured.generate(user_id, "monthly", "2025-06")
    assert outcome.created is True
    assert StructuredInsight.model_validate_json(outcome.insight.content).overview == "June had a bright end."

@pytest.mark.anyio
async def test_read_hides_future_periods(temp_session_factory, insight_settings) -> None:
    storage = StorageService(temp_session_factory)
    user_id = await _seed_june(storage)
    generator = _generator(storage, _FakeClient(), insight_settings, datetime(2025, 6, 27, 12))

    assert await generator.read(user_id, "monthly", "2025-06") is None
    await generator.generate(user_id, "monthly", "2025-06")

    stored = await generator.read(user_id, "monthly", "2025-06")
    assert stored is not None
    assert await generator.read(user_id, "monthly", "2025-07") is None
    assert await generator.read(user_id, "weekly", "2025-W53") is None


def test_local_today_uses_offset(insight_settings) -> None:
    generator = InsightGenerator(
        SimpleNamespace(),
        _FakeClient(),
        settings=insight_settings,
        clock=_clock(datetime(2025, 6, 30, 22, 0)),
    )
    assert generator.local_today().isoformat() == "2025-06-30"
    assert generator.local_today(180).isoformat() == "2025-07-01"
