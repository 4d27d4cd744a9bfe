from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from openai import APITimeoutError

from ..ai.openai_client import Completion, OpenAIClient
from ..core.config import Settings
from ..core.errors import (
    GenerationTimeout,
    GenerationUpstreamError,
    IneligiblePeriod,
    InsufficientData,
)
from ..metrics import AI_TOKENS, INSIGHT_GENERATIONS
from ..schemas.insights import InsightPeriod
from ..utils.singleflight import SingleFlight
from ..utils.timeouts import retry_async, with_timeout
from .eligibility import Eligibility, EligibilityGate, EligibilityState
from .mood import period_mean, utc_window
from .parsing import Fallback, parse_generation, to_structured
from .periods import Period, parse_period_key
from .prompt import SYSTEM_PROMPT, build_insight_prompt

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..db.models import Insight
    from ..services.storage import StorageService

logger = logging.getLogger(__name__)


def _require_existing(period: Period) -> None:
    if not period.exists:
        raise InsufficientData(f"{period.key} is not a week of ISO year {period.year}")


@dataclass(frozen=True)
class GenerationOutcome:
    insight: Insight
    created: bool


class InsightGenerator:
    """Generate one structured insight per user and period.

    The eligibility gate runs first, an existing insight short-circuits the
    pipeline, and the final write is a create-if-absent so that duplicate
    requests converge on a single stored row.
    """

    def __init__(
        self,
        storage: StorageService,
        client: OpenAIClient,
        *,
        settings: Settings,
        gate: EligibilityGate | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._client = client
        self._settings = settings
        self._gate = gate or EligibilityGate()
        self._clock = clock or datetime.utcnow
        self._inflight: SingleFlight[tuple[int, str, str], GenerationOutcome] = SingleFlight()

    def local_today(self, tz_offset_minutes: int = 0) -> date:
        return (self._clock() + timedelta(minutes=tz_offset_minutes)).date()

    def eligibility(self, period: Period, tz_offset_minutes: int = 0) -> Eligibility:
        _require_existing(period)
        return self._gate.check(period, self.local_today(tz_offset_minutes))

    async def read(
        self,
        user_id: int,
        period_type: str,
        period_key: str,
        *,
        tz_offset_minutes: int = 0,
    ) -> Insight | None:
        """Stored insight for the period; future periods never have one."""

        period = parse_period_key(period_type, period_key)
        if not period.exists:
            return None
        if self.eligibility(period, tz_offset_minutes).state is EligibilityState.FUTURE:
            return None
        return await self._storage.get_insight(user_id, period.type, period.key)

    async def generate(
        self,
        user_id: int,
        period_type: str,
        period_key: str,
        *,
        locale: str = "ru",
        tz_offset_minutes: int = 0,
    ) -> GenerationOutcome:
        period = parse_period_key(period_type, period_key)
        _require_existing(period)

        try:
            self._gate.ensure_can_generate(period, self.local_today(tz_offset_minutes))
        except IneligiblePeriod as exc:
            INSIGHT_GENERATIONS.labels(type=period.type, outcome=exc.reason).inc()
            logger.info(
                "insight period not eligible",
                extra={
                    "user_id": user_id,
                    "period_type": period.type,
                    "period_key": period.key,
                    "outcome": exc.reason,
                },
            )
            raise

        key = (user_id, period.type, period.key)
        return await self._inflight.run(
            key,
            lambda: self._generate_once(user_id, period, locale, tz_offset_minutes),
        )

    async def _generate_once(
        self,
        user_id: int,
        period: Period,
        locale: str,
        tz_offset_minutes: int,
    ) -> GenerationOutcome:
        log_extra = {"user_id": user_id, "period_type": period.type, "period_key": period.key}

        existing = await self._storage.get_insight(user_id, period.type, period.key)
        if existing is not None:
            INSIGHT_GENERATIONS.labels(type=period.type, outcome="existing").inc()
            return GenerationOutcome(existing, created=False)

        start, end = period.date_range()
        lower, upper = utc_window(start, end, tz_offset_minutes)
        entries = await self._storage.fetch_entries_between(user_id, lower, upper)
        if not entries:
            INSIGHT_GENERATIONS.labels(type=period.type, outcome="insufficient_data").inc()
            logger.info("no entries for insight period", extra={**log_extra, "outcome": "insufficient_data"})
            raise InsufficientData()

        mood_mean = period_mean(entries, start, end, tz_offset_minutes=tz_offset_minutes)
        prompt = build_insight_prompt(
            period,
            entries,
            locale=locale,
            mood_mean=mood_mean,
            tz_offset_minutes=tz_offset_minutes,
            max_entry_chars=self._settings.insights_max_entry_chars,
        )
        completion = await self._complete(prompt, log_extra)

        header = InsightPeriod(type=period.type, label=period.label(locale), key=period.key)
        result = parse_generation(completion.text, period=header, language=locale)
        if isinstance(result, Fallback):
            logger.info("generation reply was not structured, storing as text", extra=log_extra)
        content = to_structured(
            result,
            period=header,
            language=locale,
            tokens_used=completion.tokens_used,
        )

        insight, created = await self._storage.create_insight_if_absent(
            user_id=user_id,
            insight_type=period.type,
            period_key=period.key,
            period_label=header.label,
            content=content.model_dump_json(),
        )
        outcome = "created" if created else "existing"
        INSIGHT_GENERATIONS.labels(type=period.type, outcome=outcome).inc()
        logger.info("insight generation finished", extra={**log_extra, "outcome": outcome})
        return GenerationOutcome(insight, created=created)

    async def _complete(self, prompt: str, log_extra: dict[str, object]) -> Completion:
        settings = self._settings
        if not self._client.available:
            INSIGHT_GENERATIONS.labels(type=log_extra["period_type"], outcome="upstream_error").inc()
            logger.warning("text generation is not configured", extra=log_extra)
            raise GenerationUpstreamError("text generation is not configured")

        async def _call() -> Completion:
            return await self._client.complete(
                model=settings.openai_model_insights,
                prompt=prompt,
                max_tokens=settings.insights_max_tokens,
                system_prompt=SYSTEM_PROMPT,
            )

        try:
            completion = await with_timeout(
                retry_async(
                    _call,
                    attempts=settings.insights_retry_attempts,
                    delay=settings.insights_retry_delay_seconds,
                ),
                settings.insights_generation_timeout_seconds,
            )
        except (TimeoutError, APITimeoutError) as exc:
            INSIGHT_GENERATIONS.labels(type=log_extra["period_type"], outcome="timeout").inc()
            raise GenerationTimeout("text generation timed out, try again later") from exc
        except Exception as exc:
            INSIGHT_GENERATIONS.labels(type=log_extra["period_type"], outcome="upstream_error").inc()
            logger.exception("text generation failed", extra=log_extra)
            raise GenerationUpstreamError("text generation failed, try again later") from exc

        AI_TOKENS.labels(direction="in").inc(completion.tokens_in)
        AI_TOKENS.labels(direction="out").inc(completion.tokens_out)
        return completion


__all__ = ["GenerationOutcome", "InsightGenerator"]
