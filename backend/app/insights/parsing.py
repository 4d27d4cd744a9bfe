from __future__ import annotations

import json
import re
from dataclasses import dataclass

from pydantic import ValidationError

from ..schemas.insights import InsightMeta, InsightPeriod, StructuredInsight

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", flags=re.DOTALL)


@dataclass(frozen=True)
class Parsed:
    insight: StructuredInsight


@dataclass(frozen=True)
class Fallback:
    raw_text: str


ParseResult = Parsed | Fallback


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text.strip())
    return match.group(1) if match else text.strip()


def parse_generation(raw_text: str, *, period: InsightPeriod, language: str) -> ParseResult:
    """Classify a collaborator reply as a structured insight or plain text.

    The ``period`` and ``language`` blocks always come from the caller; the
    model only contributes the narrative fields.
    """

    try:
        payload = json.loads(_strip_fences(raw_text))
    except ValueError:
        return Fallback(raw_text.strip())
    if not isinstance(payload, dict):
        return Fallback(raw_text.strip())

    payload["period"] = period.model_dump()
    payload["language"] = language
    payload.pop("meta", None)
    try:
        return Parsed(StructuredInsight.model_validate(payload))
    except ValidationError:
        return Fallback(raw_text.strip())


def to_structured(
    result: ParseResult,
    *,
    period: InsightPeriod,
    language: str,
    tokens_used: int | None = None,
) -> StructuredInsight:
    meta = InsightMeta(tokens_used=tokens_used) if tokens_used is not None else None
    if isinstance(result, Parsed):
        return result.insight.model_copy(update={"meta": meta})
    return StructuredInsight(
        period=period,
        language=language,
        overview=result.raw_text,
        meta=meta,
    )


__all__ = ["Fallback", "ParseResult", "Parsed", "parse_generation", "to_structured"]
