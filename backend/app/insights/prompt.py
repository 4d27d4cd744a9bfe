# ruff: noqa: RUF001

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from .mood import local_date
from .periods import WEEKLY, Period

_SCHEMA_HINT = (
    '{"overview": "...", "mood_trend": {"summary": "..."}, '
    '"themes": [{"tag": "...", "note": "..."}], '
    '"notable_moments": [{"title": "...", "date": "YYYY-MM-DD", "summary": "..."}], '
    '"suggestions": ["..."]}'
)

SYSTEM_PROMPT = (
    "You are a careful, warm journaling companion. "
    "You answer with a single JSON object and nothing else."
)


def _format_mood(value: float | None) -> str:
    if value is None:
        return "–"
    return f"{value:+.1f}"


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def build_insight_prompt(
    period: Period,
    entries: Sequence,
    *,
    locale: str,
    mood_mean: float | None,
    tz_offset_minutes: int = 0,
    max_entry_chars: int = 1500,
) -> str:
    """Compose the generation prompt for ``period`` from journal ``entries``."""

    start, end = period.date_range()
    label = period.label(locale)
    lines: list[str] = []

    if locale == "en":
        scope = "week" if period.type == WEEKLY else "month"
        lines.append(
            f"Write a reflective {scope} summary for the journal owner in English. "
            "Address them directly, stay gentle, avoid diagnoses."
        )
        lines.append(f"Period: {label} ({_range(start, end)}). Entries: {len(entries)}.")
        lines.append(f"Mood scale is -2 (very low) to +2 (very good). Average: {_format_mood(mood_mean)}.")
        lines.append("Entries:")
    else:
        scope = "недели" if period.type == WEEKLY else "месяца"
        lines.append(
            f"Составь бережное резюме {scope} для автора дневника на русском языке. "
            "Обращайся на «ты», без диагнозов и оценок."
        )
        lines.append(f"Период: {label} ({_range(start, end)}). Записей: {len(entries)}.")
        lines.append(
            f"Шкала настроения от -2 (очень плохо) до +2 (очень хорошо). "
            f"Среднее: {_format_mood(mood_mean)}."
        )
        lines.append("Записи:")

    for entry in entries:
        day = local_date(entry.created_at, tz_offset_minutes).isoformat()
        header = f"- [{day}] mood={_format_mood(entry.mood_rating)}"
        if entry.tags:
            header += f" tags={', '.join(entry.tags)}"
        if entry.title:
            header += f" «{_truncate(entry.title, 120)}»"
        lines.append(header)
        lines.append(f"  {_truncate(entry.content, max_entry_chars)}")

    if locale == "en":
        lines.append(
            "Reply with JSON of this shape: "
            f"{_SCHEMA_HINT}. Up to 5 themes, up to 3 notable moments, up to 3 suggestions."
        )
    else:
        lines.append(
            "Ответь JSON такого вида: "
            f"{_SCHEMA_HINT}. До 5 тем, до 3 заметных моментов, до 3 советов."
        )
    return "\n".join(lines)


def _range(start: date, end: date) -> str:
    return f"{start.isoformat()}..{end.isoformat()}"


__all__ = ["SYSTEM_PROMPT", "build_insight_prompt"]
