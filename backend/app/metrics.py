from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "journal_requests_total",
    "Total HTTP requests processed by the journal service",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "journal_request_latency_seconds",
    "HTTP request latency in seconds",
    ("method", "path"),
)

REQUEST_ERRORS = Counter(
    "journal_request_errors_total",
    "HTTP requests resulting in server errors",
    ("method", "path", "status"),
)

USER_API_COUNTER = Counter(
    "journal_user_api_hits_total",
    "Authenticated API hits per endpoint",
    ("endpoint",),
)

INSIGHT_GENERATIONS = Counter(
    "journal_insight_generations_total",
    "Insight generation attempts by outcome",
    ("type", "outcome"),
)

AI_TOKENS = Counter(
    "journal_ai_tokens_total",
    "Tokens consumed by text generation",
    ("direction",),
)

__all__ = [
    "AI_TOKENS",
    "INSIGHT_GENERATIONS",
    "REQUEST_COUNT",
    "REQUEST_ERRORS",
    "REQUEST_LATENCY",
    "USER_API_COUNTER",
]
