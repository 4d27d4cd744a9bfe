from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

IneligibleKind = Literal["future", "past", "locked"]


class InsightError(Exception):
    """Base class for insight pipeline failures surfaced to callers."""

    reason: str = "error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "reason": self.reason}


class InvalidPeriodKey(InsightError):
    """Raised when a period key does not match its period type."""

    reason = "invalid_period"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class IneligiblePeriod(InsightError):
    """Generation is not permitted for the requested period right now."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, kind: IneligibleKind, detail: str, days_remaining: int | None = None) -> None:
        super().__init__(detail)
        self.kind = kind
        self.reason = kind
        self.days_remaining = days_remaining

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.days_remaining is not None:
            payload["days_remaining"] = self.days_remaining
        return payload


class InsufficientData(InsightError):
    """No entries to build an insight from."""

    reason = "insufficient_data"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str = "not enough entries") -> None:
        super().__init__(detail)


class GenerationTimeout(InsightError):
    """The text generation collaborator did not answer in time."""

    reason = "generation_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class GenerationUpstreamError(InsightError):
    """The text generation collaborator failed."""

    reason = "generation_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InsightError)
    async def insight_error_handler(request: Request, exc: InsightError) -> JSONResponse:
        if isinstance(exc, (GenerationTimeout, GenerationUpstreamError)):
            logger.warning(
                "insight generation failed: %s",
                exc.detail,
                extra={"path": request.url.path, "outcome": exc.reason},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


__all__ = [
    "GenerationTimeout",
    "GenerationUpstreamError",
    "IneligiblePeriod",
    "InsightError",
    "InsufficientData",
    "InvalidPeriodKey",
    "register_exception_handlers",
]
