from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from ..db.models import User
from ..services.storage import StorageService
from .config import SUPPORTED_LOCALES

MAX_TZ_OFFSET_MINUTES = 14 * 60


def _parse_tz_offset(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        offset = int(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="invalid timezone offset",
        ) from exc
    if abs(offset) > MAX_TZ_OFFSET_MINUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="timezone offset out of range",
        )
    return offset


async def resolve_authenticated_user(
    request: Request,
    external_id: str | None = Header(default=None, alias="X-Journal-User"),
    locale: str | None = Header(default=None, alias="X-Journal-Locale"),
    tz_offset: str | None = Header(default=None, alias="X-Journal-Tz-Offset"),
) -> User:
    """Resolve the caller from the identity header, creating the user on first sight.

    Optional locale and timezone headers update the stored preferences.
    """

    if not external_id or not external_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication required",
        )

    locale_norm = locale.lower() if locale and locale.lower() in SUPPORTED_LOCALES else None
    storage: StorageService = request.app.state.storage_service
    user = await storage.ensure_user(
        external_id.strip(),
        locale=locale_norm,
        tz_offset_minutes=_parse_tz_offset(tz_offset),
    )
    request.state.current_user_id = user.id
    return user
