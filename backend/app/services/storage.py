from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..db.models import Entry, Insight, User
from ..insights.mood import MOOD_MAX, MOOD_MIN

logger = logging.getLogger(__name__)

_EDITABLE_ENTRY_FIELDS = frozenset({"title", "content", "tags", "is_draft"})


class StorageService:
    """Persist users, journal entries and generated insights."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def healthcheck(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    # -- users -----------------------------------------------------------
    async def ensure_user(
        self,
        external_id: str,
        *,
        locale: str | None = None,
        tz_offset_minutes: int | None = None,
    ) -> User:
        async with self._session_factory() as session:
            user = await session.scalar(select(User).where(User.external_id == external_id))
            if user is None:
                user = User(external_id=external_id)
                session.add(user)
            if locale is not None:
                user.locale = locale
            if tz_offset_minutes is not None:
                user.tz_offset_minutes = tz_offset_minutes
            try:
                await session.commit()
            except IntegrityError:
                # another request created the same user first
                await session.rollback()
                user = await session.scalar(select(User).where(User.external_id == external_id))
                if user is None:
                    raise
                return user
            await session.refresh(user)
            return user

    async def get_user_by_id(self, user_id: int) -> User | None:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    # -- entries ---------------------------------------------------------
    async def add_entry(
        self,
        *,
        user_id: int,
        content: str,
        title: str | None = None,
        tags: list[str] | None = None,
        is_draft: bool = False,
        created_at: datetime | None = None,
    ) -> Entry:
        async with self._session_factory() as session:
            entry = Entry(
                user_id=user_id,
                content=content,
                title=title,
                tags=tags,
                is_draft=is_draft,
            )
            if created_at is not None:
                entry.created_at = created_at
                entry.updated_at = created_at
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry

    async def get_entry(self, user_id: int, entry_id: int) -> Entry | None:
        async with self._session_factory() as session:
            return await session.scalar(
                select(Entry).where(Entry.id == entry_id, Entry.user_id == user_id)
            )

    async def list_entries(
        self,
        user_id: int,
        *,
        page: int = 1,
        per_page: int = 10,
    ) -> tuple[list[Entry], int]:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(Entry).where(Entry.user_id == user_id)
            )
            result = await session.execute(
                select(Entry)
                .where(Entry.user_id == user_id)
                .order_by(Entry.created_at.desc(), Entry.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            return list(result.scalars().all()), int(total or 0)

    async def update_entry(self, user_id: int, entry_id: int, **fields: Any) -> Entry | None:
        unknown = set(fields) - _EDITABLE_ENTRY_FIELDS
        if unknown:
            raise ValueError(f"fields not editable: {sorted(unknown)}")
        async with self._session_factory() as session:
            entry = await session.scalar(
                select(Entry).where(Entry.id == entry_id, Entry.user_id == user_id)
            )
            if entry is None:
                return None
            for key, value in fields.items():
                setattr(entry, key, value)
            await session.commit()
            await session.refresh(entry)
            return entry

    async def apply_entry_analysis(
        self,
        user_id: int,
        entry_id: int,
        *,
        mood_rating: float | None,
        tags: list[str] | None,
        processed_at: datetime | None = None,
    ) -> Entry | None:
        """Store the classifier output for an entry."""

        if mood_rating is not None and not MOOD_MIN <= mood_rating <= MOOD_MAX:
            raise ValueError(f"mood_rating must be within [{MOOD_MIN}, {MOOD_MAX}]")
        async with self._session_factory() as session:
            entry = await session.scalar(
                select(Entry).where(Entry.id == entry_id, Entry.user_id == user_id)
            )
            if entry is None:
                return None
            entry.mood_rating = mood_rating
            entry.tags = tags
            entry.ai_processed_at = processed_at or datetime.utcnow()
            await session.commit()
            await session.refresh(entry)
            return entry

    async def delete_entry(self, user_id: int, entry_id: int) -> bool:
        async with self._session_factory() as session:
            entry = await session.scalar(
                select(Entry).where(Entry.id == entry_id, Entry.user_id == user_id)
            )
            if entry is None:
                return False
            await session.delete(entry)
            await session.commit()
            return True

    async def fetch_entries_between(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        *,
        include_drafts: bool = False,
    ) -> list[Entry]:
        """Entries with ``start <= created_at < end`` in chronological order."""

        query = (
            select(Entry)
            .where(Entry.user_id == user_id)
            .where(Entry.created_at >= start)
            .where(Entry.created_at < end)
        )
        if not include_drafts:
            query = query.where(Entry.is_draft.is_(False))
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(Entry.created_at.asc(), Entry.id.asc()))
            return list(result.scalars().all())

    # -- insights --------------------------------------------------------
    async def get_insight(self, user_id: int, insight_type: str, period_key: str) -> Insight | None:
        async with self._session_factory() as session:
            return await session.scalar(
                select(Insight)
                .where(Insight.user_id == user_id)
                .where(Insight.type == insight_type)
                .where(Insight.period_key == period_key)
            )

    async def create_insight_if_absent(
        self,
        *,
        user_id: int,
        insight_type: str,
        period_key: str,
        period_label: str,
        content: str,
    ) -> tuple[Insight, bool]:
        """Insert an insight unless one exists for the key.

        Returns the stored row and whether this call created it. A
        concurrent insert for the same key loses on the unique constraint
        and gets the winning row back.
        """

        async with self._session_factory() as session:
            existing = await session.scalar(
                select(Insight)
                .where(Insight.user_id == user_id)
                .where(Insight.type == insight_type)
                .where(Insight.period_key == period_key)
            )
            if existing is not None:
                return existing, False

            insight = Insight(
                user_id=user_id,
                type=insight_type,
                period_key=period_key,
                period_label=period_label,
                content=content,
            )
            session.add(insight)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "insight already created concurrently",
                    extra={"user_id": user_id, "period_type": insight_type, "period_key": period_key},
                )
                winner = await session.scalar(
                    select(Insight)
                    .where(Insight.user_id == user_id)
                    .where(Insight.type == insight_type)
                    .where(Insight.period_key == period_key)
                )
                if winner is None:
                    raise
                return winner, False
            await session.refresh(insight)
            return insight, True

    async def list_insights(
        self,
        user_id: int,
        *,
        insight_type: str | None = None,
        page: int = 1,
        per_page: int = 10,
    ) -> tuple[Sequence[Insight], int]:
        filters = [Insight.user_id == user_id]
        if insight_type is not None:
            filters.append(Insight.type == insight_type)
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(Insight).where(*filters))
            result = await session.execute(
                select(Insight)
                .where(*filters)
                .order_by(Insight.created_at.desc(), Insight.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            return list(result.scalars().all()), int(total or 0)


__all__ = ["StorageService"]
