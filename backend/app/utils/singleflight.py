from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Hashable
from typing import Any, Generic, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class SingleFlight(Generic[K, T]):
    """Collapse concurrent calls for the same key into one execution.

    The first caller starts ``func`` as a task owned by the flight; every
    caller, the first included, awaits it through ``asyncio.shield`` so a
    cancelled caller never cancels the shared work. Once it settles the key
    is forgotten, so later calls run again.
    """

    def __init__(self) -> None:
        self._inflight: dict[K, asyncio.Task[T]] = {}

    def in_flight(self, key: K) -> bool:
        return key in self._inflight

    async def run(self, key: K, func: Callable[[], Coroutine[Any, Any, T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: K, task: asyncio.Task[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # callers re-raise it; mark retrieved for the case where all left
            task.exception()


__all__ = ["SingleFlight"]
