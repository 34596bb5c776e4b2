from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Holds the most recent successful load of one upstream value.

    A failed load leaves the previous value and timestamp in place. Concurrent
    readers of an expired entry share a single refresh.
    """

    def __init__(
        self,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._value: T | None = None
        self._fetched_at: float | None = None
        self._refresh: asyncio.Future[T] | None = None

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def fetched_at(self) -> float | None:
        return self._fetched_at

    def is_fresh(self) -> bool:
        if not self._value or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl_seconds

    def set(self, value: T) -> None:
        self._value = value
        self._fetched_at = self._clock()

    async def _load(self, loader: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await loader()
            self.set(value)
            logger.info("Refreshed %s", self.name)
            return value
        finally:
            self._refresh = None

    async def get_or_refresh(self, loader: Callable[[], Awaitable[T]]) -> T:
        if self.is_fresh():
            return self._value  # type: ignore[return-value]
        # Every reader of an expired entry awaits the same in-flight load, so a
        # failure reaches all of them at once.
        if self._refresh is None:
            self._refresh = asyncio.ensure_future(self._load(loader))
        return await asyncio.shield(self._refresh)
