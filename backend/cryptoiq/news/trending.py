from __future__ import annotations

import logging
from typing import Awaitable, Callable

from cryptoiq.cache import TTLCache
from cryptoiq.errors import UpstreamError
from cryptoiq.schemas.news import TrendingCoin

logger = logging.getLogger(__name__)


class TrendingCoins:
    def __init__(
        self,
        fetcher: Callable[[int], Awaitable[list[TrendingCoin]]],
        cache: TTLCache[list[TrendingCoin]],
        limit: int = 10,
    ) -> None:
        self._fetcher = fetcher
        self.cache = cache
        self.limit = limit

    async def get_trending(self) -> list[TrendingCoin]:
        try:
            return await self.cache.get_or_refresh(lambda: self._fetcher(self.limit))
        except UpstreamError:
            stale = self.cache.value or []
            logger.warning("Trending refresh failed, serving %d cached coins", len(stale))
            return list(stale)
