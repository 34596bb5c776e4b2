from __future__ import annotations

import logging
from typing import Awaitable, Callable

from cryptoiq.cache import TTLCache
from cryptoiq.errors import UpstreamError
from cryptoiq.schemas.news import NewsItem, Tier

logger = logging.getLogger(__name__)

NewsFetcher = Callable[[int], Awaitable[list[NewsItem]]]


class NewsAggregator:
    """Serves the shared news cache, sliced by the caller's tier.

    ``fail_mode="empty"`` never breaks the caller: an upstream failure serves the
    stale cache, or an empty list when nothing was ever fetched. ``"error"``
    raises ``UpstreamError`` instead. Either way the cache is left untouched.
    """

    def __init__(
        self,
        fetcher: NewsFetcher,
        cache: TTLCache[list[NewsItem]],
        max_items: int = 10,
        free_items: int = 3,
        fail_mode: str = "empty",
    ) -> None:
        self._fetcher = fetcher
        self.cache = cache
        self.max_items = max_items
        self.free_items = free_items
        self.fail_mode = fail_mode

    async def _load(self) -> list[NewsItem]:
        items = await self._fetcher(self.max_items)
        return list(items[: self.max_items])

    async def get_items(self) -> list[NewsItem]:
        try:
            return await self.cache.get_or_refresh(self._load)
        except UpstreamError:
            if self.fail_mode == "error":
                raise
            stale = self.cache.value or []
            logger.warning("News refresh failed, serving %d cached items", len(stale))
            return list(stale)

    async def get_news(self, tier: Tier) -> list[NewsItem]:
        items = await self.get_items()
        limit = self.max_items if tier == "premium" else self.free_items
        return items[:limit]
