from __future__ import annotations

import logging

import httpx

from cryptoiq.errors import UpstreamError
from cryptoiq.schemas.news import TrendingCoin

logger = logging.getLogger(__name__)

_SIMPLE_PRICE_PATH = "/simple/price"
_TRENDING_PATH = "/search/trending"


class PriceClient:
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def _get_json(self, path: str, params: dict[str, str] | None = None):
        try:
            response = await self._client.get(f"{self._base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("CoinGecko request %s failed: %s", path, exc)
            raise UpstreamError("Price service unavailable") from exc

    async def fetch_usd_prices(self, coin_ids: list[str]) -> dict[str, float]:
        """Current USD price per CoinGecko id, one request for all ids."""
        if not coin_ids:
            return {}
        payload = await self._get_json(
            _SIMPLE_PRICE_PATH,
            {"ids": ",".join(coin_ids), "vs_currencies": "usd"},
        )
        if not isinstance(payload, dict):
            raise UpstreamError("Unexpected price payload")

        prices: dict[str, float] = {}
        for coin_id, quote in payload.items():
            if not isinstance(quote, dict):
                continue
            usd = quote.get("usd")
            if isinstance(usd, (int, float)):
                prices[coin_id] = float(usd)
        return prices

    async def fetch_trending(self, limit: int) -> list[TrendingCoin]:
        payload = await self._get_json(_TRENDING_PATH)
        coins = payload.get("coins") if isinstance(payload, dict) else None
        if not isinstance(coins, list):
            raise UpstreamError("Unexpected trending payload")

        trending: list[TrendingCoin] = []
        for entry in coins[:limit]:
            item = entry.get("item") if isinstance(entry, dict) else None
            if not isinstance(item, dict) or not item.get("id"):
                continue
            trending.append(
                TrendingCoin(
                    id=item["id"],
                    name=item.get("name") or item["id"],
                    symbol=(item.get("symbol") or "").upper(),
                    market_cap_rank=item.get("market_cap_rank"),
                )
            )
        return trending
