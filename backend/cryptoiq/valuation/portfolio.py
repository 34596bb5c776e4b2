from __future__ import annotations

import logging
from typing import Iterable, Mapping, Protocol

from cryptoiq.errors import UpstreamError
from cryptoiq.schemas.portfolio import AssetValuation, PortfolioSummary

logger = logging.getLogger(__name__)

MONEY_PLACES = 2

FAILURE_POLICY_ZERO = "zero"
FAILURE_POLICY_FAIL = "fail"


class Holding(Protocol):
    id: int
    coin: str
    amount: object
    buy_price: object


class PriceSource(Protocol):
    async def fetch_usd_prices(self, coin_ids: list[str]) -> dict[str, float]: ...


def _money(value: float) -> float:
    return round(value, MONEY_PLACES)


def _percent(profit: float, invested: float) -> float:
    if invested == 0:
        return 0.0
    return profit / invested * 100


def resolve_coin_id(symbol: str, symbol_ids: Mapping[str, str]) -> str | None:
    return symbol_ids.get(symbol.strip().upper())


async def fetch_prices(
    holdings: Iterable[Holding],
    prices: PriceSource,
    symbol_ids: Mapping[str, str],
    failure_policy: str = FAILURE_POLICY_ZERO,
) -> tuple[dict[str, float], bool]:
    """Fetch quotes for the distinct known coins held; returns (prices, available)."""
    coin_ids = list(
        dict.fromkeys(
            coin_id
            for coin_id in (resolve_coin_id(h.coin, symbol_ids) for h in holdings)
            if coin_id
        )
    )
    if not coin_ids:
        return {}, True
    try:
        return await prices.fetch_usd_prices(coin_ids), True
    except UpstreamError:
        if failure_policy == FAILURE_POLICY_FAIL:
            raise
        logger.warning("Price fetch failed for %s, valuing at zero", ",".join(coin_ids))
        return {}, False


async def value_portfolio(
    holdings: list[Holding],
    prices: PriceSource,
    symbol_ids: Mapping[str, str],
    failure_policy: str = FAILURE_POLICY_ZERO,
) -> PortfolioSummary:
    if not holdings:
        return PortfolioSummary()

    quotes, available = await fetch_prices(holdings, prices, symbol_ids, failure_policy)

    total_invested = 0.0
    total_current = 0.0
    assets: list[AssetValuation] = []
    for holding in holdings:
        amount = float(holding.amount)
        buy_price = float(holding.buy_price)
        coin_id = resolve_coin_id(holding.coin, symbol_ids)
        current_price = quotes.get(coin_id, 0.0) if coin_id else 0.0

        invested = amount * buy_price
        current_value = amount * current_price
        profit = current_value - invested
        total_invested += invested
        total_current += current_value

        assets.append(
            AssetValuation(
                id=holding.id,
                coin=holding.coin,
                amount=amount,
                buy_price=buy_price,
                current_price=current_price,
                invested=_money(invested),
                current_value=_money(current_value),
                profit=_money(profit),
                profit_percent=_money(_percent(profit, invested)),
            )
        )

    total_profit = total_current - total_invested
    return PortfolioSummary(
        invested=_money(total_invested),
        current_value=_money(total_current),
        profit=_money(total_profit),
        profit_percent=_money(_percent(total_profit, total_invested)),
        prices_available=available,
        assets=assets,
    )
