from __future__ import annotations

import math

from cryptoiq.errors import ValidationError
from cryptoiq.schemas.calculator import ProfitResult

CURRENCY_PLACES = 2
COIN_PLACES = 8


def calculate_profit(
    amount: float | None, buy_price: float | None, sell_price: float | None
) -> ProfitResult:
    fields = {"amount": amount, "buyPrice": buy_price, "sellPrice": sell_price}
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise ValidationError("Missing fields: " + ", ".join(missing))
    for name, value in fields.items():
        if not math.isfinite(value):
            raise ValidationError(f"{name} must be a finite number")
        if value <= 0:
            raise ValidationError(f"{name} must be greater than 0")

    coins_bought = amount / buy_price
    new_value = coins_bought * sell_price
    profit = new_value - amount
    growth = profit / amount * 100

    return ProfitResult(
        coins_bought=round(coins_bought, COIN_PLACES),
        new_value=round(new_value, CURRENCY_PLACES),
        profit=round(profit, CURRENCY_PLACES),
        growth=round(growth, CURRENCY_PLACES),
    )
