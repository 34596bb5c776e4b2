from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CalculateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    amount: Optional[float] = None
    buy_price: Optional[float] = None
    sell_price: Optional[float] = None


class ProfitResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    coins_bought: float
    new_value: float
    profit: float
    growth: float
