from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HoldingRequest(BaseModel):
    coin: str
    amount: float
    buy_price: float


class HoldingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    coin: str
    amount: float
    buy_price: float
    created_at: datetime.datetime | None = None


class AssetValuation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | None = None
    coin: str
    amount: float
    buy_price: float
    current_price: float
    invested: float
    current_value: float
    profit: float
    profit_percent: float


class PortfolioSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    invested: float = 0.0
    current_value: float = 0.0
    profit: float = 0.0
    profit_percent: float = 0.0
    prices_available: bool = True
    assets: list[AssetValuation] = Field(default_factory=list)
