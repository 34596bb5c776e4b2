from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Tier = Literal["free", "premium"]


class NewsItem(BaseModel):
    title: str
    link: str
    published: Optional[str] = None
    source: str


class TrendingCoin(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    symbol: str
    market_cap_rank: Optional[int] = None
