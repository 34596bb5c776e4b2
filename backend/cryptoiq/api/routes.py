import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoiq.api.deps import (
    get_current_user,
    get_news_aggregator,
    get_optional_user,
    get_trending_coins,
)
from cryptoiq.calculator.profit import calculate_profit
from cryptoiq.db.models import Profile
from cryptoiq.db.session import get_session
from cryptoiq.news.aggregator import NewsAggregator
from cryptoiq.news.trending import TrendingCoins
from cryptoiq.payments.entitlement import get_or_create_profile
from cryptoiq.schemas.auth import AuthenticatedUser, ProfileResponse
from cryptoiq.schemas.calculator import CalculateRequest, ProfitResult
from cryptoiq.schemas.news import NewsItem, Tier, TrendingCoin

logger = logging.getLogger(__name__)

router = APIRouter()


async def _entitled_tier(db: AsyncSession, user: AuthenticatedUser | None) -> Tier:
    if user is None:
        return "free"
    try:
        profile = await db.get(Profile, user.id)
    except SQLAlchemyError as exc:
        logger.warning("Could not load profile %s, serving free tier: %s", user.id, exc)
        return "free"
    if profile is not None and profile.is_premium:
        return "premium"
    return "free"


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "CryptoIQ backend is running"


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/calculate", response_model=ProfitResult)
def calculate_endpoint(payload: CalculateRequest) -> ProfitResult:
    return calculate_profit(payload.amount, payload.buy_price, payload.sell_price)


@router.get("/news", response_model=list[NewsItem])
async def news_endpoint(
    tier: Tier | None = None,
    user: AuthenticatedUser | None = Depends(get_optional_user),
    aggregator: NewsAggregator = Depends(get_news_aggregator),
    db: AsyncSession = Depends(get_session),
) -> list[NewsItem]:
    # The query string can narrow a premium caller's view but never widen a free one.
    entitled = await _entitled_tier(db, user)
    effective: Tier = "free" if tier == "free" else entitled
    return await aggregator.get_news(effective)


@router.get("/trending", response_model=list[TrendingCoin])
async def trending_endpoint(
    trending: TrendingCoins = Depends(get_trending_coins),
) -> list[TrendingCoin]:
    return await trending.get_trending()


@router.get("/profile", response_model=ProfileResponse)
async def profile_endpoint(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProfileResponse:
    profile = await get_or_create_profile(db, user)
    return ProfileResponse(id=profile.id, email=profile.email, role=profile.role)
