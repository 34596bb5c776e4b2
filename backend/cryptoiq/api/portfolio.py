import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoiq.api.deps import get_current_user, get_price_client
from cryptoiq.config.settings import settings
from cryptoiq.db.models import PortfolioHolding
from cryptoiq.db.session import get_session
from cryptoiq.errors import NotFoundError, StoreError, ValidationError
from cryptoiq.providers.coingecko import PriceClient
from cryptoiq.schemas.auth import AuthenticatedUser
from cryptoiq.schemas.portfolio import HoldingRequest, HoldingResponse, PortfolioSummary
from cryptoiq.valuation.portfolio import value_portfolio

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portfolio", tags=["portfolio"])


def _validate_holding(payload: HoldingRequest) -> tuple[str, float, float]:
    coin = payload.coin.strip().upper()
    if not coin:
        raise ValidationError("coin is required")
    if not payload.amount > 0:
        raise ValidationError("amount must be greater than 0")
    if not payload.buy_price > 0:
        raise ValidationError("buy_price must be greater than 0")
    return coin, payload.amount, payload.buy_price


async def _load_holdings(db: AsyncSession, user_id: str) -> list[PortfolioHolding]:
    try:
        result = await db.execute(
            select(PortfolioHolding)
            .where(PortfolioHolding.user_id == user_id)
            .order_by(PortfolioHolding.created_at.desc(), PortfolioHolding.id.desc())
        )
    except SQLAlchemyError as exc:
        raise StoreError.from_exception(exc) from exc
    return list(result.scalars().all())


async def _get_owned(db: AsyncSession, holding_id: int, user_id: str) -> PortfolioHolding:
    try:
        result = await db.execute(
            select(PortfolioHolding).where(
                PortfolioHolding.id == holding_id,
                PortfolioHolding.user_id == user_id,
            )
        )
    except SQLAlchemyError as exc:
        raise StoreError.from_exception(exc) from exc
    holding = result.scalar_one_or_none()
    if holding is None:
        raise NotFoundError("Holding not found")
    return holding


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreError.from_exception(exc) from exc


@router.get("", response_model=list[HoldingResponse])
async def list_holdings(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[HoldingResponse]:
    holdings = await _load_holdings(db, user.id)
    return [HoldingResponse.model_validate(holding) for holding in holdings]


@router.post("", response_model=HoldingResponse, status_code=status.HTTP_201_CREATED)
async def add_holding(
    payload: HoldingRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> HoldingResponse:
    coin, amount, buy_price = _validate_holding(payload)
    holding = PortfolioHolding(user_id=user.id, coin=coin, amount=amount, buy_price=buy_price)
    db.add(holding)
    await _commit(db)
    await db.refresh(holding)
    return HoldingResponse.model_validate(holding)


@router.get("/summary", response_model=PortfolioSummary)
async def portfolio_summary(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    prices: PriceClient = Depends(get_price_client),
) -> PortfolioSummary:
    holdings = await _load_holdings(db, user.id)
    return await value_portfolio(
        holdings,
        prices,
        settings.prices.symbol_ids,
        failure_policy=settings.prices.failure_policy,
    )


@router.put("/{holding_id}", response_model=HoldingResponse)
async def update_holding(
    holding_id: int,
    payload: HoldingRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> HoldingResponse:
    coin, amount, buy_price = _validate_holding(payload)
    holding = await _get_owned(db, holding_id, user.id)
    holding.coin = coin
    holding.amount = amount
    holding.buy_price = buy_price
    await _commit(db)
    await db.refresh(holding)
    return HoldingResponse.model_validate(holding)


@router.delete("/{holding_id}")
async def delete_holding(
    holding_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    holding = await _get_owned(db, holding_id, user.id)
    await db.delete(holding)
    await _commit(db)
    return {"success": True}
