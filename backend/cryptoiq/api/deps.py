from __future__ import annotations

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cryptoiq.config.settings import settings
from cryptoiq.errors import AuthError
from cryptoiq.news.aggregator import NewsAggregator
from cryptoiq.news.trending import TrendingCoins
from cryptoiq.providers.coingecko import PriceClient
from cryptoiq.providers.identity import IdentityClient
from cryptoiq.providers.paystack import PaystackClient
from cryptoiq.schemas.auth import AuthenticatedUser

_bearer = HTTPBearer(auto_error=False)


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_news_aggregator(request: Request) -> NewsAggregator:
    return request.app.state.news_aggregator


def get_trending_coins(request: Request) -> TrendingCoins:
    return request.app.state.trending_coins


def get_price_client(http: httpx.AsyncClient = Depends(get_http_client)) -> PriceClient:
    return PriceClient(http, settings.prices.base_url)


def get_identity_client(http: httpx.AsyncClient = Depends(get_http_client)) -> IdentityClient:
    return IdentityClient(http, settings.identity.url, settings.identity.service_key)


def get_paystack_client(http: httpx.AsyncClient = Depends(get_http_client)) -> PaystackClient:
    return PaystackClient(http, settings.paystack.secret_key, settings.paystack.base_url)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    identity: IdentityClient = Depends(get_identity_client),
) -> AuthenticatedUser:
    """Auth gate for protected routes: a verified bearer token or 401."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing bearer token")
    return await identity.get_user(credentials.credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    identity: IdentityClient = Depends(get_identity_client),
) -> AuthenticatedUser | None:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await identity.get_user(credentials.credentials)
    except AuthError:
        return None
