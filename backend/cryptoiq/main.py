from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cryptoiq.api import payments, portfolio, routes
from cryptoiq.cache import TTLCache
from cryptoiq.config.settings import Settings, settings
from cryptoiq.errors import AppError
from cryptoiq.logging_config import setup_logging
from cryptoiq.news.aggregator import NewsAggregator
from cryptoiq.news.trending import TrendingCoins
from cryptoiq.providers.coingecko import PriceClient
from cryptoiq.providers.news_feed import fetch_feed

logger = logging.getLogger(__name__)


def build_news_aggregator(http: httpx.AsyncClient, config: Settings) -> NewsAggregator:
    news = config.news

    async def fetcher(limit: int):
        return await fetch_feed(http, news.feed_url, limit, news.source_name)

    return NewsAggregator(
        fetcher,
        TTLCache(news.ttl_seconds, name="news"),
        max_items=news.max_items,
        free_items=news.free_items,
        fail_mode=news.fail_mode,
    )


def build_trending_coins(http: httpx.AsyncClient, config: Settings) -> TrendingCoins:
    prices = PriceClient(http, config.prices.base_url)
    return TrendingCoins(
        prices.fetch_trending,
        TTLCache(config.news.ttl_seconds, name="trending"),
        limit=config.prices.trending_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    http = httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)
    app.state.http_client = http
    app.state.news_aggregator = build_news_aggregator(http, settings)
    app.state.trending_coins = build_trending_coins(http, settings)
    logger.info("CryptoIQ backend started on port %s", settings.port)
    try:
        yield
    finally:
        await http.aclose()
        logger.info("CryptoIQ backend stopped")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error(exc.status_code, message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return _error(400, "Invalid request")
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return _error(400, f"{location}: {message}" if location else message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def create_app() -> FastAPI:
    app = FastAPI(title="CryptoIQ API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials="*" not in settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(routes.router)
    app.include_router(portfolio.router)
    app.include_router(payments.router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("cryptoiq.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
