from __future__ import annotations

import datetime
import logging

import feedparser
import httpx

from cryptoiq.errors import UpstreamError
from cryptoiq.schemas.news import NewsItem

logger = logging.getLogger(__name__)

_USER_AGENT = "CryptoIQ/1.0 (+news)"


def _published(entry) -> str | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime.datetime(*parsed[:6], tzinfo=datetime.UTC).isoformat()
    return entry.get("published") or entry.get("updated")


def _source(entry, default: str) -> str:
    source = entry.get("source")
    if isinstance(source, dict) and source.get("title"):
        return source["title"]
    return default


def parse_feed(content: bytes | str, limit: int, default_source: str) -> list[NewsItem]:
    feed = feedparser.parse(content)
    if feed.bozo and not feed.entries:
        raise UpstreamError(f"Unreadable news feed: {feed.get('bozo_exception')}")

    source_name = feed.feed.get("title") or default_source
    items: list[NewsItem] = []
    for entry in feed.entries:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            continue
        items.append(
            NewsItem(
                title=title,
                link=link,
                published=_published(entry),
                source=_source(entry, source_name),
            )
        )
        if len(items) >= limit:
            break
    return items


async def fetch_feed(
    client: httpx.AsyncClient, url: str, limit: int, default_source: str
) -> list[NewsItem]:
    try:
        response = await client.get(url, headers={"User-Agent": _USER_AGENT})
        response.raise_for_status()
    except httpx.HTTPError as exc:
        # Never hand the URL to feedparser directly: it has no timeout.
        logger.warning("News feed fetch failed for %s: %s", url, exc)
        raise UpstreamError("News feed unavailable") from exc
    return parse_feed(response.content, limit, default_source)
