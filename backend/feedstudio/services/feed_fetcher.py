import asyncio
import random
import logging
import time
from email.utils import parsedate_to_datetime
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

import feedparser
import httpx
from bs4 import BeautifulSoup

from feedstudio.core.config import settings

logger = logging.getLogger(__name__)

BACKOFF_BASE_DELAY = 1.0  # seconds
BACKOFF_MAX_DELAY = 30.0  # seconds


class FeedParseError(Exception):
    """Raised when a response body is not a usable RSS/Atom document."""


@dataclass
class ParsedItem:
    title: Optional[str] = None
    link: Optional[str] = None
    content: Optional[str] = None
    snippet: Optional[str] = None
    published: Optional[datetime] = None
    author: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    guid: Optional[str] = None


@dataclass
class ParsedFeed:
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    items: List[ParsedItem] = field(default_factory=list)


@dataclass
class FetchResult:
    success: bool
    feed: Optional[ParsedFeed] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # "error" | "timeout" | "parsing_error"
    duration: float = 0.0  # milliseconds, summed over all attempts
    retry_count: int = 0


@dataclass
class FeedValidation:
    is_valid: bool
    feed_title: Optional[str] = None
    feed_description: Optional[str] = None
    error: Optional[str] = None


def backoff_delay(
    attempt: int,
    base: float = BACKOFF_BASE_DELAY,
    cap: float = BACKOFF_MAX_DELAY,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retrying after the given zero-based attempt.

    min(base * 2^attempt + jitter, cap), with jitter drawn from [0, 1).
    """
    return min(base * (2**attempt) + rng(), cap)


def classify_error(exc: BaseException) -> str:
    """Map an exception to the fetch status recorded on the feed."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(exc, FeedParseError):
        return "parsing_error"
    return "error"


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def is_valid_feed_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class FeedFetcher:
    """Fetches and parses RSS/Atom feeds with redirect resolution and retries."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT
        self.user_agent = user_agent or settings.FETCH_USER_AGENT
        self._sleep = sleep
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self._transport,
        )

    async def resolve_redirects(self, url: str) -> str:
        """Follow redirects with a HEAD request; fall back to the original URL."""
        try:
            async with self._client() as client:
                response = await client.head(url)
            return str(response.url)
        except Exception as e:
            logger.debug(f"Redirect resolution failed for {url}: {str(e)}")
            return url

    async def fetch(self, url: str, max_retries: Optional[int] = None) -> FetchResult:
        """Fetch and parse a feed, retrying with exponential backoff.

        Never raises; failures are reported through the returned FetchResult.
        """
        if max_retries is None:
            max_retries = settings.FETCH_MAX_RETRIES

        last_error = ""
        last_kind = "error"
        total_duration = 0.0

        final_url = await self.resolve_redirects(url)

        for attempt in range(max_retries + 1):
            started = time.monotonic()
            try:
                parsed = await self._fetch_once(final_url)
                total_duration += (time.monotonic() - started) * 1000
                return FetchResult(
                    success=True,
                    feed=parsed,
                    duration=total_duration,
                    retry_count=attempt,
                )
            except Exception as e:
                total_duration += (time.monotonic() - started) * 1000
                last_error = str(e) or e.__class__.__name__
                last_kind = classify_error(e)
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{max_retries + 1} failed for "
                    f"{final_url}: {last_error}"
                )

                if attempt < max_retries:
                    await self._sleep(backoff_delay(attempt))

        logger.error(f"Giving up on {url} after {max_retries} retries: {last_error}")
        return FetchResult(
            success=False,
            error=last_error,
            error_kind=last_kind,
            duration=total_duration,
            retry_count=max_retries,
        )

    async def _fetch_once(self, url: str) -> ParsedFeed:
        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()

        parsed = feedparser.parse(response.text)
        if parsed.bozo and not parsed.entries and not parsed.feed.get("title"):
            raise FeedParseError(
                f"Invalid feed document: {getattr(parsed, 'bozo_exception', 'unknown')}"
            )

        return ParsedFeed(
            title=parsed.feed.get("title"),
            description=parsed.feed.get("description") or parsed.feed.get("subtitle"),
            link=parsed.feed.get("link"),
            items=[self._normalize_entry(entry) for entry in parsed.entries],
        )

    def _normalize_entry(self, entry) -> ParsedItem:
        summary = entry.get("summary", entry.get("description"))
        snippet = self._plain_text(summary) if summary else None

        rich_content = None
        if entry.get("content"):
            rich_content = entry.get("content", [{}])[0].get("value") or None

        categories = [
            tag.get("term") for tag in entry.get("tags", []) if tag.get("term")
        ]

        return ParsedItem(
            title=entry.get("title"),
            link=entry.get("link"),
            content=rich_content or summary or snippet,
            snippet=snippet,
            published=self._parse_date(entry.get("published", entry.get("updated"))),
            author=entry.get("author"),
            categories=categories,
            guid=entry.get("id") or None,
        )

    def _plain_text(self, html: str) -> str:
        return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)

    def _parse_date(self, date_string: Optional[str]) -> Optional[datetime]:
        """Parse various date formats from RSS feeds."""
        if not date_string:
            return None

        try:
            return _to_naive_utc(parsedate_to_datetime(date_string))
        except (TypeError, ValueError):
            try:
                return _to_naive_utc(
                    datetime.fromisoformat(date_string.replace("Z", "+00:00"))
                )
            except ValueError:
                logger.warning(f"Could not parse date: {date_string}")
                return None

    async def validate_feed(self, url: str) -> FeedValidation:
        """Check that a URL serves a parseable feed with a title."""
        if not is_valid_feed_url(url):
            return FeedValidation(
                is_valid=False,
                error="Invalid URL format. Please provide a valid HTTP or HTTPS URL.",
            )

        try:
            parsed = await self._fetch_once(url)
        except httpx.TimeoutException:
            return FeedValidation(
                is_valid=False,
                error="Feed took too long to respond. Please try again later.",
            )
        except httpx.ConnectError:
            return FeedValidation(
                is_valid=False,
                error="Unable to connect to the feed URL. Please check the URL and try again.",
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                error = "Feed not found at the provided URL."
            elif status == 403:
                error = "Access to the feed is forbidden."
            else:
                error = f"Feed responded with HTTP {status}."
            return FeedValidation(is_valid=False, error=error)
        except Exception as e:
            logger.info(f"Feed validation failed for {url}: {str(e)}")
            return FeedValidation(
                is_valid=False,
                error="Invalid RSS feed format or unable to parse feed.",
            )

        if not parsed.title or not parsed.title.strip():
            return FeedValidation(
                is_valid=False, error="Feed does not contain a valid title."
            )

        return FeedValidation(
            is_valid=True,
            feed_title=parsed.title,
            feed_description=parsed.description,
        )
