import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from feedstudio.core.config import settings
from feedstudio.core.logging_config import log_pipeline_event
from feedstudio.models.feed import Feed, normalize_frequency
from feedstudio.models.feed_item import FeedItem
from feedstudio.services.analysis_queue import AnalysisJobQueue, AnalysisRequest
from feedstudio.services.deduplicator import Deduplicator, item_fingerprint
from feedstudio.services.feed_fetcher import FeedFetcher, ParsedFeed, ParsedItem
from feedstudio.services.feed_filters import passes_filters
from feedstudio.services.health_tracker import HealthTracker

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200


@dataclass
class FeedConfig:
    """Detached snapshot of the feed fields the pipeline needs."""

    id: int
    user_id: int
    url: str
    is_active: bool = True
    update_frequency: str = "daily"
    keyword_filters: List[str] = field(default_factory=list)
    content_filters: Dict[str, bool] = field(default_factory=dict)
    last_fetched: Optional[datetime] = None

    @classmethod
    def from_model(cls, feed: Feed) -> "FeedConfig":
        return cls(
            id=feed.id,
            user_id=feed.user_id,
            url=feed.url,
            is_active=bool(feed.is_active),
            update_frequency=normalize_frequency(feed.update_frequency),
            keyword_filters=list(feed.keyword_filters or []),
            content_filters=dict(feed.content_filters or {}),
            last_fetched=feed.last_fetched,
        )


@dataclass
class ProcessingOptions:
    apply_keyword_filters: bool = True
    apply_content_filters: bool = True
    max_items_per_feed: int = field(default_factory=lambda: settings.MAX_ITEMS_PER_FEED)


@dataclass
class ProcessingResult:
    feed_id: int
    success: bool = False
    items_processed: int = 0
    items_filtered: int = 0
    new_items: int = 0
    duration: float = 0.0  # milliseconds
    error: Optional[str] = None


def count_words(text: Optional[str]) -> int:
    if not text:
        return 0
    return len([word for word in re.split(r"\s+", text.strip()) if word])


def reading_time_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE)


class FeedProcessor:
    """Runs fetch -> filter -> dedup -> persist -> enqueue for one feed."""

    def __init__(
        self,
        db: Session,
        fetcher: Optional[FeedFetcher] = None,
        job_queue: Optional[AnalysisJobQueue] = None,
    ):
        self.db = db
        self.fetcher = fetcher or FeedFetcher()
        self.job_queue = job_queue
        self.health = HealthTracker(db)
        self.deduplicator = Deduplicator(db)

    async def process(
        self, feed: FeedConfig, options: Optional[ProcessingOptions] = None
    ) -> ProcessingResult:
        """
        Process a single feed.

        Never raises: fetch failures and unexpected errors are recorded on the
        feed's health and returned as an unsuccessful result.
        """
        options = options or ProcessingOptions()
        started = time.monotonic()
        result = ProcessingResult(feed_id=feed.id)

        try:
            fetch_result = await self.fetcher.fetch(feed.url)

            if not fetch_result.success or fetch_result.feed is None:
                error = fetch_result.error or "Unknown fetch error"
                self.health.record_outcome(
                    feed.id, fetch_result.error_kind or "error", error
                )
                result.error = error
                result.duration = self._elapsed(started)
                log_pipeline_event(
                    "feed.fetch_failed",
                    f"Feed {feed.id} fetch failed after "
                    f"{fetch_result.retry_count} retries: {error}",
                    level=logging.WARNING,
                    feed_id=feed.id,
                )
                return result

            self.health.record_outcome(feed.id, "success")
            self._update_feed_metadata(feed.id, fetch_result.feed)

            self._process_items(feed, fetch_result.feed.items, options, result)
            result.success = True

        except Exception as e:
            logger.exception(f"Error processing feed {feed.id}")
            self.db.rollback()
            result.success = False
            result.error = str(e) or e.__class__.__name__
            try:
                self.health.record_outcome(feed.id, "error", result.error)
            except Exception:
                logger.exception(f"Could not record failure for feed {feed.id}")
                self.db.rollback()

        result.duration = self._elapsed(started)
        log_pipeline_event(
            "feed.processed",
            f"Feed {feed.id} processed: {result.new_items} new, "
            f"{result.items_filtered} filtered of {result.items_processed}",
            feed_id=feed.id,
            success=result.success,
            new_items=result.new_items,
            duration_ms=round(result.duration, 1),
        )
        return result

    def _process_items(
        self,
        feed: FeedConfig,
        items: List[ParsedItem],
        options: ProcessingOptions,
        result: ProcessingResult,
    ) -> None:
        for item in items[: options.max_items_per_feed]:
            result.items_processed += 1

            if not passes_filters(
                item,
                feed.keyword_filters,
                feed.content_filters,
                apply_keywords=options.apply_keyword_filters,
                apply_content=options.apply_content_filters,
            ):
                result.items_filtered += 1
                continue

            try:
                if self.deduplicator.is_duplicate(feed.id, item):
                    continue
                feed_item = self._create_feed_item(feed.id, item)
            except Exception as e:
                # Handle constraint violations or other errors for individual items
                logger.error(f"Skipping item {item.link or item.guid}: {str(e)}")
                self.db.rollback()
                continue

            result.new_items += 1
            self._enqueue_analysis(feed_item)

    def _create_feed_item(self, feed_id: int, item: ParsedItem) -> FeedItem:
        body = item.content or item.snippet or ""
        word_count = count_words(body)

        feed_item = FeedItem(
            feed_id=feed_id,
            guid=item.guid,
            content_hash=item_fingerprint(item),
            title=item.title or "Untitled",
            description=item.snippet,
            content=item.content,
            link=item.link,
            author=item.author,
            published_at=item.published,
            categories=item.categories or [],
            word_count=word_count,
            reading_time=reading_time_minutes(word_count),
        )
        self.db.add(feed_item)
        self.db.commit()
        self.db.refresh(feed_item)
        return feed_item

    def _enqueue_analysis(self, feed_item: FeedItem) -> None:
        """Best effort: a rejected or failed enqueue never affects the feed run."""
        if self.job_queue is None:
            return

        try:
            self.job_queue.add_job(
                AnalysisRequest(
                    feed_item_id=feed_item.id,
                    title=feed_item.title,
                    content=feed_item.content or feed_item.description or "",
                    description=feed_item.description,
                ),
                priority="normal",
            )
        except Exception as e:
            logger.error(f"Failed to queue analysis for feed item {feed_item.id}: {e}")

    def _update_feed_metadata(self, feed_id: int, parsed: ParsedFeed) -> None:
        """Fill in a missing title/description from the source."""
        feed = self.db.get(Feed, feed_id)
        if feed is None:
            return

        changed = False
        if not feed.title and parsed.title:
            feed.title = parsed.title
            changed = True
        if not feed.description and parsed.description:
            feed.description = parsed.description
            changed = True

        if changed:
            self.db.commit()

    @staticmethod
    def _elapsed(started: float) -> float:
        return (time.monotonic() - started) * 1000
