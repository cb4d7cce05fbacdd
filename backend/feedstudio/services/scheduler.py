import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from feedstudio.core.config import settings
from feedstudio.models.feed import Feed, normalize_frequency
from feedstudio.services.analysis_queue import AnalysisJobQueue
from feedstudio.services.feed_fetcher import FeedFetcher
from feedstudio.services.feed_processor import (
    FeedConfig,
    FeedProcessor,
    ProcessingOptions,
    ProcessingResult,
)

logger = logging.getLogger(__name__)

CADENCE_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    # Placeholder: far enough out that the periodic check never reaches it
    "manual": timedelta(days=365),
}


def next_run_after(update_frequency: Optional[str], now: datetime) -> datetime:
    return now + CADENCE_INTERVALS[normalize_frequency(update_frequency)]


class FeedBusyError(RuntimeError):
    """Raised when a feed is already being processed."""


@dataclass
class ScheduledFeed:
    feed: FeedConfig
    next_run: datetime
    is_running: bool = False

    def is_due(self, now: datetime) -> bool:
        return self.next_run <= now


@dataclass
class SchedulerStats:
    total_feeds: int
    active_feeds: int
    due_feeds: int
    running_jobs: int
    last_execution: Optional[datetime] = None


class FeedScheduler:
    """
    Polls active feeds on their cadence.

    Owns the scheduled-entry map (a cache rebuilt from the feeds table on
    every check) and the set of feed ids currently being processed. At most
    max_concurrent_jobs feeds are processed at once and a feed is never
    processed by two runs at the same time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        fetcher: Optional[FeedFetcher] = None,
        job_queue: Optional[AnalysisJobQueue] = None,
        max_concurrent_jobs: Optional[int] = None,
        check_interval: Optional[int] = None,
        user_id: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        processor_factory: Optional[Callable[[Session], FeedProcessor]] = None,
        options: Optional[ProcessingOptions] = None,
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher or FeedFetcher()
        self.job_queue = job_queue
        self.max_concurrent_jobs = (
            max_concurrent_jobs
            if max_concurrent_jobs is not None
            else settings.SCHEDULER_MAX_CONCURRENT_JOBS
        )
        self.check_interval = (
            check_interval if check_interval is not None else settings.SCHEDULER_CHECK_INTERVAL
        )
        self.user_id = user_id if user_id is not None else settings.SCHEDULER_USER_ID
        self.clock = clock
        self.processor_factory = processor_factory or self._default_processor
        self.options = options or ProcessingOptions()

        self.scheduled_feeds: Dict[int, ScheduledFeed] = {}
        self.running_jobs: Set[int] = set()
        self.is_running = False
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._tasks: Set[asyncio.Task] = set()

    def _default_processor(self, db: Session) -> FeedProcessor:
        return FeedProcessor(db, fetcher=self.fetcher, job_queue=self.job_queue)

    def start(self) -> None:
        """Start periodic checks; the first check runs immediately."""
        if self.is_running:
            return

        self.is_running = True
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.check_feeds,
            trigger=IntervalTrigger(seconds=self.check_interval),
            id="check_feeds",
            name="Dispatch due feeds",
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if self.job_queue is not None:
            self._scheduler.add_job(
                self._prune_analysis_jobs,
                trigger=IntervalTrigger(minutes=settings.ANALYSIS_CLEANUP_INTERVAL),
                id="prune_analysis_jobs",
                name="Prune finished analysis jobs",
                replace_existing=True,
            )
        self._scheduler.start()
        logger.info(
            f"Feed scheduler started (check every {self.check_interval}s, "
            f"max {self.max_concurrent_jobs} concurrent feeds)"
        )

    def stop(self) -> None:
        """Stop periodic checks. Feeds already being processed run to completion."""
        if not self.is_running:
            return

        self.is_running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Feed scheduler stopped")

    async def _prune_analysis_jobs(self) -> None:
        # Runs on the event loop so the queue is never touched from a worker thread
        if self.job_queue is not None:
            self.job_queue.cleanup_old_jobs()

    async def wait_idle(self) -> None:
        """Wait for all dispatched feed runs to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def process_feed_now(self, feed_id: int) -> Optional[ProcessingResult]:
        """Process one feed immediately, ignoring its cadence.

        Returns None if the feed is missing or inactive.
        """
        db = self.session_factory()
        try:
            feed = db.get(Feed, feed_id)
            if feed is None or not feed.is_active:
                return None
            config = FeedConfig.from_model(feed)
        finally:
            db.close()

        return await self._execute(config)

    def get_stats(self) -> SchedulerStats:
        now = self.clock()
        entries = list(self.scheduled_feeds.values())

        last_execution = None
        for entry in entries:
            fetched = entry.feed.last_fetched
            if fetched and (last_execution is None or fetched > last_execution):
                last_execution = fetched

        return SchedulerStats(
            total_feeds=len(entries),
            active_feeds=sum(1 for entry in entries if entry.feed.is_active),
            due_feeds=sum(1 for entry in entries if entry.is_due(now)),
            running_jobs=len(self.running_jobs),
            last_execution=last_execution,
        )

    async def check_feeds(self) -> None:
        """Reload active feeds, reconcile entries and dispatch due feeds."""
        try:
            feeds = self._load_active_feeds()
            self._reconcile(feeds)
            self._dispatch_due()
        except Exception as e:
            logger.error(f"Error in feed scheduler check: {str(e)}")

    def _load_active_feeds(self) -> List[FeedConfig]:
        db = self.session_factory()
        try:
            query = db.query(Feed).filter(Feed.is_active == True)
            if self.user_id is not None:
                query = query.filter(Feed.user_id == self.user_id)
            return [FeedConfig.from_model(feed) for feed in query.order_by(Feed.id)]
        finally:
            db.close()

    def _reconcile(self, feeds: List[FeedConfig]) -> None:
        active_ids = {feed.id for feed in feeds}
        for feed_id in list(self.scheduled_feeds):
            if feed_id not in active_ids:
                del self.scheduled_feeds[feed_id]

        now = self.clock()
        for feed in feeds:
            entry = self.scheduled_feeds.get(feed.id)
            if entry is None:
                self.scheduled_feeds[feed.id] = ScheduledFeed(
                    feed=feed, next_run=self._first_run(feed, now)
                )
                continue

            previous = entry.feed.update_frequency
            entry.feed = feed
            if previous != feed.update_frequency and "manual" in (
                previous,
                feed.update_frequency,
            ):
                entry.next_run = self._first_run(feed, now)

    @staticmethod
    def _first_run(feed: FeedConfig, now: datetime) -> datetime:
        # Manual feeds only run through process_feed_now
        if feed.update_frequency == "manual":
            return next_run_after("manual", now)
        return now

    def _dispatch_due(self) -> None:
        now = self.clock()
        due = sorted(
            (
                entry
                for entry in self.scheduled_feeds.values()
                if entry.is_due(now)
                and not entry.is_running
                and entry.feed.id not in self.running_jobs
            ),
            key=lambda entry: entry.next_run,
        )

        available = self.max_concurrent_jobs - len(self.running_jobs)
        for entry in due[: max(available, 0)]:
            self._mark_running(entry.feed.id, True)
            task = asyncio.create_task(self._run_scheduled(entry.feed))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_scheduled(self, feed: FeedConfig) -> None:
        try:
            result = await self._execute(feed, claimed=True)
            logger.info(
                f"Feed {feed.id} processed: {result.new_items} new items, "
                f"{result.duration:.0f}ms"
            )
        except Exception as e:
            logger.error(f"Error processing feed {feed.id}: {str(e)}")
        finally:
            self._update_next_run(feed.id)
            if self.is_running:
                self._dispatch_due()

    async def _execute(self, feed: FeedConfig, claimed: bool = False) -> ProcessingResult:
        if not claimed:
            if feed.id in self.running_jobs:
                raise FeedBusyError(f"Feed {feed.id} is already being processed")
            self._mark_running(feed.id, True)

        db = self.session_factory()
        try:
            processor = self.processor_factory(db)
            return await processor.process(feed, self.options)
        finally:
            db.close()
            self._mark_running(feed.id, False)
            self._record_execution(feed.id)

    def _mark_running(self, feed_id: int, running: bool) -> None:
        if running:
            self.running_jobs.add(feed_id)
        else:
            self.running_jobs.discard(feed_id)

        entry = self.scheduled_feeds.get(feed_id)
        if entry is not None:
            entry.is_running = running

    def _record_execution(self, feed_id: int) -> None:
        # Keeps last_execution current between checks
        entry = self.scheduled_feeds.get(feed_id)
        if entry is not None:
            entry.feed.last_fetched = self.clock()

    def _update_next_run(self, feed_id: int) -> None:
        entry = self.scheduled_feeds.get(feed_id)
        if entry is not None:
            entry.next_run = next_run_after(entry.feed.update_frequency, self.clock())
