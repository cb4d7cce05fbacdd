"""Tests for the feed scheduler."""

import asyncio
import pytest
from datetime import datetime, timedelta

from feedstudio.services.feed_processor import ProcessingResult
from feedstudio.services.scheduler import (
    FeedBusyError,
    FeedScheduler,
    next_run_after,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


class FakeProcessor:
    """Stands in for FeedProcessor; blocks until the gate opens."""

    def __init__(self, gate: asyncio.Event, started: list, fail: bool = False):
        self.gate = gate
        self.started = started
        self.fail = fail

    async def process(self, feed, options=None):
        self.started.append(feed.id)
        await self.gate.wait()
        if self.fail:
            raise RuntimeError("processor exploded")
        return ProcessingResult(feed_id=feed.id, success=True, new_items=1)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def gate():
    event = asyncio.Event()
    return event


@pytest.fixture
def started():
    return []


@pytest.fixture
def make_scheduler(session_factory, clock, gate, started):
    def _make_scheduler(max_concurrent_jobs: int = 3, fail: bool = False, **kwargs):
        return FeedScheduler(
            session_factory,
            max_concurrent_jobs=max_concurrent_jobs,
            clock=clock,
            processor_factory=lambda db: FakeProcessor(gate, started, fail=fail),
            **kwargs,
        )

    return _make_scheduler


async def settle():
    """Let freshly created tasks run up to their first await."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.unit
class TestCadence:
    def test_next_run_per_cadence(self):
        assert next_run_after("hourly", NOW) == NOW + timedelta(hours=1)
        assert next_run_after("daily", NOW) == NOW + timedelta(hours=24)
        assert next_run_after("weekly", NOW) == NOW + timedelta(days=7)
        assert next_run_after("manual", NOW) == NOW + timedelta(days=365)

    def test_unknown_cadence_treated_as_daily(self):
        assert next_run_after(None, NOW) == NOW + timedelta(days=1)
        assert next_run_after("fortnightly", NOW) == NOW + timedelta(days=1)


@pytest.mark.integration
class TestFeedScheduler:
    @pytest.mark.asyncio
    async def test_concurrency_cap(self, make_scheduler, make_feed, gate, started):
        for _ in range(10):
            make_feed()
        scheduler = make_scheduler(max_concurrent_jobs=3)

        await scheduler.check_feeds()
        await settle()

        assert len(started) == 3
        assert len(scheduler.running_jobs) == 3
        assert scheduler.get_stats().running_jobs == 3

        # A second check while all slots are busy dispatches nothing more
        await scheduler.check_feeds()
        await settle()
        assert len(started) == 3

        gate.set()
        await scheduler.wait_idle()
        assert scheduler.running_jobs == set()

        await scheduler.check_feeds()
        await scheduler.wait_idle()
        assert len(started) == 6
        assert len(set(started)) == 6

    @pytest.mark.asyncio
    async def test_oldest_due_first(self, make_scheduler, make_feed, gate, started):
        feeds = [make_feed() for _ in range(3)]
        scheduler = make_scheduler(max_concurrent_jobs=1)

        scheduler._reconcile(scheduler._load_active_feeds())
        scheduler.scheduled_feeds[feeds[0].id].next_run = NOW - timedelta(minutes=5)
        scheduler.scheduled_feeds[feeds[1].id].next_run = NOW - timedelta(hours=2)
        scheduler.scheduled_feeds[feeds[2].id].next_run = NOW - timedelta(hours=1)

        scheduler._dispatch_due()
        gate.set()
        await scheduler.wait_idle()

        assert started == [feeds[1].id]

    @pytest.mark.asyncio
    async def test_hourly_feed_rescheduled_one_hour_later(
        self, make_scheduler, make_feed, gate
    ):
        feed = make_feed(update_frequency="hourly")
        scheduler = make_scheduler()
        gate.set()

        await scheduler.check_feeds()
        await scheduler.wait_idle()

        entry = scheduler.scheduled_feeds[feed.id]
        assert entry.next_run == NOW + timedelta(hours=1)
        assert entry.is_running is False
        assert not entry.is_due(NOW + timedelta(minutes=59))
        assert entry.is_due(NOW + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_failed_run_is_still_rescheduled(
        self, make_scheduler, make_feed, gate, started
    ):
        feed = make_feed(update_frequency="weekly")
        scheduler = make_scheduler(fail=True)
        gate.set()

        await scheduler.check_feeds()
        await scheduler.wait_idle()

        assert started == [feed.id]
        assert scheduler.running_jobs == set()
        assert scheduler.scheduled_feeds[feed.id].next_run == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_manual_feed_never_auto_dispatched(
        self, make_scheduler, make_feed, gate, started, clock
    ):
        feed = make_feed(update_frequency="manual")
        scheduler = make_scheduler()
        gate.set()

        await scheduler.check_feeds()
        clock.now = NOW + timedelta(days=30)
        await scheduler.check_feeds()
        await scheduler.wait_idle()

        assert started == []
        assert scheduler.get_stats().due_feeds == 0

        result = await scheduler.process_feed_now(feed.id)
        assert result.success is True
        assert started == [feed.id]

    @pytest.mark.asyncio
    async def test_inactive_feeds_dropped(
        self, make_scheduler, make_feed, db_session, started
    ):
        feed = make_feed()
        make_feed(is_active=False)
        scheduler = make_scheduler()

        scheduler._reconcile(scheduler._load_active_feeds())
        assert set(scheduler.scheduled_feeds) == {feed.id}

        feed.is_active = False
        db_session.commit()
        scheduler._reconcile(scheduler._load_active_feeds())
        assert scheduler.scheduled_feeds == {}

    @pytest.mark.asyncio
    async def test_user_scope(self, make_scheduler, make_feed, db_session):
        from feedstudio.models.user import User

        other_user = User(email="other@example.com", name="Other")
        db_session.add(other_user)
        db_session.commit()

        mine = make_feed()
        make_feed(user_id=other_user.id)
        scheduler = make_scheduler(user_id=mine.user_id)

        assert [feed.id for feed in scheduler._load_active_feeds()] == [mine.id]

    @pytest.mark.asyncio
    async def test_process_feed_now_missing_or_inactive(
        self, make_scheduler, make_feed
    ):
        inactive = make_feed(is_active=False)
        scheduler = make_scheduler()

        assert await scheduler.process_feed_now(9999) is None
        assert await scheduler.process_feed_now(inactive.id) is None

    @pytest.mark.asyncio
    async def test_process_feed_now_rejects_running_feed(
        self, make_scheduler, make_feed, gate
    ):
        feed = make_feed()
        scheduler = make_scheduler()

        await scheduler.check_feeds()
        await settle()
        assert feed.id in scheduler.running_jobs

        with pytest.raises(FeedBusyError):
            await scheduler.process_feed_now(feed.id)

        gate.set()
        await scheduler.wait_idle()

    @pytest.mark.asyncio
    async def test_process_feed_now_keeps_schedule(
        self, make_scheduler, make_feed, gate
    ):
        feed = make_feed(update_frequency="daily")
        scheduler = make_scheduler()
        gate.set()

        await scheduler.check_feeds()
        await scheduler.wait_idle()
        next_run = scheduler.scheduled_feeds[feed.id].next_run

        await scheduler.process_feed_now(feed.id)

        assert scheduler.scheduled_feeds[feed.id].next_run == next_run
        assert scheduler.running_jobs == set()

    @pytest.mark.asyncio
    async def test_get_stats(self, make_scheduler, make_feed, gate):
        make_feed()
        make_feed()
        scheduler = make_scheduler()

        scheduler._reconcile(scheduler._load_active_feeds())
        stats = scheduler.get_stats()

        assert stats.total_feeds == 2
        assert stats.active_feeds == 2
        assert stats.due_feeds == 2
        assert stats.running_jobs == 0

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, make_scheduler):
        scheduler = make_scheduler()

        scheduler.start()
        scheduler.start()
        assert scheduler.is_running is True

        scheduler.stop()
        scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_get_stats_reports_last_execution_after_run(
        self, make_scheduler, make_feed, gate, clock
    ):
        make_feed()
        scheduler = make_scheduler()
        gate.set()

        assert scheduler.get_stats().last_execution is None

        await scheduler.check_feeds()
        clock.now = NOW + timedelta(seconds=5)
        await scheduler.wait_idle()

        assert scheduler.get_stats().last_execution == NOW + timedelta(seconds=5)
