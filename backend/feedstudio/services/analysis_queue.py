"""In-process, priority-ordered analysis job queue with bounded concurrency."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Set

from sqlalchemy.orm import Session

from feedstudio.core.config import settings
from feedstudio.core.logging_config import log_pipeline_event
from feedstudio.models.feed_item import FeedItem

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"high": 3, "normal": 2, "low": 1}
TERMINAL_STATUSES = ("completed", "failed")


class QueueFullError(RuntimeError):
    """Raised when the pending buffer is at capacity."""


class Analyzer(Protocol):
    async def analyze(
        self,
        feed_item_id: int,
        title: str,
        content: str,
        description: Optional[str] = None,
    ) -> object: ...


@dataclass
class AnalysisRequest:
    feed_item_id: int
    title: str
    content: str
    description: Optional[str] = None


@dataclass
class AnalysisJob:
    id: str
    feed_item_id: int
    priority: str = "normal"
    status: str = "pending"
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    retry_at: Optional[datetime] = None


class AnalysisJobQueue:
    """
    Hands newly stored feed items to the semantic analyzer.

    At most max_concurrent_jobs analyses run at once. The highest-priority,
    oldest eligible pending job is started whenever a slot frees up or a job
    is added. Failed jobs are retried with exponential backoff until
    max_retries failures, then kept as "failed".
    """

    def __init__(
        self,
        analyzer: Analyzer,
        session_factory: Callable[[], Session],
        max_concurrent_jobs: Optional[int] = None,
        max_pending: Optional[int] = None,
        max_retries: Optional[int] = None,
        job_timeout: Optional[float] = None,
        retention: Optional[int] = None,
        backoff_base: float = 1.0,
    ):
        self.analyzer = analyzer
        self.session_factory = session_factory
        self.max_concurrent_jobs = (
            max_concurrent_jobs
            if max_concurrent_jobs is not None
            else settings.ANALYSIS_MAX_CONCURRENT_JOBS
        )
        self.max_pending = (
            max_pending if max_pending is not None else settings.ANALYSIS_MAX_PENDING_JOBS
        )
        self.max_retries = (
            max_retries if max_retries is not None else settings.ANALYSIS_MAX_RETRIES
        )
        self.job_timeout = (
            job_timeout if job_timeout is not None else settings.ANALYSIS_JOB_TIMEOUT
        )
        self.retention = (
            retention if retention is not None else settings.ANALYSIS_JOB_RETENTION
        )
        self.backoff_base = backoff_base

        self._jobs: Dict[str, AnalysisJob] = {}
        self._active: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._stopped = False

    def add_job(self, request: AnalysisRequest, priority: str = "normal") -> str:
        """Queue an analysis job without waiting for it. Returns the job id."""
        if priority not in PRIORITY_ORDER:
            raise ValueError(f"Unknown priority: {priority}")

        pending = sum(1 for job in self._jobs.values() if job.status == "pending")
        if pending >= self.max_pending:
            log_pipeline_event(
                "job.rejected",
                f"Analysis queue full ({pending} pending), rejecting item "
                f"{request.feed_item_id}",
                level=logging.WARNING,
                feed_item_id=request.feed_item_id,
            )
            raise QueueFullError(f"Analysis queue is full ({pending} pending jobs)")

        job = AnalysisJob(
            id=f"job_{uuid.uuid4().hex[:12]}",
            feed_item_id=request.feed_item_id,
            priority=priority,
        )
        self._jobs[job.id] = job

        log_pipeline_event(
            "job.queued",
            f"Queued analysis for item {request.feed_item_id} ({priority})",
            feed_item_id=request.feed_item_id,
            job_id=job.id,
        )

        self._dispatch()
        return job.id

    def get_job_status(self, job_id: str) -> Optional[AnalysisJob]:
        return self._jobs.get(job_id)

    def get_queue_status(self) -> Dict[str, int]:
        counts = {"pending": 0, "processing": 0, "completed": 0, "failed": 0}
        for job in self._jobs.values():
            counts[job.status] += 1
        counts["total"] = len(self._jobs)
        return counts

    def cleanup_old_jobs(self) -> int:
        """Drop terminal jobs beyond the most recent `retention`. Returns removed count."""
        order = {job_id: index for index, job_id in enumerate(self._jobs)}
        terminal = sorted(
            (job for job in self._jobs.values() if job.status in TERMINAL_STATUSES),
            key=lambda job: (job.completed_at or job.created_at, order[job.id]),
            reverse=True,
        )
        stale = terminal[self.retention :]
        for job in stale:
            del self._jobs[job.id]

        if stale:
            logger.info(f"Pruned {len(stale)} finished analysis jobs")
        return len(stale)

    def stop(self) -> None:
        """Stop starting new jobs. Running analyses are left to finish."""
        self._stopped = True

    async def wait_idle(self) -> None:
        """Wait until no analysis task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _next_pending_job(self) -> Optional[AnalysisJob]:
        now = datetime.utcnow()
        eligible: List[AnalysisJob] = [
            job
            for job in self._jobs.values()
            if job.status == "pending"
            and job.id not in self._active
            and (job.retry_at is None or job.retry_at <= now)
        ]
        if not eligible:
            return None
        return min(
            eligible,
            key=lambda job: (-PRIORITY_ORDER[job.priority], job.created_at),
        )

    def _dispatch(self) -> None:
        if self._stopped:
            return

        while len(self._active) < self.max_concurrent_jobs:
            job = self._next_pending_job()
            if job is None:
                break

            self._active.add(job.id)
            job.status = "processing"
            job.started_at = datetime.utcnow()

            task = asyncio.create_task(self._run_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_job(self, job: AnalysisJob) -> None:
        started = datetime.utcnow()
        try:
            request = self._load_request(job.feed_item_id)
            if request is None:
                raise LookupError(f"Feed item {job.feed_item_id} not found")

            await asyncio.wait_for(
                self.analyzer.analyze(
                    request.feed_item_id,
                    request.title,
                    request.content,
                    request.description,
                ),
                timeout=self.job_timeout,
            )

            job.status = "completed"
            job.completed_at = datetime.utcnow()
            job.error_message = None
            log_pipeline_event(
                "job.completed",
                f"Analysis completed for item {job.feed_item_id}",
                feed_item_id=job.feed_item_id,
                job_id=job.id,
                duration_ms=int((job.completed_at - started).total_seconds() * 1000),
            )

        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                message = f"Analysis timed out after {self.job_timeout}s"
            else:
                message = str(e) or e.__class__.__name__
            job.error_message = message
            job.retry_count += 1

            if job.retry_count < self.max_retries:
                delay = self.backoff_base * (2**job.retry_count)
                job.status = "pending"
                job.retry_at = datetime.utcnow() + timedelta(seconds=delay)
                logger.warning(
                    f"Job {job.id} failed (attempt {job.retry_count}), "
                    f"retrying in {delay:.1f}s: {message}"
                )
                asyncio.get_running_loop().call_later(delay, self._release_retry, job.id)
            else:
                job.status = "failed"
                job.completed_at = datetime.utcnow()
                log_pipeline_event(
                    "job.failed",
                    f"Analysis failed permanently for item {job.feed_item_id}: {message}",
                    level=logging.ERROR,
                    feed_item_id=job.feed_item_id,
                    job_id=job.id,
                    retry_count=job.retry_count,
                )
        finally:
            self._active.discard(job.id)
            self._dispatch()

    def _release_retry(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None and job.status == "pending":
            job.retry_at = None
        self._dispatch()

    def _load_request(self, feed_item_id: int) -> Optional[AnalysisRequest]:
        db = self.session_factory()
        try:
            item = db.get(FeedItem, feed_item_id)
            if item is None:
                return None
            return AnalysisRequest(
                feed_item_id=item.id,
                title=item.title or "Untitled",
                content=item.content or item.description or "",
                description=item.description,
            )
        finally:
            db.close()
