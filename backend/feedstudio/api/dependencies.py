from fastapi import HTTPException, Request

from feedstudio.services.analysis_queue import AnalysisJobQueue
from feedstudio.services.feed_fetcher import FeedFetcher
from feedstudio.services.scheduler import FeedScheduler


def get_scheduler(request: Request) -> FeedScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Feed scheduler is not available")
    return scheduler


def get_job_queue(request: Request) -> AnalysisJobQueue:
    job_queue = getattr(request.app.state, "job_queue", None)
    if job_queue is None:
        raise HTTPException(status_code=503, detail="Analysis queue is not available")
    return job_queue


def get_fetcher(request: Request) -> FeedFetcher:
    return getattr(request.app.state, "fetcher", None) or FeedFetcher()
