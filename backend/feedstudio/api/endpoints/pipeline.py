from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging
from feedstudio.core.database import get_db
from feedstudio.api.dependencies import get_job_queue, get_scheduler
from feedstudio.api.validation import validate_job_id
from feedstudio.models.feed_item import FeedItem
from feedstudio.schemas.pipeline import (
    AnalysisJob as AnalysisJobSchema,
    AnalysisJobCreate,
    AnalysisJobQueued,
    QueueStatus,
    SchedulerStats as SchedulerStatsSchema,
)
from feedstudio.services.analysis_queue import (
    AnalysisJobQueue,
    AnalysisRequest,
    QueueFullError,
)
from feedstudio.services.scheduler import FeedScheduler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/scheduler", response_model=SchedulerStatsSchema)
def get_scheduler_stats(scheduler: FeedScheduler = Depends(get_scheduler)):
    return scheduler.get_stats()


@router.get("/queue", response_model=QueueStatus)
def get_queue_status(job_queue: AnalysisJobQueue = Depends(get_job_queue)):
    return job_queue.get_queue_status()


@router.get("/jobs/{job_id}", response_model=AnalysisJobSchema)
def get_job(job_id: str, job_queue: AnalysisJobQueue = Depends(get_job_queue)):
    validate_job_id(job_id)
    job = job_queue.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/analysis", response_model=AnalysisJobQueued)
async def queue_analysis(
    job: AnalysisJobCreate,
    db: Session = Depends(get_db),
    job_queue: AnalysisJobQueue = Depends(get_job_queue),
):
    """Queue (or re-queue) semantic analysis of a stored feed item."""
    item = db.get(FeedItem, job.feed_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Feed item not found")

    request = AnalysisRequest(
        feed_item_id=item.id,
        title=item.title,
        content=item.content or item.description or "",
        description=item.description,
    )
    try:
        job_id = job_queue.add_job(request, priority=job.priority)
    except QueueFullError as e:
        logger.warning(f"Rejected analysis request for item {item.id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    return AnalysisJobQueued(job_id=job_id)
