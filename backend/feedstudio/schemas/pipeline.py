from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

JobPriority = Literal["low", "normal", "high"]


class ProcessingResult(BaseModel):
    feed_id: int
    success: bool
    items_processed: int = 0
    items_filtered: int = 0
    new_items: int = 0
    duration: float = 0.0  # milliseconds
    error: Optional[str] = None

    class Config:
        from_attributes = True


class SchedulerStats(BaseModel):
    total_feeds: int
    active_feeds: int
    due_feeds: int
    running_jobs: int
    last_execution: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueStatus(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
    total: int


class AnalysisJob(BaseModel):
    id: str
    feed_item_id: int
    priority: JobPriority
    status: Literal["pending", "processing", "completed", "failed"]
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0

    class Config:
        from_attributes = True


class AnalysisJobCreate(BaseModel):
    feed_item_id: int = Field(gt=0)
    priority: JobPriority = "normal"


class AnalysisJobQueued(BaseModel):
    job_id: str
    status: str = "queued"
