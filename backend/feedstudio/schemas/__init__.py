from feedstudio.schemas.feed import (
    Feed,
    FeedCreate,
    FeedUpdate,
    FeedValidationRequest,
    FeedValidationResult,
)
from feedstudio.schemas.feed_item import FeedItem
from feedstudio.schemas.pipeline import (
    AnalysisJob,
    AnalysisJobCreate,
    AnalysisJobQueued,
    ProcessingResult,
    QueueStatus,
    SchedulerStats,
)

__all__ = [
    "Feed",
    "FeedCreate",
    "FeedUpdate",
    "FeedValidationRequest",
    "FeedValidationResult",
    "FeedItem",
    "AnalysisJob",
    "AnalysisJobCreate",
    "AnalysisJobQueued",
    "ProcessingResult",
    "QueueStatus",
    "SchedulerStats",
]
