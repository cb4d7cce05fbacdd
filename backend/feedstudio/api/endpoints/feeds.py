from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging
from feedstudio.core.database import get_db
from feedstudio.api.dependencies import get_fetcher, get_scheduler
from feedstudio.api.validation import (
    validate_positive_int,
    LimitParam,
    SkipParam,
    UserIdParam,
)
from feedstudio.schemas.feed import (
    Feed as FeedSchema,
    FeedCreate,
    FeedUpdate,
    FeedValidationRequest,
    FeedValidationResult,
)
from feedstudio.schemas.feed_item import FeedItem as FeedItemSchema
from feedstudio.schemas.pipeline import ProcessingResult as ProcessingResultSchema
from feedstudio.services.feed_fetcher import FeedFetcher
from feedstudio.services.feed_service import FeedService, FeedServiceError
from feedstudio.services.scheduler import FeedBusyError, FeedScheduler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[FeedSchema])
def get_feeds(
    user_id: int = UserIdParam,
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
):
    """Get all feeds owned by a user."""
    return FeedService(db).list_feeds(user_id, skip=skip, limit=limit)


@router.post("/", response_model=FeedSchema)
def create_feed(feed: FeedCreate, db: Session = Depends(get_db)):
    """Subscribe a user to a new feed."""
    try:
        return FeedService(db).add_feed(feed)
    except FeedServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/validate", response_model=FeedValidationResult)
async def validate_feed(
    request: FeedValidationRequest,
    fetcher: FeedFetcher = Depends(get_fetcher),
):
    """Check that a URL serves a usable RSS/Atom feed."""
    result = await fetcher.validate_feed(request.url.strip())
    return FeedValidationResult(
        is_valid=result.is_valid,
        feed_title=result.feed_title,
        feed_description=result.feed_description,
        error=result.error,
    )


@router.get("/{feed_id}", response_model=FeedSchema)
def get_feed(feed_id: int, db: Session = Depends(get_db)):
    validate_positive_int(feed_id, "feed_id")
    feed = FeedService(db).get_feed(feed_id)
    if not feed:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed


@router.put("/{feed_id}", response_model=FeedSchema)
def update_feed(
    feed_id: int,
    feed_update: FeedUpdate,
    db: Session = Depends(get_db),
):
    """Update a feed's metadata or polling configuration."""
    validate_positive_int(feed_id, "feed_id")
    feed = FeedService(db).update_feed(feed_id, feed_update)
    if not feed:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed


@router.delete("/{feed_id}")
def delete_feed(feed_id: int, db: Session = Depends(get_db)):
    """Delete a feed together with its stored items."""
    validate_positive_int(feed_id, "feed_id")
    if not FeedService(db).delete_feed(feed_id):
        raise HTTPException(status_code=404, detail="Feed not found")
    return {"message": "Feed deleted successfully"}


@router.post("/{feed_id}/refresh", response_model=ProcessingResultSchema)
async def refresh_feed(
    feed_id: int,
    scheduler: FeedScheduler = Depends(get_scheduler),
):
    """Process a feed immediately, outside its regular cadence."""
    validate_positive_int(feed_id, "feed_id")
    try:
        result = await scheduler.process_feed_now(feed_id)
    except FeedBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if result is None:
        raise HTTPException(status_code=404, detail="Feed not found or inactive")
    return result


@router.get("/{feed_id}/items", response_model=List[FeedItemSchema])
def get_feed_items(
    feed_id: int,
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
):
    """Get stored items of a feed, newest first."""
    validate_positive_int(feed_id, "feed_id")
    service = FeedService(db)
    if not service.get_feed(feed_id):
        raise HTTPException(status_code=404, detail="Feed not found")
    return service.list_items(feed_id, skip=skip, limit=limit)
