import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from feedstudio.models.feed import Feed
from feedstudio.models.feed_item import FeedItem
from feedstudio.models.user import User
from feedstudio.schemas.feed import FeedCreate, FeedUpdate

logger = logging.getLogger(__name__)

CONFIG_FIELDS = ("is_active", "update_frequency", "keyword_filters", "content_filters")


class FeedServiceError(Exception):
    """Raised when a feed change is rejected."""


class FeedService:
    """Feed CRUD for the API layer."""

    def __init__(self, db: Session):
        self.db = db

    def list_feeds(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Feed]:
        return (
            self.db.query(Feed)
            .filter(Feed.user_id == user_id)
            .order_by(Feed.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        return self.db.get(Feed, feed_id)

    def list_items(self, feed_id: int, skip: int = 0, limit: int = 100) -> List[FeedItem]:
        return (
            self.db.query(FeedItem)
            .filter(FeedItem.feed_id == feed_id)
            .order_by(FeedItem.published_at.desc(), FeedItem.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def add_feed(self, data: FeedCreate) -> Feed:
        if self.db.get(User, data.user_id) is None:
            raise FeedServiceError(f"User {data.user_id} does not exist")

        existing = (
            self.db.query(Feed)
            .filter(Feed.user_id == data.user_id, Feed.url == data.url)
            .first()
        )
        if existing:
            raise FeedServiceError("Feed already exists")

        feed = Feed(**data.model_dump())
        self.db.add(feed)
        self.db.commit()
        self.db.refresh(feed)

        logger.info(f"Added feed {feed.id} ({feed.url}) for user {feed.user_id}")
        return feed

    def update_feed(self, feed_id: int, data: FeedUpdate) -> Optional[Feed]:
        feed = self.get_feed(feed_id)
        if feed is None:
            return None

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(feed, key, value)

        # Filter and cadence changes take effect on the scheduler's next check
        if any(key in CONFIG_FIELDS for key in update_data):
            feed.last_config_update = datetime.utcnow()

        self.db.commit()
        self.db.refresh(feed)
        return feed

    def delete_feed(self, feed_id: int) -> bool:
        feed = self.get_feed(feed_id)
        if feed is None:
            return False

        self.db.delete(feed)
        self.db.commit()
        logger.info(f"Deleted feed {feed_id}")
        return True
