from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from feedstudio.core.database import Base


class FeedItem(Base):
    __tablename__ = "feed_items"
    __table_args__ = (
        UniqueConstraint("feed_id", "guid", name="uq_feed_items_feed_guid"),
        UniqueConstraint("feed_id", "content_hash", name="uq_feed_items_feed_hash"),
    )

    id = Column(Integer, primary_key=True, index=True)
    feed_id = Column(
        Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Identity for deduplication
    guid = Column(String, nullable=True, index=True)
    content_hash = Column(String, nullable=False, index=True)

    # Original item data from the feed
    title = Column(String, nullable=False)
    description = Column(Text)  # plain-text snippet
    content = Column(Text)
    link = Column(String)
    author = Column(String)
    published_at = Column(DateTime, nullable=True)
    categories = Column(JSON, default=list)

    # Derived
    word_count = Column(Integer, default=0)
    reading_time = Column(Integer, default=0)  # minutes

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    feed = relationship("Feed", back_populates="items")
    analysis = relationship(
        "ContentAnalysis",
        back_populates="feed_item",
        uselist=False,
        cascade="all, delete-orphan",
    )
