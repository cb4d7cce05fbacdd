from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from feedstudio.core.database import Base


class ContentAnalysis(Base):
    """Semantic analysis result for one stored feed item."""

    __tablename__ = "content_analyses"

    id = Column(Integer, primary_key=True, index=True)
    feed_item_id = Column(
        Integer,
        ForeignKey("feed_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    topics = Column(JSON, default=list)
    primary_topic = Column(JSON, nullable=True)
    relevance_score = Column(Float, default=0.0)
    sentiment = Column(String, nullable=True)  # positive | negative | neutral
    confidence = Column(Float, default=0.0)

    model = Column(String)
    processing_time_ms = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)

    feed_item = relationship("FeedItem", back_populates="analysis")
