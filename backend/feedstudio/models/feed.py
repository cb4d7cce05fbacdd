from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    Float,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from feedstudio.core.database import Base

UPDATE_FREQUENCIES = ("manual", "hourly", "daily", "weekly")
DEFAULT_UPDATE_FREQUENCY = "daily"

FETCH_STATUSES = ("success", "error", "timeout", "parsing_error")


def normalize_frequency(value) -> str:
    """Map an absent or unrecognized cadence to the default."""
    if value in UPDATE_FREQUENCIES:
        return value
    return DEFAULT_UPDATE_FREQUENCY


def clamp_health(value) -> float:
    if value is None:
        return 1.0
    return max(0.0, min(1.0, float(value)))


class Feed(Base):
    __tablename__ = "feeds"
    __table_args__ = (UniqueConstraint("user_id", "url", name="uq_feeds_user_url"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    url = Column(String, nullable=False, index=True)
    title = Column(String)
    description = Column(Text)
    category = Column(String)
    is_active = Column(Boolean, default=True, index=True)

    # Polling configuration
    update_frequency = Column(String, default=DEFAULT_UPDATE_FREQUENCY)
    keyword_filters = Column(JSON, default=list)  # ordered list of keywords
    content_filters = Column(JSON, default=dict)  # {"images": True, "video": False}
    last_config_update = Column(DateTime, nullable=True)

    # Fetch status and health
    last_fetched = Column(DateTime, nullable=True)
    last_fetch_status = Column(String, nullable=True)
    last_fetch_error = Column(Text, nullable=True)
    fetch_retry_count = Column(Integer, default=0)  # consecutive failures
    health_score = Column(Float, default=1.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="feeds")
    items = relationship(
        "FeedItem",
        back_populates="feed",
        cascade="all, delete-orphan",
    )

    @validates("health_score")
    def _validate_health_score(self, key, value):
        return clamp_health(value)

    @validates("update_frequency")
    def _validate_update_frequency(self, key, value):
        return normalize_frequency(value)
