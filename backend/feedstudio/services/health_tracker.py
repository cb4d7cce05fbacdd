"""Per-feed reliability scoring."""

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from feedstudio.models.feed import Feed, FETCH_STATUSES
import logging

logger = logging.getLogger(__name__)

HEALTH_STEP = 0.1


class HealthTracker:
    """Records fetch outcomes on a feed and adjusts its health score.

    The score moves by HEALTH_STEP per outcome and stays within [0, 1]. It is
    informational only; scheduling cadence does not depend on it.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_outcome(
        self, feed_id: int, outcome: str, error: Optional[str] = None
    ) -> Optional[float]:
        """
        Apply one fetch outcome to a feed.

        Args:
            feed_id: Feed the outcome belongs to
            outcome: "success", "error", "timeout" or "parsing_error"
            error: Error message for failed outcomes

        Returns:
            The new health score, or None if the feed does not exist
        """
        if outcome not in FETCH_STATUSES:
            raise ValueError(f"Unknown fetch outcome: {outcome}")

        feed = self.db.get(Feed, feed_id)
        if feed is None:
            logger.warning(f"Cannot record {outcome} for missing feed {feed_id}")
            return None

        current = feed.health_score if feed.health_score is not None else 1.0
        feed.last_fetched = datetime.utcnow()
        feed.last_fetch_status = outcome

        if outcome == "success":
            feed.health_score = round(min(1.0, current + HEALTH_STEP), 4)
            feed.fetch_retry_count = 0
            feed.last_fetch_error = None
        else:
            feed.health_score = round(max(0.0, current - HEALTH_STEP), 4)
            feed.fetch_retry_count = (feed.fetch_retry_count or 0) + 1
            feed.last_fetch_error = error or "Unknown fetch error"

        self.db.commit()

        logger.debug(
            f"Feed {feed_id} outcome={outcome} health={feed.health_score} "
            f"consecutive_failures={feed.fetch_retry_count}"
        )
        return feed.health_score
