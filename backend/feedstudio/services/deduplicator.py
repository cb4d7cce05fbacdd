"""
Duplicate detection for incoming feed items using guids and content fingerprints.
"""

import logging
from typing import Optional
from sqlalchemy.orm import Session
from feedstudio.core.config import settings
from feedstudio.models.feed_item import FeedItem
from feedstudio.services.feed_fetcher import ParsedItem

logger = logging.getLogger(__name__)


def content_fingerprint(
    title: Optional[str], content: Optional[str], link: Optional[str]
) -> str:
    """
    Order-sensitive rolling hash of title + content + link.

    Not cryptographic; collisions only cause an item to be skipped as a
    duplicate. Returns the signed 32-bit value as a decimal string.
    """
    text = f"{title or ''}{content or ''}{link or ''}"
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return str(value)


def item_fingerprint(item: ParsedItem) -> str:
    return content_fingerprint(item.title, item.content, item.link)


class Deduplicator:
    """Decides whether a parsed item has already been stored."""

    def __init__(self, db: Session, guid_scope: Optional[str] = None):
        self.db = db
        self.guid_scope = guid_scope or settings.GUID_DEDUP_SCOPE

    def is_duplicate(self, feed_id: int, item: ParsedItem) -> bool:
        """
        Check an item against stored items.

        1. guid match (any feed, or the same feed when guid_scope is "feed")
        2. content fingerprint match within the same feed
        """
        if item.guid:
            query = self.db.query(FeedItem.id).filter(FeedItem.guid == item.guid)
            if self.guid_scope == "feed":
                query = query.filter(FeedItem.feed_id == feed_id)
            if query.first() is not None:
                logger.debug(f"Duplicate by guid in feed {feed_id}: {item.guid}")
                return True

        fingerprint = item_fingerprint(item)
        existing = (
            self.db.query(FeedItem.id)
            .filter(FeedItem.feed_id == feed_id, FeedItem.content_hash == fingerprint)
            .first()
        )
        if existing is not None:
            logger.debug(f"Duplicate by fingerprint in feed {feed_id}: {fingerprint}")
            return True

        return False
