from .user import User
from .feed import Feed
from .feed_item import FeedItem
from .analysis import ContentAnalysis

__all__ = [
    "User",
    "Feed",
    "FeedItem",
    "ContentAnalysis",
]
