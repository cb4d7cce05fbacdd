from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class FeedItem(BaseModel):
    id: int
    feed_id: int
    guid: Optional[str] = None
    content_hash: str
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    link: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    categories: Optional[List[str]] = None
    word_count: int = 0
    reading_time: int = 0
    created_at: datetime

    class Config:
        from_attributes = True
