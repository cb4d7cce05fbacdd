from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Dict, List, Literal, Optional

UpdateFrequency = Literal["manual", "hourly", "daily", "weekly"]

MAX_KEYWORD_FILTERS = 50
MAX_KEYWORD_LENGTH = 100


def _check_keyword_filters(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    if len(value) > MAX_KEYWORD_FILTERS:
        raise ValueError(f"at most {MAX_KEYWORD_FILTERS} keyword filters are allowed")
    for keyword in value:
        if len(keyword) > MAX_KEYWORD_LENGTH:
            raise ValueError(
                f"keyword filters must be at most {MAX_KEYWORD_LENGTH} characters"
            )
    return value


class FeedBase(BaseModel):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class FeedCreate(FeedBase):
    user_id: int = Field(gt=0)
    update_frequency: UpdateFrequency = "daily"
    keyword_filters: List[str] = Field(default_factory=list)
    content_filters: Dict[str, bool] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("Invalid feed URL")
        return v

    @field_validator("keyword_filters")
    @classmethod
    def validate_keyword_filters(cls, v):
        return _check_keyword_filters(v)


class FeedUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None
    update_frequency: Optional[UpdateFrequency] = None
    keyword_filters: Optional[List[str]] = None
    content_filters: Optional[Dict[str, bool]] = None

    @field_validator("keyword_filters")
    @classmethod
    def validate_keyword_filters(cls, v):
        return _check_keyword_filters(v)


class Feed(FeedBase):
    id: int
    user_id: int
    is_active: bool = True
    update_frequency: str = "daily"
    keyword_filters: Optional[List[str]] = None
    content_filters: Optional[Dict[str, bool]] = None
    last_fetched: Optional[datetime] = None
    last_fetch_status: Optional[str] = None
    last_fetch_error: Optional[str] = None
    fetch_retry_count: int = 0
    health_score: float = 1.0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FeedValidationRequest(BaseModel):
    url: str


class FeedValidationResult(BaseModel):
    is_valid: bool
    feed_title: Optional[str] = None
    feed_description: Optional[str] = None
    error: Optional[str] = None
