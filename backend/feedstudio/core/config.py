from pydantic_settings import BaseSettings
from typing import List, Literal, Optional, Union
from pydantic import field_validator


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./feedstudio.db"

    # LLM (semantic analysis)
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TPM_LIMIT: int = 90000  # Tokens per minute limit (adjust per your tier)
    LLM_MAX_INPUT_TOKENS: int = 2000  # Max tokens of item content sent per request

    # Feed fetching
    FETCH_TIMEOUT: float = 10.0  # seconds per request
    FETCH_MAX_RETRIES: int = 3
    FETCH_USER_AGENT: str = "Neural Feed Studio/1.0"

    # Feed processing
    MAX_ITEMS_PER_FEED: int = 50
    # "global": a guid seen in any feed is a duplicate; "feed": only within the same feed
    GUID_DEDUP_SCOPE: Literal["global", "feed"] = "global"

    # Scheduler
    ENABLE_SCHEDULER: bool = True
    SCHEDULER_CHECK_INTERVAL: int = 60  # seconds
    SCHEDULER_MAX_CONCURRENT_JOBS: int = 3
    SCHEDULER_USER_ID: Optional[int] = None  # Restrict scheduling to one owner

    # Analysis job queue
    ANALYSIS_MAX_CONCURRENT_JOBS: int = 2
    ANALYSIS_MAX_PENDING_JOBS: int = 500
    ANALYSIS_MAX_RETRIES: int = 3
    ANALYSIS_JOB_TIMEOUT: float = 300.0  # seconds
    ANALYSIS_JOB_RETENTION: int = 1000
    ANALYSIS_CLEANUP_INTERVAL: int = 60  # minutes

    # Application
    DEBUG: bool = False
    CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]
    API_RATE_LIMIT: str = "100/minute"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Split by comma or keep as single item
            return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
