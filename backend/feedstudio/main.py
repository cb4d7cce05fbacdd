from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from feedstudio.core.config import settings
from feedstudio.core.database import engine, Base, SessionLocal
from feedstudio.core.logging_config import (
    setup_logging,
    CorrelationIdMiddleware,
    log_pipeline_event,
)
from feedstudio.api.endpoints import feeds, pipeline
from feedstudio.services.analysis_queue import AnalysisJobQueue
from feedstudio.services.feed_fetcher import FeedFetcher
from feedstudio.services.scheduler import FeedScheduler
from feedstudio.services.semantic_analyzer import SemanticAnalyzer
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging

# Configure structured JSON logging
pipeline_logger = setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.API_RATE_LIMIT])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Feed Studio pipeline...")

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    fetcher = FeedFetcher()
    job_queue = AnalysisJobQueue(SemanticAnalyzer(SessionLocal), SessionLocal)
    scheduler = FeedScheduler(SessionLocal, fetcher=fetcher, job_queue=job_queue)

    app.state.fetcher = fetcher
    app.state.job_queue = job_queue
    app.state.scheduler = scheduler

    if settings.ENABLE_SCHEDULER:
        scheduler.start()
    else:
        logger.info("Feed scheduler disabled (ENABLE_SCHEDULER=false)")

    log_pipeline_event(
        "app.startup",
        "Feed Studio started",
        scheduler_enabled=settings.ENABLE_SCHEDULER,
        debug=settings.DEBUG,
    )

    yield

    # Shutdown
    logger.info("Shutting down Feed Studio pipeline...")
    scheduler.stop()
    job_queue.stop()


app = FastAPI(
    title="Feed Studio",
    description="RSS/Atom ingestion pipeline with LLM-powered content analysis",
    version="1.0.0",
    lifespan=lifespan,
)

# Add correlation ID middleware (first, so all logs have correlation IDs)
app.add_middleware(CorrelationIdMiddleware)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
app.include_router(pipeline.router, prefix="/api/pipeline", tags=["pipeline"])


@app.get("/")
def root():
    return {
        "name": "Feed Studio",
        "version": "1.0.0",
        "description": "RSS ingestion and analysis pipeline",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
