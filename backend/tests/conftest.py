"""
Pytest configuration and fixtures for Feed Studio tests.
"""

import pytest
from typing import Callable, Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
import httpx
from fastapi.testclient import TestClient

from feedstudio.core.database import Base, get_db
from feedstudio.models.user import User
from feedstudio.models.feed import Feed
from feedstudio.models.feed_item import FeedItem
from feedstudio.services.deduplicator import content_fingerprint


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> Callable[[], Session]:
    """Session factory bound to the test engine, as the pipeline expects."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def test_app(db_session):
    """Create a FastAPI test app without lifespan events."""
    from fastapi import FastAPI
    from feedstudio.api.endpoints import feeds, pipeline

    # Create app without lifespan so no scheduler is started
    test_app = FastAPI(title="Feed Studio - Test", version="1.0.0")

    test_app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
    test_app.include_router(pipeline.router, prefix="/api/pipeline", tags=["pipeline"])

    @test_app.get("/health")
    def health():
        return {"status": "ok"}

    # Override database dependency
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db

    return test_app


@pytest.fixture(scope="function")
def client(test_app) -> TestClient:
    """Create a test client without entering context manager."""
    return TestClient(test_app, raise_server_exceptions=False)


@pytest.fixture(scope="function")
def test_user(db_session) -> User:
    """Create a test user."""
    user = User(email="test@example.com", name="Test User", is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_feed(db_session, test_user) -> Feed:
    """Create a test feed."""
    feed = Feed(
        user_id=test_user.id,
        url="https://example.com/feed.xml",
        title="Example Feed",
        description="A test feed",
        is_active=True,
        update_frequency="hourly",
        keyword_filters=[],
        content_filters={},
    )
    db_session.add(feed)
    db_session.commit()
    db_session.refresh(feed)
    return feed


@pytest.fixture
def make_feed(db_session, test_user):
    """Factory for additional feeds owned by the test user."""
    counter = {"n": 0}

    def _make_feed(**overrides) -> Feed:
        counter["n"] += 1
        values = {
            "user_id": test_user.id,
            "url": f"https://example.com/feeds/{counter['n']}.xml",
            "title": f"Feed {counter['n']}",
            "is_active": True,
            "update_frequency": "daily",
        }
        values.update(overrides)
        feed = Feed(**values)
        db_session.add(feed)
        db_session.commit()
        db_session.refresh(feed)
        return feed

    return _make_feed


@pytest.fixture
def make_item(db_session):
    """Factory for stored feed items."""

    def _make_item(feed_id: int, guid=None, title="Stored item", link=None) -> FeedItem:
        item = FeedItem(
            feed_id=feed_id,
            guid=guid,
            content_hash=content_fingerprint(title, None, link),
            title=title,
            link=link,
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make_item


@pytest.fixture
def mock_rss_feed_data():
    """Mock RSS feed data."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Test Feed</title>
        <link>https://example.com</link>
        <description>A test RSS feed</description>
        <item>
            <title>Test Article 1</title>
            <link>https://example.com/article1</link>
            <guid>urn:test:1</guid>
            <description>&lt;p&gt;Description of &lt;b&gt;article 1&lt;/b&gt;&lt;/p&gt;</description>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
            <author>author@example.com (Test Author)</author>
            <category>Technology</category>
        </item>
        <item>
            <title>Test Article 2</title>
            <link>https://example.com/article2</link>
            <guid>urn:test:2</guid>
            <description>Description of article 2</description>
            <pubDate>Tue, 02 Jan 2024 12:00:00 GMT</pubDate>
        </item>
    </channel>
</rss>
"""


@pytest.fixture
def five_item_feed_data():
    """RSS document with five items, each with a distinct guid."""
    items = "\n".join(
        f"""        <item>
            <title>Python release notes {i}</title>
            <link>https://example.com/posts/{i}</link>
            <guid>urn:post:{i}</guid>
            <description>Post number {i} about python packaging</description>
        </item>"""
        for i in range(1, 6)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Five Items</title>
        <link>https://example.com</link>
        <description>Feed with five items</description>
{items}
    </channel>
</rss>
"""


@pytest.fixture
def feed_transport():
    """Build an httpx.MockTransport that serves a fixed body for every request."""

    def _transport(body: str = "", status_code: int = 200) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status_code,
                text=body,
                headers={"Content-Type": "application/rss+xml"},
            )

        return httpx.MockTransport(handler)

    return _transport


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    test_env = {
        "OPENAI_API_KEY": "test_key_123",
        "ENABLE_SCHEDULER": "false",
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)
