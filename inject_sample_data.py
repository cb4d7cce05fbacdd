#!/usr/bin/env python3
"""
Script to inject sample RSS feeds directly into the database.
Creates a sample user if the database has none, then subscribes it to a
few well-known feeds with different polling cadences.

Usage: python3 inject_sample_data.py [--email you@example.com]
"""

import argparse
import sys

from feedstudio.core.database import Base, SessionLocal, engine
from feedstudio.models.user import User
from feedstudio.schemas.feed import FeedCreate
from feedstudio.services.feed_service import FeedService, FeedServiceError


SAMPLE_FEEDS = [
    {
        "url": "https://feeds.arstechnica.com/arstechnica/index",
        "title": "Ars Technica",
        "description": "Technology news and analysis",
        "update_frequency": "hourly",
    },
    {
        "url": "https://www.theverge.com/rss/index.xml",
        "title": "The Verge",
        "description": "Technology, science, art, and culture",
        "update_frequency": "daily",
    },
    {
        "url": "https://hnrss.org/frontpage",
        "title": "Hacker News: Front Page",
        "description": "Links on the Hacker News front page",
        "update_frequency": "hourly",
        "keyword_filters": ["python", "database", "rss"],
    },
]


def get_or_create_user(db, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        print(f"✓ Found user: {user.email} (ID: {user.id})")
        return user

    user = User(email=email, name="Sample User")
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"✓ Created user: {user.email} (ID: {user.id})")
    return user


def inject_sample_feeds(email: str) -> int:
    """Inject sample feeds for the given user. Returns the number added."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    added_count = 0
    try:
        user = get_or_create_user(db, email)
        print()

        service = FeedService(db)
        for feed_data in SAMPLE_FEEDS:
            try:
                feed = service.add_feed(FeedCreate(user_id=user.id, **feed_data))
            except FeedServiceError as e:
                print(f"⊘ Skipped {feed_data['title']}: {e}")
                continue

            print(f"✓ Added feed: {feed.title} (ID: {feed.id}, {feed.update_frequency})")
            print(f"  URL: {feed.url}")
            added_count += 1

        print()
        print(f"✓ Successfully added {added_count} sample feed(s)")

        if added_count > 0:
            print()
            print("Next steps:")
            print("1. Start the API: uvicorn feedstudio.main:app --app-dir backend")
            print("2. The scheduler picks up the new feeds on its first check")
            print("3. Or trigger one now: POST /api/feeds/{id}/refresh")

    except Exception as e:
        print(f"❌ Error: {e}")
        db.rollback()
        raise

    finally:
        db.close()

    return added_count


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inject sample RSS feeds")
    parser.add_argument("--email", default="sample@example.com")
    args = parser.parse_args()

    print("=" * 60)
    print("  RSS Feed Data Injection Script")
    print("=" * 60)
    print()

    inject_sample_feeds(args.email)
    sys.exit(0)
