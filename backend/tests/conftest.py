"""Shared pytest fixtures for test suite"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

import pytest
import fakeredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Keep the module-level engine away from a real Postgres server
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from newsdesk.main import app
from newsdesk.core.config import settings
from newsdesk.db.session import get_db
from newsdesk.db import redis as redis_module
from newsdesk.db import task_queue as task_queue_module
from newsdesk.models import Base
from newsdesk.models.subscriber import NewsletterSubscriber
from newsdesk.models.post import BlogPost, NewsPost
from newsdesk.models.template import NewsletterTemplate
from newsdesk.models.topic import NewsletterTopic
from newsdesk.services.newsletter_service import generate_token, seed_defaults


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_ADMIN_TOKEN = "test-admin-token"

# Resend test address - use variants of it for every subscriber in tests
# See: https://resend.com/docs/dashboard/emails/send-test-emails
RESEND_TEST_DELIVERED = "delivered@resend.dev"


def resend_address(label: str) -> str:
    return f"delivered+{label}@resend.dev"


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Sync and async fakeredis clients sharing one in-memory server"""
    server = fakeredis.FakeServer()
    fake_redis = fakeredis.FakeStrictRedis(server=server, decode_responses=True)
    fake_async_redis = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)

    with patch.object(redis_module, '_client', fake_redis):
        with patch.object(task_queue_module, 'get_async_redis_client', lambda: fake_async_redis):
            yield fake_redis


@pytest.fixture(scope="function")
def mock_email_service():
    """Mock email service (Resend) to avoid sending actual emails"""
    with patch('newsdesk.services.email_service.resend') as mock_resend:
        with patch.object(settings, 'RESEND_API_KEY', 're_test_key'):
            mock_resend.Emails.send = Mock(return_value={"id": "email_test123"})
            yield mock_resend


@pytest.fixture(scope="function")
def admin_headers():
    """Configure the admin token and return matching request headers"""
    with patch.object(settings, 'ADMIN_API_TOKEN', TEST_ADMIN_TOKEN):
        yield {"X-Admin-Token": TEST_ADMIN_TOKEN}


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis, mock_email_service) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, mocked Redis and mocked Resend"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db
    try:
        # No context manager: the lifespan would start the worker and touch the real database
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def seeded(db_session: Session):
    """Default topics ('blog', 'news') and the 'New Post Notification' template"""
    seed_defaults(db_session)
    return {
        "blog": db_session.query(NewsletterTopic).filter_by(slug="blog").one(),
        "news": db_session.query(NewsletterTopic).filter_by(slug="news").one(),
        "template": db_session.query(NewsletterTemplate).filter_by(name="New Post Notification").one(),
    }


@pytest.fixture(scope="function")
def make_subscriber(db_session: Session):
    """Factory for subscribers; verified and subscribed unless told otherwise"""
    counter = {"n": 0}

    def _make(name="Reader", verified=True, subscribed=True, topics=None, email=None, locale="id"):
        counter["n"] += 1
        subscriber = NewsletterSubscriber(
            email=email or resend_address(f"reader{counter['n']}"),
            name=name,
            subscribed=subscribed,
            verified_at=datetime.now(timezone.utc) if verified else None,
            token=generate_token(),
            locale=locale,
        )
        subscriber.topics = list(topics or [])
        db_session.add(subscriber)
        db_session.commit()
        db_session.refresh(subscriber)
        return subscriber

    return _make


@pytest.fixture(scope="function")
def make_post(db_session: Session):
    """Factory for blog/news posts"""

    def _make(post_type="blog", title="Belajar Mengajar", slug=None, status="published", **fields):
        model = BlogPost if post_type == "blog" else NewsPost
        post = model(
            title=title,
            slug=slug or title.lower().replace(" ", "-"),
            sub_title=fields.get("sub_title"),
            excerpt=fields.get("excerpt"),
            body=fields.get("body"),
            status=status,
        )
        db_session.add(post)
        db_session.commit()
        db_session.refresh(post)
        return post

    return _make
