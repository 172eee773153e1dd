"""
Pytest configuration for testing
"""

import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set up environment variables for testing before any imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FIREBASE_PROJECT_ID"] = "test-project"
os.environ["FIREBASE_CREDENTIALS_PATH"] = "/tmp/draftwell-missing-creds.json"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["REDIS_PASSWORD"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_draftwell"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_draftwell"
os.environ["STRIPE_STARTER_PRICE_ID"] = "price_starter"
os.environ["STRIPE_PRO_PRICE_ID"] = "price_pro"
os.environ["DEFAULT_STARTING_TOKENS"] = "2"


# Mock Firebase Admin before it's imported
@pytest.fixture(autouse=True)
def mock_firebase_admin(monkeypatch):
    """Mock Firebase Admin SDK to avoid initialization issues in tests"""
    mock_credentials = MagicMock()
    monkeypatch.setattr("firebase_admin.credentials.Certificate", mock_credentials.Certificate)

    mock_init = MagicMock()
    monkeypatch.setattr("firebase_admin.initialize_app", mock_init)

    mock_auth = MagicMock()
    monkeypatch.setattr("firebase_admin.auth", mock_auth)

    # Analytics writes go to a mock Firestore client
    mock_firestore = MagicMock()
    monkeypatch.setattr("firebase_admin.firestore.client", mock_firestore)

    yield mock_auth


@pytest.fixture(autouse=True)
def mock_cache():
    """Replace the Redis cache with a mock that grants every lock"""
    from app.core.cache import set_cache

    cache = MagicMock()
    cache.acquire_lock.return_value = True
    cache.get_int.return_value = None
    cache.incr.return_value = 1
    set_cache(cache)
    yield cache
    set_cache(None)


@pytest.fixture(scope="function")
def db_engine():
    """Fresh in-memory database per test"""
    from app.core.database import Base
    import app.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a new database session for a test"""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def listeners():
    from app.core.listeners import ListenerRegistry
    return ListenerRegistry()


@pytest.fixture
def subscription_service(listeners):
    from app.services.subscription_service import SubscriptionService
    return SubscriptionService(listeners=listeners)


@pytest.fixture
def post_service(listeners):
    from app.services.post_service import PostService
    return PostService(listeners=listeners)


@pytest.fixture
def entitlement_service(subscription_service):
    from app.services.entitlement_service import EntitlementService
    return EntitlementService(subscription_service=subscription_service)


@pytest.fixture
def now():
    return datetime(2025, 3, 14, 12, 0, 0)
