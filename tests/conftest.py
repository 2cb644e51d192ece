"""Shared fixtures: a throwaway SQLite database and a faked ``requests.post``."""

import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="dealer-webhooks-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["WEBHOOK_DISPATCH_BACKEND"] = "thread"

from unittest.mock import MagicMock, patch

import pytest

from dealer_webhooks import crud, database, schemas
from dealer_webhooks.worker import tasks


@pytest.fixture(autouse=True)
def fresh_database():
    database.Base.metadata.drop_all(bind=database.engine)
    database.init_db()
    yield


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No real sleeping between automatic attempts."""
    monkeypatch.setattr(tasks, "INITIAL_BACKOFF", 0)
    monkeypatch.setattr(tasks, "MAX_BACKOFF", 0)
    tasks.shutdown_event.clear()
    yield
    tasks.shutdown_event.clear()


@pytest.fixture
def db():
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_response():
    def _make(status_code=200, content=b"ok", reason="OK"):
        response = MagicMock()
        response.status_code = status_code
        response.content = content
        response.reason = reason
        return response

    return _make


@pytest.fixture
def mock_post(make_response):
    """Patch outbound HTTP; every call succeeds with 200 unless reconfigured."""
    with patch("dealer_webhooks.worker.tasks.requests.post") as post:
        post.return_value = make_response()
        yield post


@pytest.fixture
def make_subscription(db):
    def _make(target_url="https://sub.example/hook", events=("vehicle.sold",), secret=None, description=None):
        return crud.create_subscription(db, schemas.SubscriptionCreate(
            target_url=target_url,
            events=list(events),
            secret=secret,
            description=description,
        ))

    return _make
