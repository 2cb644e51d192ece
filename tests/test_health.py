"""Tests for failure-streak tracking and auto-disable."""

from concurrent.futures import ThreadPoolExecutor

from dealer_webhooks import crud, database, health, schemas
from dealer_webhooks.events import WebhookEvent


def test_success_resets_streak(db, make_subscription):
    sub = make_subscription()
    for _ in range(3):
        health.record_outcome(db, sub.id, success=False, error="HTTP 500")

    health.record_outcome(db, sub.id, success=True)
    db.refresh(sub)

    assert sub.failure_count == 0
    assert sub.last_triggered_at is not None
    assert sub.last_error == "HTTP 500"


def test_failure_increments_streak_and_stores_error(db, make_subscription):
    sub = make_subscription()

    disabled = health.record_outcome(db, sub.id, success=False, error="Transport error: timed out")
    db.refresh(sub)

    assert disabled is False
    assert sub.failure_count == 1
    assert sub.last_error == "Transport error: timed out"
    assert sub.is_active is True


def test_tenth_failure_disables(db, make_subscription):
    sub = make_subscription()

    results = [health.record_outcome(db, sub.id, success=False, error="HTTP 503") for _ in range(10)]
    db.refresh(sub)

    assert results == [False] * 9 + [True]
    assert sub.failure_count == 10
    assert sub.is_active is False
    assert crud.get_matching_subscriptions(db, WebhookEvent.VEHICLE_SOLD) == []


def test_no_automatic_reactivation(db, make_subscription):
    sub = make_subscription()
    for _ in range(10):
        health.record_outcome(db, sub.id, success=False, error="HTTP 503")

    health.record_outcome(db, sub.id, success=True)
    db.refresh(sub)
    assert sub.is_active is False

    crud.update_subscription(db, sub.id, schemas.SubscriptionUpdate(is_active=True))
    db.refresh(sub)
    assert sub.is_active is True


def test_custom_threshold(db, make_subscription):
    sub = make_subscription()

    assert health.record_outcome(db, sub.id, success=False, threshold=2) is False
    assert health.record_outcome(db, sub.id, success=False, threshold=2) is True


def test_concurrent_failures_are_not_lost(make_subscription):
    sub = make_subscription()

    def fail_once(_):
        session = database.SessionLocal()
        try:
            return health.record_outcome(session, sub.id, success=False, error="HTTP 500")
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(fail_once, range(20)))

    session = database.SessionLocal()
    try:
        stored = crud.get_subscription(session, sub.id)
        assert stored.failure_count == 20
        assert stored.is_active is False
    finally:
        session.close()

    # Exactly one outcome performed the deactivation
    assert results.count(True) == 1
