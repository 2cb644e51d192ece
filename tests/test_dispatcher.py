"""Tests for event fan-out."""

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from dealer_webhooks import crud
from dealer_webhooks.events import WebhookEvent
from dealer_webhooks.models import DeliveryStatus
from dealer_webhooks.utils.security import sign
from dealer_webhooks.worker import dispatcher as dispatcher_module
from dealer_webhooks.worker import tasks
from dealer_webhooks.worker.dispatcher import EventDispatcher


@pytest.fixture
def dispatcher():
    instance = EventDispatcher(backend="thread", max_workers=4)
    instance.start()
    yield instance
    instance.stop()
    tasks.shutdown_event.clear()


def posts_to(mock_post, url):
    return [c for c in mock_post.call_args_list if c.args[0] == url]


def test_signed_delivery_to_subscriber(db, dispatcher, make_subscription, mock_post):
    sub = make_subscription(target_url="https://sub.example/hook", events=["vehicle.sold"])

    matched = dispatcher.trigger_event("vehicle.sold", {"vehicleId": "v1"}, wait=True)

    assert matched == [sub.id]
    assert mock_post.call_count == 1
    call = mock_post.call_args
    assert call.args[0] == "https://sub.example/hook"
    assert call.kwargs["headers"]["X-Webhook-Signature"] == sign(call.kwargs["data"], sub.secret)
    body = json.loads(call.kwargs["data"])
    assert body["event"] == "vehicle.sold"
    assert body["data"] == {"vehicleId": "v1"}


def test_one_record_per_matching_subscription(db, dispatcher, make_subscription, mock_post):
    subs = [make_subscription(target_url=f"https://sub{i}.example/hook", events=["*"]) for i in range(5)]
    make_subscription(target_url="https://other.example/hook", events=["payment.completed"])

    matched = dispatcher.trigger_event(WebhookEvent.APPOINTMENT_SCHEDULED, {"id": 7}, wait=True)

    assert set(matched) == {s.id for s in subs}
    assert mock_post.call_count == 5
    for sub in subs:
        history = crud.get_delivery_history(db, sub.id)
        assert len(history) == 1
        assert history[0].event == "appointment.scheduled"


def test_wildcard_receives_every_event(db, dispatcher, make_subscription, mock_post):
    sub = make_subscription(events=["*"])

    for event in ("vehicle.created", "newsletter.unsubscribed", "delivery.in_transit"):
        dispatcher.trigger_event(event, {}, wait=True)

    delivered = sorted(a.event for a in crud.get_delivery_history(db, sub.id))
    assert delivered == ["delivery.in_transit", "newsletter.unsubscribed", "vehicle.created"]


def test_no_match_is_a_noop(dispatcher, make_subscription, mock_post):
    make_subscription(events=["payment.completed"])

    assert dispatcher.trigger_event("vehicle.sold", {}, wait=True) == []
    assert mock_post.call_count == 0


def test_failures_are_isolated(db, dispatcher, make_subscription, mock_post, make_response):
    healthy = make_subscription(target_url="https://ok.example/hook", events=["*"])
    broken = make_subscription(target_url="https://down.example/hook", events=["*"])
    crashing = make_subscription(target_url="https://crash.example/hook", events=["*"])

    def post(url, **kwargs):
        if url.startswith("https://down."):
            return make_response(status_code=500, reason="Internal Server Error")
        if url.startswith("https://crash."):
            raise RuntimeError("unexpected")
        return make_response()

    mock_post.side_effect = post

    matched = dispatcher.trigger_event("payment.completed", {"amount": 1}, wait=True)

    assert len(matched) == 3
    assert len(posts_to(mock_post, "https://down.example/hook")) == 3
    assert crud.get_delivery_history(db, healthy.id)[0].status == DeliveryStatus.SUCCESS
    assert crud.get_delivery_history(db, broken.id)[0].status == DeliveryStatus.FAILED
    assert crud.get_delivery_history(db, crashing.id)[0].status == DeliveryStatus.FAILED
    db.expire_all()
    assert crud.get_subscription(db, healthy.id).failure_count == 0
    assert crud.get_subscription(db, broken.id).failure_count == 1


def test_auto_disabled_subscription_stops_receiving(db, dispatcher, make_subscription, mock_post, make_response):
    sub = make_subscription(events=["vehicle.sold"])
    mock_post.return_value = make_response(status_code=400, reason="Bad Request")

    for _ in range(10):
        dispatcher.trigger_event("vehicle.sold", {}, wait=True)
    db.expire_all()
    assert crud.get_subscription(db, sub.id).is_active is False

    mock_post.reset_mock()
    assert dispatcher.trigger_event("vehicle.sold", {}, wait=True) == []
    assert mock_post.call_count == 0
    assert len(crud.get_delivery_history(db, sub.id)) == 10


def test_deregistered_subscription_keeps_history(db, dispatcher, make_subscription, mock_post):
    sub = make_subscription(events=["vehicle.sold"])
    dispatcher.trigger_event("vehicle.sold", {}, wait=True)

    crud.delete_subscription(db, sub.id)
    assert dispatcher.trigger_event("vehicle.sold", {}, wait=True) == []

    assert len(crud.get_delivery_history(db, sub.id)) == 1
    assert mock_post.call_count == 1


def test_wildcard_and_unknown_events_rejected(dispatcher):
    with pytest.raises(ValueError):
        dispatcher.trigger_event("*", {})
    with pytest.raises(ValueError):
        dispatcher.trigger_event("vehicle.exploded", {})


def test_stopped_dispatcher_drops_events(dispatcher, make_subscription, mock_post):
    make_subscription(events=["vehicle.sold"])
    dispatcher.stop()

    assert dispatcher.trigger_event("vehicle.sold", {}, wait=True) == []
    assert mock_post.call_count == 0
    assert dispatcher.pool is None
    assert tasks.shutdown_event.is_set()
    assert dispatcher.status()["running"] is False


def test_restart_after_stop(dispatcher, make_subscription, mock_post):
    sub = make_subscription(events=["vehicle.sold"])
    dispatcher.stop()
    dispatcher.start()

    assert dispatcher.trigger_event("vehicle.sold", {}, wait=True) == [sub.id]
    assert mock_post.call_count == 1


def test_lazy_start_before_start(make_subscription, mock_post):
    sub = make_subscription(events=["vehicle.sold"])
    lazy = EventDispatcher(backend="thread", max_workers=2)

    assert lazy.trigger_event("vehicle.sold", {}, wait=True) == [sub.id]
    assert mock_post.call_count == 1
    lazy.stop()
    tasks.shutdown_event.clear()


def test_unknown_backend():
    with pytest.raises(ValueError):
        EventDispatcher(backend="celery")


def test_rq_backend_enqueues_jobs(make_subscription):
    sub = make_subscription(events=["payment.refunded"])
    queue = MagicMock()

    with patch("redis.Redis.from_url"), patch("rq.Queue", return_value=queue):
        rq_dispatcher = EventDispatcher(backend="rq")
        matched = rq_dispatcher.trigger_event("payment.refunded", {"amount": 5})

    assert matched == [sub.id]
    queue.enqueue.assert_called_once()
    func, subscription_id, envelope = queue.enqueue.call_args.args
    assert func is tasks.deliver_job
    assert subscription_id == str(sub.id)
    assert envelope["event"] == "payment.refunded"
    assert envelope["data"] == {"amount": 5}


def test_module_trigger_event_never_fails_the_caller(monkeypatch):
    failing = MagicMock()
    failing.trigger_event.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    monkeypatch.setattr(dispatcher_module, "dispatcher", failing)

    assert dispatcher_module.trigger_event("vehicle.sold", {"vehicleId": "v1"}) == []
