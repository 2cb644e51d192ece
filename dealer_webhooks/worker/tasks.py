import json
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from .. import crud, database, health
from ..config import (
    BACKOFF_MULTIPLIER,
    DELIVERY_TIMEOUT,
    INITIAL_BACKOFF,
    MAX_ATTEMPTS,
    MAX_BACKOFF,
    MAX_MANUAL_RETRIES,
    RESPONSE_BODY_LIMIT,
    USER_AGENT,
)
from ..events import WebhookEvent
from ..exceptions import (
    DeliveryAlreadySuccessful,
    DeliveryError,
    DeliveryInProgress,
    DeliveryNotFound,
    RetryLimitReached,
    SubscriptionNotFound,
)
from ..models import DeliveryStatus
from ..utils.logging import WebhookLogger, log_delivery_attempt, logger
from ..utils.security import sign

# Set on shutdown; wakes any delivery sleeping between attempts
shutdown_event = threading.Event()


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T10:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_envelope(event, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "event": WebhookEvent.parse(event).value,
        "timestamp": utc_timestamp(),
        "data": data if data is not None else {},
    }


def serialize_envelope(envelope: Dict[str, Any]) -> bytes:
    """Encode an envelope to the exact bytes that are signed and sent.

    Top-level keys are always written in event, timestamp, data order.
    """
    ordered = {
        "event": envelope["event"],
        "timestamp": envelope["timestamp"],
        "data": envelope.get("data", {}),
    }
    return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return min(INITIAL_BACKOFF * (BACKOFF_MULTIPLIER ** (attempt - 1)), MAX_BACKOFF)


def send_request(target_url: str, body: bytes, headers: Dict[str, str]) -> requests.Response:
    """POST once and classify the outcome.

    Raises:
        DeliveryError: for any non-2xx response or transport failure
    """
    try:
        response = requests.post(
            target_url,
            data=body,
            headers=headers,
            timeout=DELIVERY_TIMEOUT
        )
    except (requests.Timeout, requests.ConnectionError) as e:
        raise DeliveryError(f"Transport error: {e}", retryable=True) from e
    except requests.RequestException as e:
        raise DeliveryError(f"Request error: {e}", retryable=False) from e

    if 200 <= response.status_code < 300:
        return response

    raise DeliveryError(
        f"HTTP {response.status_code}: {response.reason}",
        status_code=response.status_code,
        retryable=response.status_code >= 500
    )


def _send_with_retries(db: Session, record, target_url: str, body: bytes, headers: Dict[str, str]):
    """Returns (response, None) on success or (None, DeliveryError) once the budget is spent."""
    response = None
    error = None
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            response = send_request(target_url, body, headers)
        except DeliveryError as e:
            error = e
        crud.update_attempt_count(db, record.id, attempt)

        log_delivery_attempt(
            delivery_id=record.id,
            subscription_id=record.subscription_id,
            attempt_number=attempt,
            status_code=response.status_code if response is not None else error.status_code,
            success=response is not None,
            error=None if response is not None else error
        )

        if response is not None or not error.retryable or attempt == MAX_ATTEMPTS:
            break

        delay = backoff_delay(attempt)
        logger.info(f"Retrying delivery {record.id} in {delay}s (attempt {attempt + 1}/{MAX_ATTEMPTS})")
        if shutdown_event.wait(delay):
            error = DeliveryError(f"{error} (retries aborted on shutdown)", status_code=error.status_code)
            break

    return response, (None if response is not None else error)


def _run_delivery(db: Session, record, target_url: str, secret: str):
    """Send ``record.payload`` with the automatic retry budget and settle the record."""
    body = record.payload.encode("utf-8")
    timestamp = json.loads(record.payload).get("timestamp", "")
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign(body, secret),
        "X-Webhook-Event": record.event,
        "X-Webhook-Timestamp": timestamp,
        "User-Agent": USER_AGENT,
    }

    try:
        response, error = _send_with_retries(db, record, target_url, body, headers)
    except Exception as e:
        # Settle the record before the error leaves the executor
        crud.mark_delivery_failed(db, record.id, f"Internal error: {e}")
        raise

    if response is not None:
        crud.mark_delivery_succeeded(
            db,
            record.id,
            status_code=response.status_code,
            response_body=response.content[:RESPONSE_BODY_LIMIT].decode("utf-8", errors="replace")
        )
        health.record_outcome(db, record.subscription_id, success=True)
        WebhookLogger.delivery_succeeded(record.subscription_id, record.id, record.event)
    else:
        crud.mark_delivery_failed(db, record.id, str(error), status_code=error.status_code)
        health.record_outcome(db, record.subscription_id, success=False, error=str(error))
        WebhookLogger.delivery_failed(record.subscription_id, record.id, str(error))

    db.refresh(record)
    return record


def deliver_webhook(db: Session, subscription_id: uuid.UUID, target_url: str, secret: str,
                    envelope: Dict[str, Any]):
    """Deliver one envelope to one subscription.

    Creates exactly one ledger record, retries transient failures on the
    same record and reports the final outcome to the health governor.

    Returns:
        The settled DeliveryAttempt
    """
    payload = serialize_envelope(envelope).decode("utf-8")
    record = crud.create_delivery_attempt(db, subscription_id, envelope["event"], payload)
    return _run_delivery(db, record, target_url, secret)


def deliver_job(subscription_id: str, envelope: Dict[str, Any]) -> Optional[str]:
    """Queue entry point. Never raises: one subscription's failure stays its own."""
    db = database.SessionLocal()
    try:
        subscription = crud.get_subscription(db, subscription_id=uuid.UUID(str(subscription_id)))
        if subscription is None:
            logger.warning(f"Subscription {subscription_id} was removed before delivery")
            return None
        if not subscription.is_active:
            logger.warning(f"Subscription {subscription_id} was deactivated before delivery")
            return None

        record = deliver_webhook(
            db,
            subscription.id,
            subscription.target_url,
            subscription.secret,
            envelope
        )
        return str(record.id)
    except Exception:
        logger.exception(f"Unexpected error delivering {envelope.get('event')} to {subscription_id}")
        return None
    finally:
        db.close()


def retry_delivery(db: Session, attempt_id: uuid.UUID):
    """Re-send a stored delivery using the subscription's current target and secret.

    Raises:
        DeliveryNotFound: no such record
        DeliveryAlreadySuccessful: the record already succeeded
        DeliveryInProgress: the record is still being delivered
        RetryLimitReached: the manual retry budget is spent
        SubscriptionNotFound: the subscription has been deregistered
    """
    record = crud.get_delivery_attempt(db, attempt_id)
    if record is None:
        raise DeliveryNotFound(f"Delivery {attempt_id} not found")
    if record.status == DeliveryStatus.SUCCESS:
        raise DeliveryAlreadySuccessful(attempt_id)
    if record.status == DeliveryStatus.PENDING:
        raise DeliveryInProgress(attempt_id)
    if record.retry_count >= MAX_MANUAL_RETRIES:
        raise RetryLimitReached(attempt_id, MAX_MANUAL_RETRIES)

    subscription = crud.get_subscription(db, record.subscription_id)
    if subscription is None:
        raise SubscriptionNotFound(f"Subscription {record.subscription_id} not found")

    if not crud.claim_manual_retry(db, attempt_id, MAX_MANUAL_RETRIES):
        # Another retry got there first
        db.refresh(record)
        if record.status == DeliveryStatus.SUCCESS:
            raise DeliveryAlreadySuccessful(attempt_id)
        if record.status == DeliveryStatus.PENDING:
            raise DeliveryInProgress(attempt_id)
        raise RetryLimitReached(attempt_id, MAX_MANUAL_RETRIES)

    db.refresh(record)
    WebhookLogger.retry_requested(record.id, record.retry_count)
    return _run_delivery(db, record, subscription.target_url, subscription.secret)


def send_test_webhook(db: Session, subscription_id: uuid.UUID):
    """Send a webhook.test event to one subscription, ignoring its event filter."""
    subscription = crud.get_subscription(db, subscription_id)
    if subscription is None:
        raise SubscriptionNotFound(f"Subscription {subscription_id} not found")

    envelope = build_envelope(WebhookEvent.TEST, {
        "message": "This is a test webhook",
        "subscriptionId": str(subscription.id),
    })
    return deliver_webhook(db, subscription.id, subscription.target_url, subscription.secret, envelope)
