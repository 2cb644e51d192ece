from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.sql import desc

from . import models, schemas
from .events import WebhookEvent
from .models import DeliveryStatus
from .utils.security import generate_secret

# Subscription CRUD
def create_subscription(db: Session, subscription: schemas.SubscriptionCreate):
    db_subscription = models.Subscription(
        target_url=str(subscription.target_url),
        secret=subscription.secret or generate_secret(),
        description=subscription.description,
        is_active=True,
        failure_count=0,
    )
    db_subscription.set_events(subscription.events)
    db.add(db_subscription)
    db.commit()
    db.refresh(db_subscription)
    return db_subscription

def get_subscription(db: Session, subscription_id: UUID):
    return db.query(models.Subscription).filter(models.Subscription.id == subscription_id).first()

def get_subscriptions(db: Session, skip: int = 0, limit: int = 100):
    return db.query(models.Subscription).order_by(
        desc(models.Subscription.created_at)
    ).offset(skip).limit(limit).all()

def update_subscription(db: Session, subscription_id: UUID, subscription: schemas.SubscriptionUpdate):
    db_subscription = get_subscription(db, subscription_id)

    if db_subscription is None:
        return None

    update_data = subscription.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        # Only description may be cleared with an explicit null
        if value is None and key != "description":
            continue
        if key == "target_url":
            db_subscription.target_url = str(value)
        elif key == "events":
            db_subscription.set_events(value)
        else:
            setattr(db_subscription, key, value)

    db.commit()
    db.refresh(db_subscription)
    return db_subscription

def delete_subscription(db: Session, subscription_id: UUID):
    db_subscription = get_subscription(db, subscription_id)
    if db_subscription:
        db.delete(db_subscription)
        db.commit()
    return db_subscription

def get_matching_subscriptions(db: Session, event: WebhookEvent):
    """Active subscriptions listening for ``event`` directly or through the wildcard."""
    return db.query(models.Subscription).join(models.Subscription.event_links).filter(
        models.Subscription.is_active.is_(True),
        models.SubscriptionEvent.event.in_([event, WebhookEvent.ALL])
    ).distinct().all()

# Subscription health counters. Single UPDATE statements so concurrent
# deliveries to one subscription never lose an increment.
def reset_failure_count(db: Session, subscription_id: UUID):
    db.query(models.Subscription).filter(
        models.Subscription.id == subscription_id
    ).update({
        models.Subscription.failure_count: 0,
        models.Subscription.last_triggered_at: datetime.utcnow(),
    }, synchronize_session=False)
    db.commit()

def increment_failure_count(db: Session, subscription_id: UUID, error: Optional[str], threshold: int) -> bool:
    """Count one failure and deactivate at ``threshold``. Returns True if this call deactivated it."""
    db.query(models.Subscription).filter(
        models.Subscription.id == subscription_id
    ).update({
        models.Subscription.failure_count: models.Subscription.failure_count + 1,
        models.Subscription.last_error: error,
        models.Subscription.last_triggered_at: datetime.utcnow(),
    }, synchronize_session=False)

    disabled = db.query(models.Subscription).filter(
        models.Subscription.id == subscription_id,
        models.Subscription.is_active.is_(True),
        models.Subscription.failure_count >= threshold
    ).update({models.Subscription.is_active: False}, synchronize_session=False)

    db.commit()
    return disabled > 0

# DeliveryAttempt CRUD (append-only ledger, there is no delete)
def create_delivery_attempt(db: Session, subscription_id: UUID, event: str, payload: str):
    db_attempt = models.DeliveryAttempt(
        subscription_id=subscription_id,
        event=event,
        payload=payload,
        status=DeliveryStatus.PENDING,
        attempt_count=0,
        retry_count=0,
    )
    db.add(db_attempt)
    db.commit()
    db.refresh(db_attempt)
    return db_attempt

def get_delivery_attempt(db: Session, attempt_id: UUID):
    return db.query(models.DeliveryAttempt).filter(models.DeliveryAttempt.id == attempt_id).first()

def update_attempt_count(db: Session, attempt_id: UUID, attempt_count: int):
    db.query(models.DeliveryAttempt).filter(
        models.DeliveryAttempt.id == attempt_id
    ).update({models.DeliveryAttempt.attempt_count: attempt_count}, synchronize_session=False)
    db.commit()

def mark_delivery_succeeded(db: Session, attempt_id: UUID, status_code: int, response_body: str):
    db.query(models.DeliveryAttempt).filter(
        models.DeliveryAttempt.id == attempt_id
    ).update({
        models.DeliveryAttempt.status: DeliveryStatus.SUCCESS,
        models.DeliveryAttempt.response_status: status_code,
        models.DeliveryAttempt.response_body: response_body,
        models.DeliveryAttempt.error_message: None,
        models.DeliveryAttempt.delivered_at: datetime.utcnow(),
    }, synchronize_session=False)
    db.commit()

def mark_delivery_failed(db: Session, attempt_id: UUID, error: str, status_code: Optional[int] = None):
    # A successful record never regresses
    db.query(models.DeliveryAttempt).filter(
        models.DeliveryAttempt.id == attempt_id,
        models.DeliveryAttempt.status != DeliveryStatus.SUCCESS
    ).update({
        models.DeliveryAttempt.status: DeliveryStatus.FAILED,
        models.DeliveryAttempt.response_status: status_code,
        models.DeliveryAttempt.error_message: error,
    }, synchronize_session=False)
    db.commit()

def claim_manual_retry(db: Session, attempt_id: UUID, limit: int) -> bool:
    """Atomically take one manual retry slot. False unless the record is FAILED and under the cap."""
    claimed = db.query(models.DeliveryAttempt).filter(
        models.DeliveryAttempt.id == attempt_id,
        models.DeliveryAttempt.status == DeliveryStatus.FAILED,
        models.DeliveryAttempt.retry_count < limit
    ).update({
        models.DeliveryAttempt.retry_count: models.DeliveryAttempt.retry_count + 1,
        models.DeliveryAttempt.status: DeliveryStatus.PENDING,
        models.DeliveryAttempt.attempt_count: 0,
    }, synchronize_session=False)
    db.commit()
    return claimed > 0

def get_delivery_history(db: Session, subscription_id: UUID, limit: int = 50):
    return db.query(models.DeliveryAttempt).filter(
        models.DeliveryAttempt.subscription_id == subscription_id
    ).order_by(desc(models.DeliveryAttempt.created_at)).limit(limit).all()

def get_delivery_stats(db: Session, subscription_id: UUID) -> schemas.DeliveryStats:
    rows = db.query(
        models.DeliveryAttempt.status, func.count(models.DeliveryAttempt.id)
    ).filter(
        models.DeliveryAttempt.subscription_id == subscription_id
    ).group_by(models.DeliveryAttempt.status).all()
    counts = {status: count for status, count in rows}

    last_delivery = db.query(func.max(models.DeliveryAttempt.created_at)).filter(
        models.DeliveryAttempt.subscription_id == subscription_id
    ).scalar()

    total = sum(counts.values())
    successful = counts.get(DeliveryStatus.SUCCESS, 0)
    return schemas.DeliveryStats(
        total_deliveries=total,
        successful_deliveries=successful,
        failed_deliveries=counts.get(DeliveryStatus.FAILED, 0),
        pending_deliveries=counts.get(DeliveryStatus.PENDING, 0),
        success_rate=(successful / total) * 100 if total > 0 else 0.0,
        last_delivery=last_delivery,
    )
