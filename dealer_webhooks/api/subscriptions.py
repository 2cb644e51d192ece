from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..exceptions import InvalidSignature, SubscriptionNotFound
from ..utils.logging import WebhookLogger
from ..utils.security import require_valid_signature
from ..worker import tasks

router = APIRouter()

@router.post("/", response_model=schemas.SubscriptionWithSecret, status_code=201)
def create_subscription(subscription: schemas.SubscriptionCreate, db: Session = Depends(get_db)):
    db_subscription = crud.create_subscription(db=db, subscription=subscription)
    WebhookLogger.subscription_created(db_subscription.id, db_subscription.target_url)
    return db_subscription

@router.get("/{subscription_id}", response_model=schemas.Subscription)
def read_subscription(subscription_id: UUID, db: Session = Depends(get_db)):
    db_subscription = crud.get_subscription(db, subscription_id=subscription_id)
    if db_subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return db_subscription

@router.get("/", response_model=List[schemas.Subscription])
def read_subscriptions(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    subscriptions = crud.get_subscriptions(db, skip=skip, limit=limit)
    return subscriptions

@router.put("/{subscription_id}", response_model=schemas.Subscription)
def update_subscription(subscription_id: UUID, subscription: schemas.SubscriptionUpdate, db: Session = Depends(get_db)):
    db_subscription = crud.update_subscription(db, subscription_id=subscription_id, subscription=subscription)
    if db_subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    WebhookLogger.subscription_updated(subscription_id)
    return db_subscription

@router.delete("/{subscription_id}", response_model=schemas.Subscription)
def delete_subscription(subscription_id: UUID, db: Session = Depends(get_db)):
    db_subscription = crud.get_subscription(db, subscription_id=subscription_id)
    if db_subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    # Serialize before the row and its event links are gone
    deleted = schemas.Subscription.model_validate(db_subscription)
    crud.delete_subscription(db, subscription_id=subscription_id)
    WebhookLogger.subscription_deleted(subscription_id)
    return deleted

@router.post("/{subscription_id}/test", response_model=schemas.DeliveryAttempt)
def send_test_delivery(subscription_id: UUID, db: Session = Depends(get_db)):
    try:
        return tasks.send_test_webhook(db, subscription_id)
    except SubscriptionNotFound:
        raise HTTPException(status_code=404, detail="Subscription not found")

@router.post("/{subscription_id}/verify", response_model=schemas.SignatureCheck)
async def verify_subscription_signature(
    subscription_id: UUID,
    request: Request,
    x_webhook_signature: str = Header(...),
    db: Session = Depends(get_db)
):
    """Check a signature against the raw request body using the subscription's secret."""
    db_subscription = crud.get_subscription(db, subscription_id=subscription_id)
    if db_subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")

    body = await request.body()
    try:
        require_valid_signature(body, x_webhook_signature, db_subscription.secret)
    except InvalidSignature:
        raise HTTPException(status_code=401, detail="Invalid signature")
    return {"valid": True}
