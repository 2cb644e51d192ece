from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..exceptions import DeliveryNotFound, RetryRejected, SubscriptionNotFound
from ..worker import tasks

router = APIRouter()

# History and stats stay readable after a subscription is deregistered
@router.get("/subscription/{subscription_id}", response_model=List[schemas.DeliveryAttempt])
def get_subscription_deliveries(subscription_id: UUID, limit: int = 50, db: Session = Depends(get_db)):
    return crud.get_delivery_history(db, subscription_id=subscription_id, limit=limit)

@router.get("/subscription/{subscription_id}/stats", response_model=schemas.DeliveryStats)
def get_subscription_stats(subscription_id: UUID, db: Session = Depends(get_db)):
    return crud.get_delivery_stats(db, subscription_id=subscription_id)

@router.get("/{delivery_id}", response_model=schemas.DeliveryAttempt)
def get_delivery(delivery_id: UUID, db: Session = Depends(get_db)):
    delivery = crud.get_delivery_attempt(db, delivery_id)
    if delivery is None:
        raise HTTPException(status_code=404, detail="Delivery not found")
    return delivery

@router.post("/{delivery_id}/retry", response_model=schemas.DeliveryAttempt)
def retry_delivery(delivery_id: UUID, db: Session = Depends(get_db)):
    try:
        return tasks.retry_delivery(db, delivery_id)
    except (DeliveryNotFound, SubscriptionNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RetryRejected as e:
        raise HTTPException(status_code=409, detail=str(e))
