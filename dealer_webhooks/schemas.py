from datetime import datetime
from typing import Dict, List, Optional, Any
from uuid import UUID
from pydantic import BaseModel, Field, HttpUrl

from .events import WebhookEvent

class SubscriptionBase(BaseModel):
    target_url: HttpUrl
    events: List[WebhookEvent] = Field(..., min_length=1)
    description: Optional[str] = None

class SubscriptionCreate(SubscriptionBase):
    secret: Optional[str] = Field(None, min_length=1)

class SubscriptionUpdate(BaseModel):
    target_url: Optional[HttpUrl] = None
    events: Optional[List[WebhookEvent]] = Field(None, min_length=1)
    secret: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    description: Optional[str] = None

class Subscription(SubscriptionBase):
    id: UUID
    is_active: bool
    failure_count: int
    last_triggered_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class SubscriptionWithSecret(Subscription):
    """Returned once, on registration."""
    secret: str

class TriggerEvent(BaseModel):
    event: WebhookEvent
    data: Dict[str, Any] = Field(default_factory=dict)

class TriggerResult(BaseModel):
    event: WebhookEvent
    subscriptions: List[UUID]

class DeliveryAttempt(BaseModel):
    id: UUID
    subscription_id: UUID
    event: str
    payload: str
    status: str
    attempt_count: int
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class DeliveryStats(BaseModel):
    total_deliveries: int
    successful_deliveries: int
    failed_deliveries: int
    pending_deliveries: int
    success_rate: float
    last_delivery: Optional[datetime] = None

class SignatureCheck(BaseModel):
    valid: bool
