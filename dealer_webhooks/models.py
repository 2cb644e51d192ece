import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, Uuid
)
from sqlalchemy.orm import relationship

from .database import Base
from .events import WebhookEvent


class DeliveryStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    target_url = Column(String, nullable=False)
    secret = Column(String, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    failure_count = Column(Integer, nullable=False, default=0)
    last_triggered_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    event_links = relationship(
        "SubscriptionEvent",
        back_populates="subscription",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def events(self):
        return sorted((link.event for link in self.event_links), key=lambda e: e.value)

    def set_events(self, events):
        wanted = {WebhookEvent.parse(e) for e in events}
        for link in list(self.event_links):
            if link.event not in wanted:
                self.event_links.remove(link)
        current = {link.event for link in self.event_links}
        for event in sorted(wanted - current, key=lambda e: e.value):
            self.event_links.append(SubscriptionEvent(event=event))


class SubscriptionEvent(Base):
    __tablename__ = "subscription_events"

    subscription_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    event = Column(
        Enum(
            WebhookEvent,
            name="webhook_event",
            native_enum=False,
            length=64,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        primary_key=True,
    )

    subscription = relationship("Subscription", back_populates="event_links")


class DeliveryAttempt(Base):
    __tablename__ = "delivery_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Not a foreign key: history outlives deregistered subscriptions
    subscription_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    event = Column(String, nullable=False)
    payload = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=DeliveryStatus.PENDING)
    attempt_count = Column(Integer, nullable=False, default=0)
    response_status = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    delivered_at = Column(DateTime, nullable=True)
