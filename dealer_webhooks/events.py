from enum import Enum


class WebhookEvent(str, Enum):
    """Closed catalog of events that can be delivered to subscribers."""

    # Vehicle events
    VEHICLE_CREATED = "vehicle.created"
    VEHICLE_UPDATED = "vehicle.updated"
    VEHICLE_DELETED = "vehicle.deleted"
    VEHICLE_SOLD = "vehicle.sold"

    # Inquiry events
    INQUIRY_RECEIVED = "inquiry.received"
    INQUIRY_UPDATED = "inquiry.updated"

    # Contact events
    CONTACT_RECEIVED = "contact.received"

    # Appointment events
    APPOINTMENT_SCHEDULED = "appointment.scheduled"
    APPOINTMENT_CONFIRMED = "appointment.confirmed"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_COMPLETED = "appointment.completed"

    # Payment events
    PAYMENT_INITIATED = "payment.initiated"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"

    # Delivery events
    DELIVERY_SCHEDULED = "delivery.scheduled"
    DELIVERY_IN_TRANSIT = "delivery.in_transit"
    DELIVERY_COMPLETED = "delivery.completed"

    # Newsletter events
    NEWSLETTER_SUBSCRIBED = "newsletter.subscribed"
    NEWSLETTER_UNSUBSCRIBED = "newsletter.unsubscribed"

    # Sent by the test-delivery endpoint
    TEST = "webhook.test"

    # Matches every event
    ALL = "*"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "WebhookEvent":
        """Convert an event name to a catalog member.

        Raises:
            ValueError: if the name is not in the catalog
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown webhook event: {value!r}") from None
