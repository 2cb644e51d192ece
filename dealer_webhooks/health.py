from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from . import crud
from .config import FAILURE_THRESHOLD
from .utils.logging import WebhookLogger


def record_outcome(db: Session, subscription_id: UUID, success: bool, error: Optional[str] = None,
                   threshold: int = FAILURE_THRESHOLD) -> bool:
    """Update a subscription's failure streak after a delivery outcome.

    A success resets the streak. A failure extends it and, once the streak
    reaches ``threshold``, deactivates the subscription. Reactivation is
    only ever an explicit registry update.

    Returns:
        True if this outcome deactivated the subscription
    """
    if success:
        crud.reset_failure_count(db, subscription_id)
        return False

    disabled = crud.increment_failure_count(db, subscription_id, error, threshold)
    if disabled:
        WebhookLogger.subscription_disabled(subscription_id, threshold)
    return disabled
