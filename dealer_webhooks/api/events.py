from fastapi import APIRouter, HTTPException

from .. import schemas
from ..events import WebhookEvent
from ..worker.dispatcher import dispatcher

router = APIRouter()

@router.post("/", response_model=schemas.TriggerResult, status_code=202)
def trigger_event(request: schemas.TriggerEvent):
    """Raise an event by hand, e.g. to replay a business event to subscribers."""
    if request.event is WebhookEvent.ALL:
        raise HTTPException(status_code=400, detail="The wildcard cannot be triggered as an event")

    subscription_ids = dispatcher.trigger_event(request.event, request.data)
    return {"event": request.event, "subscriptions": subscription_ids}
