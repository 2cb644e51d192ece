import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from typing import Any, Dict, List, Optional
from uuid import UUID

from .. import crud, database
from ..config import DISPATCH_BACKEND, DISPATCH_WORKERS, REDIS_URL
from ..events import WebhookEvent
from ..utils.logging import WebhookLogger
from . import tasks

logger = logging.getLogger("dealer_webhooks.dispatcher")

QUEUE_NAME = "webhooks"


class EventDispatcher:
    """Fans an event out to every matching subscription.

    Each match becomes one independent ``tasks.deliver_job`` call, run on
    an in-process thread pool or enqueued on redis for an rq worker.
    """

    def __init__(self, backend: str = DISPATCH_BACKEND, max_workers: int = DISPATCH_WORKERS):
        if backend not in ("thread", "rq"):
            raise ValueError(f"Unknown dispatch backend: {backend!r}")
        self.backend = backend
        self.max_workers = max_workers
        self.pool = None
        self.queue = None
        self.stopped = False
        self.lock = threading.Lock()

    def _start_locked(self):
        tasks.shutdown_event.clear()
        if self.backend == "thread":
            if self.pool is None:
                self.pool = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="webhook-delivery"
                )
                logger.info(f"Dispatcher started with {self.max_workers} delivery threads")
        elif self.queue is None:
            from redis import Redis
            from rq import Queue

            self.queue = Queue(QUEUE_NAME, connection=Redis.from_url(REDIS_URL))
            logger.info(f"Dispatcher enqueuing deliveries on queue '{QUEUE_NAME}'")

    def start(self):
        """Start the thread pool or connect to redis."""
        with self.lock:
            self.stopped = False
            self._start_locked()

    def stop(self, wait: bool = True):
        """Interrupt pending backoff waits and shut the pool down."""
        logger.info("Stopping dispatcher...")
        tasks.shutdown_event.set()
        with self.lock:
            self.stopped = True
            pool, self.pool = self.pool, None
        if pool is not None:
            pool.shutdown(wait=wait)
        logger.info("Dispatcher stopped")

    def status(self):
        return {
            "backend": self.backend,
            "running": not self.stopped and (self.pool is not None or self.queue is not None),
            "queue_length": len(self.queue) if self.queue is not None else None,
        }

    def trigger_event(self, event, data: Optional[Dict[str, Any]] = None, wait: bool = False) -> List[UUID]:
        """Deliver ``event`` to every active subscription listening for it.

        Delivery outcomes never propagate to the caller. With the thread
        backend, ``wait=True`` blocks until this call's deliveries settle.
        Once stopped, events are logged and dropped until ``start()``.

        Returns:
            Ids of the subscriptions the event was dispatched to

        Raises:
            ValueError: for names outside the event catalog, or the wildcard
        """
        event = WebhookEvent.parse(event)
        if event is WebhookEvent.ALL:
            raise ValueError("The wildcard cannot be triggered as an event")

        envelope = tasks.build_envelope(event, data)

        db = database.SessionLocal()
        try:
            subscription_ids = [s.id for s in crud.get_matching_subscriptions(db, event)]
        finally:
            db.close()

        if not subscription_ids:
            WebhookLogger.no_subscribers(event.value)
            return []

        with self.lock:
            if self.stopped:
                logger.warning(f"Dispatcher is stopped, dropping event {event.value}")
                return []
            # Started lazily when used before start()
            self._start_locked()
            pool, queue = self.pool, self.queue

        WebhookLogger.event_dispatched(event.value, len(subscription_ids))

        if self.backend == "rq":
            for subscription_id in subscription_ids:
                queue.enqueue(tasks.deliver_job, str(subscription_id), envelope)
            return subscription_ids

        futures = [
            pool.submit(tasks.deliver_job, str(subscription_id), envelope)
            for subscription_id in subscription_ids
        ]
        if wait:
            wait_futures(futures)
        return subscription_ids


# Create a global dispatcher instance
dispatcher = EventDispatcher()


def trigger_event(event, data: Optional[Dict[str, Any]] = None) -> List[UUID]:
    """Entry point for the rest of the application.

    Fire-and-forget: storage or queue errors are logged, not raised, so a
    webhook problem never fails the domain operation that raised the event.
    Unknown event names still raise ValueError.
    """
    try:
        return dispatcher.trigger_event(event, data)
    except ValueError:
        raise
    except Exception:
        logger.exception(f"Failed to dispatch event {event}")
        return []
