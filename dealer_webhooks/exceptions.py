from typing import Optional


class WebhookError(Exception):
    """Base class for webhook delivery errors."""


class DeliveryError(WebhookError):
    """A single HTTP delivery attempt failed.

    ``retryable`` is True for transient failures (timeouts, dropped
    connections, 5xx responses) and False for permanent ones.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class InvalidSignature(WebhookError):
    """The supplied signature does not match the payload."""


class SubscriptionNotFound(WebhookError):
    pass


class DeliveryNotFound(WebhookError):
    pass


class RetryRejected(WebhookError):
    """A manual retry was refused."""


class DeliveryAlreadySuccessful(RetryRejected):
    def __init__(self, attempt_id):
        super().__init__(f"Delivery {attempt_id} already successful")


class RetryLimitReached(RetryRejected):
    def __init__(self, attempt_id, limit: int):
        super().__init__(f"Maximum retry attempts reached for delivery {attempt_id} ({limit})")
        self.limit = limit


class DeliveryInProgress(RetryRejected):
    def __init__(self, attempt_id):
        super().__init__(f"Delivery {attempt_id} is still in progress")
