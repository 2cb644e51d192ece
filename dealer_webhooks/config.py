import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./webhooks.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# "thread" fans out on an in-process pool, "rq" enqueues jobs on redis
DISPATCH_BACKEND = os.getenv("WEBHOOK_DISPATCH_BACKEND", "thread")
DISPATCH_WORKERS = int(os.getenv("WEBHOOK_DISPATCH_WORKERS", "32"))

# Per-trigger automatic retry budget
DELIVERY_TIMEOUT = float(os.getenv("WEBHOOK_DELIVERY_TIMEOUT", "5"))
MAX_ATTEMPTS = int(os.getenv("WEBHOOK_MAX_ATTEMPTS", "3"))
INITIAL_BACKOFF = float(os.getenv("WEBHOOK_INITIAL_BACKOFF", "1"))
BACKOFF_MULTIPLIER = float(os.getenv("WEBHOOK_BACKOFF_MULTIPLIER", "2"))
MAX_BACKOFF = float(os.getenv("WEBHOOK_MAX_BACKOFF", "10"))

# Per-record manual retry budget, independent of MAX_ATTEMPTS
MAX_MANUAL_RETRIES = int(os.getenv("WEBHOOK_MAX_MANUAL_RETRIES", "5"))

FAILURE_THRESHOLD = int(os.getenv("WEBHOOK_FAILURE_THRESHOLD", "10"))
RESPONSE_BODY_LIMIT = int(os.getenv("WEBHOOK_RESPONSE_BODY_LIMIT", "1000"))
USER_AGENT = os.getenv("WEBHOOK_USER_AGENT", "DealerWebhooks/1.0")
SECRET_BYTES = int(os.getenv("WEBHOOK_SECRET_BYTES", "32"))
