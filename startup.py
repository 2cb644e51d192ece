"""
Startup script for the webhook service.

``web`` runs the admin API; deliveries fan out on an in-process thread
pool unless WEBHOOK_DISPATCH_BACKEND=rq, in which case one or more
``worker`` processes consume the redis queue.
"""
import os
import sys
import uvicorn
import logging
import argparse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("startup")

def run_worker():
    """Consume delivery jobs from the redis queue."""
    from redis import Redis
    from rq import Queue, Worker

    from dealer_webhooks.config import REDIS_URL
    from dealer_webhooks.database import init_db
    from dealer_webhooks.worker.dispatcher import QUEUE_NAME

    init_db()
    connection = Redis.from_url(REDIS_URL)
    worker = Worker([Queue(QUEUE_NAME, connection=connection)], connection=connection)
    logger.info(f"Starting delivery worker {worker.name} on queue '{QUEUE_NAME}'")
    worker.work(logging_level="INFO")

def main():
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(description="Run the webhook service")
    parser.add_argument("mode", nargs="?", choices=["web", "worker"], default="web",
                        help="Run the API server or an rq delivery worker")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")),
                        help="Port to run the server on")
    parser.add_argument("--host", type=str, default="0.0.0.0",
                        help="Host to run the server on")
    parser.add_argument("--workers", type=int, default=1,
                        help="Number of server processes")

    args = parser.parse_args()

    if args.mode == "worker":
        run_worker()
        return

    logger.info(f"Starting webhook service on {args.host}:{args.port}")

    uvicorn.run(
        "dealer_webhooks.main:app",
        host=args.host,
        port=args.port,
        workers=args.workers,
        log_level="info"
    )

if __name__ == "__main__":
    main()
