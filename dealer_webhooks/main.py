from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .api import subscriptions, deliveries, events
from .config import DISPATCH_BACKEND, REDIS_URL
from .database import SessionLocal, init_db
from .worker.dispatcher import dispatcher

app = FastAPI(
    title="Dealer Webhooks",
    description="Outbound webhook delivery for dealership events: signed callbacks with retry and subscriber health tracking",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
app.include_router(deliveries.router, prefix="/deliveries", tags=["deliveries"])
app.include_router(events.router, prefix="/events", tags=["events"])

@app.get("/")
def read_root():
    return {"message": "Welcome to Dealer Webhooks"}

@app.get("/health")
def health_check():
    # Check database connection
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
    finally:
        db.close()

    result = {
        "status": "up",
        "database": db_status,
        "dispatcher": dispatcher.status(),
    }

    # Redis only matters when deliveries go through rq
    if DISPATCH_BACKEND == "rq":
        try:
            import redis

            redis.from_url(REDIS_URL).ping()
            result["redis"] = "healthy"
        except Exception as e:
            result["redis"] = f"unhealthy: {str(e)}"

    return result

@app.on_event("startup")
async def startup_event():
    init_db()
    dispatcher.start()

@app.on_event("shutdown")
async def shutdown_event():
    dispatcher.stop()
