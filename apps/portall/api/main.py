"""
Portall API Server

Recruiting platform connecting NJCAA soccer players with NCAA/NAIA coaches.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore
from sqlalchemy.exc import IntegrityError

from portall.api.routes import router, limiter
from portall.database import db
from portall.database.seed_reference import seed_reference_data
from portall.utils.datetime_utils import utcnow

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENV", "development")
API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Portall API starting ({ENVIRONMENT})")

    # Startup keeps going on failure so /api/health can still report
    try:
        await db.init_database()
        counts = await seed_reference_data()
        logger.info(f"Reference data ready: {counts}")
    except Exception as e:
        logger.error(f"Database setup failed: {e}", exc_info=True)

    yield

    await db.engine.dispose()
    logger.info("Portall API stopped")


app = FastAPI(
    title="Portall API",
    description="Recruiting platform for NJCAA soccer players, NCAA/NAIA coaches and NJCAA coaches",
    version=API_VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Unique/foreign-key violations that slipped past service checks (e.g. concurrent inserts)."""
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=409, content={"detail": "Conflict with existing data"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Stripe-Signature"],
)

app.include_router(router)


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "portall-api",
        "timestamp": utcnow().isoformat(),
        "environment": ENVIRONMENT,
    }


@app.get("/")
async def root():
    """Index of the API; the frontend is deployed separately."""
    return {
        "service": "portall-api",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/api/health",
        "plans": "/api/subscriptions/plans",
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
