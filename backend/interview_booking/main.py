"""
Interview Booking API - Main Application Entry Point

A phased interview slot scheduling and booking engine demonstrating:
- Concurrency-safe slot booking with optimistic locking (slot + student versions)
- Date-driven admission phases with per-phase booking ceilings
- Idempotent slot generation that never loses a confirmed booking
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from interview_booking.core.config import get_settings
from interview_booking.core.logging import setup_logging, get_logger
from interview_booking.core.metrics import metrics_endpoint
from interview_booking.api.router import api_router
from interview_booking.api.middleware import RequestLoggingMiddleware
from interview_booking.db.session import AsyncSessionLocal
from interview_booking.infrastructure.redis_client import close_redis
from interview_booking.services.phase_scheduler import PhaseTicker

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        rate_limit_backend=settings.RATE_LIMIT_BACKEND,
    )

    ticker = None
    if settings.PHASE_AUTO_ADVANCE_ENABLED:
        ticker = PhaseTicker(AsyncSessionLocal, settings.PHASE_TICK_SECONDS)
        ticker.start()

    yield

    # Cleanup
    if ticker:
        await ticker.stop()
    if settings.REDIS_ENABLED:
        await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Phased interview slot scheduling with concurrency-safe bookings",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
