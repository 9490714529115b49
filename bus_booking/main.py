"""
Bus Booking API - Main Application Entry Point

A seat booking and payment settlement service demonstrating:
- Concurrency-safe seat reservation against a per-schedule inventory ledger
- Idempotent payment reconciliation across direct confirmation and webhooks
- Redis caching of schedule search with invalidation on every seat movement
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound

from bus_booking.api.middleware import RequestLoggingMiddleware
from bus_booking.api.router import api_router
from bus_booking.core.config import get_settings
from bus_booking.core.errors import BookingError, ErrorKind, TransientFailure
from bus_booking.core.logging import setup_logging, get_logger
from bus_booking.core.metrics import metrics_endpoint
from bus_booking.db.session import Database
from bus_booking.infrastructure.stripe_processor import StripeProcessor
from bus_booking.services.booking_lifecycle import BookingLifecycle
from bus_booking.services.cache_service import ScheduleCache
from bus_booking.services.interfaces.payment_processor import PaymentProcessor
from bus_booking.services.inventory_ledger import InventoryLedger
from bus_booking.services.payment_reconciliation import PaymentReconciler

logger = get_logger(__name__)


def _wire_services(app: FastAPI) -> None:
    settings = get_settings()
    state = app.state
    state.ledger = InventoryLedger(state.database, max_attempts=settings.RESERVATION_MAX_ATTEMPTS)
    state.lifecycle = BookingLifecycle(state.database, state.ledger)
    state.reconciler = PaymentReconciler(
        state.database,
        state.lifecycle,
        state.processor,
        currency=settings.PAYMENT_CURRENCY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: build what create_app() was not given, release it on shutdown."""
    settings = get_settings()
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    owned_database = owned_cache = False
    if app.state.database is None:
        app.state.database = Database.from_settings(settings)
        owned_database = True
    if app.state.processor is None:
        app.state.processor = StripeProcessor(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    if app.state.cache is None:
        app.state.cache = ScheduleCache(
            settings.REDIS_URL if settings.REDIS_ENABLED else None,
            ttl=settings.REDIS_CACHE_TTL,
            reconnect_backoff=settings.REDIS_RECONNECT_BACKOFF,
        )
        owned_cache = True
    _wire_services(app)

    if await app.state.cache.client():
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    # Cleanup
    if owned_cache:
        await app.state.cache.close()
    if owned_database:
        await app.state.database.dispose()
    logger.info("application_shutdown")


def _error_response(status_code: int, body: dict, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        headers = None
        if isinstance(exc, TransientFailure):
            headers = {"Retry-After": str(exc.details.get("retry_after_seconds", 1))}
        if exc.status_code >= 500:
            logger.error("request_error", error=exc.kind.value, reason=exc.reason, message=exc.message)
        return _error_response(exc.status_code, exc.to_dict(), headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            400,
            {
                "error": ErrorKind.VALIDATION_FAILURE.value,
                "reason": "invalid_request",
                "message": "Request validation failed",
                "errors": exc.errors(),
            },
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("integrity_error", error=str(exc.orig))
        return _error_response(
            409,
            {"error": ErrorKind.CONFLICT.value, "reason": "duplicate_resource", "message": "Resource already exists"},
        )

    @app.exception_handler(NoResultFound)
    async def no_result_handler(request: Request, exc: NoResultFound):
        return _error_response(
            404,
            {"error": ErrorKind.NOT_FOUND.value, "reason": "not_found", "message": "Resource not found"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", error_type=type(exc).__name__)
        return _error_response(
            500,
            {
                "error": ErrorKind.INTERNAL_FAILURE.value,
                "reason": "internal_failure",
                "message": "Internal server error",
            },
        )


def create_app(
    database: Optional[Database] = None,
    processor: Optional[PaymentProcessor] = None,
    cache: Optional[ScheduleCache] = None,
) -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Bus seat booking API with concurrency-safe reservations and payment reconciliation",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.database = database
    app.state.processor = processor
    app.state.cache = cache
    if database is not None and processor is not None and cache is not None:
        _wire_services(app)

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

    register_exception_handlers(app)

    # Routes
    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for Docker and load balancers."""
        cache_stats = await request.app.state.cache.stats()
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "cache": cache_stats,
        }

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
        }

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

    return app


app = create_app()
