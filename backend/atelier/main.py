"""
FastAPI application entry point with health endpoints and service routing.

Builds the application with CORS, request logging and domain exception
handlers. The lifespan owns the long-lived collaborators (notification
dispatcher, order notifier, content storage) and the background loop
that repairs orders created without an originating snapshot.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from atelier.api.v1 import catalog_router, orders_router, profiles_router, revisions_router
from atelier.core.config import get_settings
from atelier.core.exceptions import (
    AtelierError,
    IllegalTransitionError,
    InvalidInputError,
    NotFoundError,
    UpstreamUnavailableError,
)
from atelier.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from atelier.database.connection import (
    check_database_health,
    close_database_connections,
    get_session,
)
from atelier.services.notifications.dispatcher import TelegramDispatcher
from atelier.services.notifications.service import OrderNotifier
from atelier.services.orders.service import OrderService
from atelier.services.revisions.repository import RevisionConflictError
from atelier.services.storage.cloudinary import CloudinaryStorage

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)


async def repair_order_histories(interval_seconds: int, batch_size: int) -> None:
    """
    Background task recording originating snapshots that order creation
    could not store.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with get_session() as session:
                service = OrderService(session)
                await service.repair_missing_histories(limit=batch_size)
        except (AtelierError, SQLAlchemyError, OSError) as e:
            logger.error(
                "History repair pass failed",
                error=str(e),
                error_type=type(e).__name__,
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        dispatcher = TelegramDispatcher(settings)
        app.state.dispatcher = dispatcher
        app.state.notifier = OrderNotifier(dispatcher, settings=settings)
        app.state.storage = CloudinaryStorage(settings)

    repair_task = None
    if settings.history_repair_interval_seconds > 0:
        repair_task = asyncio.create_task(
            repair_order_histories(
                settings.history_repair_interval_seconds,
                settings.history_repair_batch_size,
            )
        )
        logger.info(
            "History repair loop started",
            interval_seconds=settings.history_repair_interval_seconds,
        )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        if repair_task is not None:
            repair_task.cancel()
            try:
                await repair_task
            except asyncio.CancelledError:
                pass

        await app.state.notifier.drain()
        await app.state.dispatcher.aclose()
        await app.state.storage.aclose()
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


# Initialize FastAPI application
settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Custom garment order lifecycle and revision pricing API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Set the request ID for correlation, log the request and its outcome,
    and echo the ID in the ``X-Request-ID`` response header.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()


def _error_response(status_code: int, error: str, exc: AtelierError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "error": error,
                "message": exc.message,
                "details": exc.context,
                "request_id": get_request_id(),
            }
        ),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.info("Resource not found", path=request.url.path, **exc.context)
    return _error_response(status.HTTP_404_NOT_FOUND, "Not Found", exc)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    logger.warning("Invalid input", path=request.url.path, message=exc.message)
    return _error_response(status.HTTP_400_BAD_REQUEST, "Bad Request", exc)


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(
    request: Request, exc: IllegalTransitionError
) -> JSONResponse:
    logger.warning("Illegal transition", path=request.url.path, message=exc.message)
    return _error_response(status.HTTP_409_CONFLICT, "Conflict", exc)


@app.exception_handler(RevisionConflictError)
async def revision_conflict_handler(
    request: Request, exc: RevisionConflictError
) -> JSONResponse:
    logger.warning("Revision number conflict", path=request.url.path, **exc.context)
    return _error_response(status.HTTP_409_CONFLICT, "Conflict", exc)


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(
    request: Request, exc: UpstreamUnavailableError
) -> JSONResponse:
    logger.error("Upstream unavailable", path=request.url.path, message=exc.message)
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Service Unavailable", exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(
            {
                "error": "Validation Error",
                "message": "Request validation failed",
                "details": exc.errors(),
                "request_id": get_request_id(),
            }
        ),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log unexpected exceptions and return a generic error that does not
    expose internal details.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """Always 200 while the process is running."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/ready", status_code=status.HTTP_200_OK, tags=["Health"])
async def readiness_check():
    """
    Readiness check: 200 when the database answers, 503 otherwise.
    """
    database_ready = await check_database_health(max_retries=1)

    if not database_ready:
        logger.warning("Readiness check failed", dependencies_ready=False)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "service": settings.app_name,
                "dependencies_ready": False,
                "database": "unhealthy",
            },
        )

    return {
        "status": "ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "dependencies_ready": True,
        "database": "healthy",
    }


@app.get("/live", status_code=status.HTTP_200_OK, tags=["Health"])
async def liveness_check() -> dict[str, str]:
    return {
        "status": "alive",
        "service": settings.app_name,
        "version": settings.app_version,
    }


app.include_router(orders_router, prefix=settings.api_v1_prefix)
app.include_router(revisions_router, prefix=settings.api_v1_prefix)
app.include_router(profiles_router, prefix=settings.api_v1_prefix)
app.include_router(catalog_router, prefix=settings.api_v1_prefix)
