"""FastAPI application entry point.

backr API - event registration, backing and leaderboards
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from backr.api import events, users
from backr.config import Settings, get_settings
from backr.logging_config import bind_context, clear_context, configure_logging, get_logger
from backr.store.base import DocumentStore
from backr.store.memory import MemoryDocumentStore
from backr.store.records import INDEXES, RecordStore
from backr.store.redis_store import RedisDocumentStore
from backr.utils.errors import BackrError, ErrorCode
from backr.utils.json_utils import ORJSONResponse
from backr.utils.redis_client import close_redis, init_redis

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Events
# =============================================================================


async def build_store(config: Settings) -> DocumentStore:
    """Document store for the configured backend."""
    if config.store_backend == "redis":
        redis_instance = await init_redis(config)
        return RedisDocumentStore(redis_instance, INDEXES, prefix=config.store_key_prefix)
    return MemoryDocumentStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...", store_backend=settings.store_backend)

    store = await build_store(settings)
    app.state.records = RecordStore(store)
    logger.info("Document store ready", store=type(store).__name__)

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        await store.close()
        if settings.store_backend == "redis":
            await close_redis()
        logger.info("Application shutdown complete")


app = FastAPI(
    title="backr API",
    version="1.0.0",
    description="Event registration, backing and leaderboard API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.start_time = datetime.now(timezone.utc)

        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id

        duration = (
            datetime.now(timezone.utc) - request.state.start_time
        ).total_seconds()
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
            request_id=request_id,
        )

        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", "X-User-Id"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================


ERROR_STATUS = {
    ErrorCode.VALIDATION_FAILED.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_AUTHORIZED.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.EVENT_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.FEATURE_DISABLED.value: status.HTTP_409_CONFLICT,
    ErrorCode.QUOTA_EXCEEDED.value: status.HTTP_409_CONFLICT,
    ErrorCode.UNKNOWN_TARGET.value: status.HTTP_409_CONFLICT,
    ErrorCode.TRANSPORT_FAILED.value: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


@app.exception_handler(BackrError)
async def backr_error_handler(request: Request, exc: BackrError) -> ORJSONResponse:
    """Handle engine errors."""
    trace_id = get_request_id(request)
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "backr_error",
        code=exc.code,
        message=exc.message,
        recoverable=exc.recoverable,
        trace_id=trace_id,
    )

    return ORJSONResponse(
        status_code=status_code,
        content={"error": exc.to_dict(), "traceId": trace_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(
    request: Request, exc: HTTPException
) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)
    return ORJSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    message = "Internal server error"
    if settings.app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.INTERNAL_ERROR.value,
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"], summary="Liveness probe")
async def health_check() -> dict[str, str]:
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"], summary="Readiness probe")
async def readiness_probe(request: Request):
    """Ready when the document store answers a trivial count."""
    records: RecordStore = request.app.state.records
    try:
        await records.store.count("events")
    except BackrError as e:
        logger.error("readiness_probe_failed", error=e.message)
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "error": e.message},
        )
    return {"status": "ready"}


# =============================================================================
# API Routers
# =============================================================================


API_V1_PREFIX = "/api/v1"

app.include_router(events.router, prefix=API_V1_PREFIX)
app.include_router(users.router, prefix=API_V1_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backr.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
