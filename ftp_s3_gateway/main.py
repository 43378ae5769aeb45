"""FTP S3 Gateway - FastAPI application."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from ftp_s3_gateway import metrics as gateway_metrics
from ftp_s3_gateway import responses
from ftp_s3_gateway.backend.session import BackendSession
from ftp_s3_gateway.config import Settings, settings
from ftp_s3_gateway.credentials import CredentialStore
from ftp_s3_gateway.errors import BackendError, GatewayError
from ftp_s3_gateway.middleware.auth import SigV4AuthMiddleware
from ftp_s3_gateway.middleware.metrics import MetricsMiddleware, normalize_path
from ftp_s3_gateway.routers import health, metrics, s3

# Starlette-level HTTP errors rendered with their S3 error code
HTTP_ERROR_CODES = {
    400: "InvalidRequest",
    404: "NoSuchKey",
    405: "MethodNotAllowed",
}


def setup_logging(config: Settings) -> None:
    """Configure structured logging."""
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if config.log_format == "json" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config: Settings = app.state.settings
    session: BackendSession = app.state.session
    logger = structlog.get_logger()

    logger.info(
        "application_startup",
        version=config.api_version,
        ftp_address=config.ftp_address,
        bucket=config.bucket_name,
        auth_enabled=not app.state.credentials.is_empty,
    )
    gateway_metrics.set_service_info(config.api_version, config.ftp_address, config.bucket_name)

    # The backend must be reachable at startup; later drops are recovered per request
    try:
        await run_in_threadpool(session.connect)
    except BackendError as e:
        logger.error("backend_startup_connect_failed", address=config.ftp_address, error=str(e))
        raise

    yield

    await run_in_threadpool(session.close)
    logger.info("application_shutdown")


def create_app(
    config: Settings | None = None,
    session: BackendSession | None = None,
    store: CredentialStore | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Settings to use (defaults to the environment-backed settings)
        session: Backend session (defaults to an FTP session built from config)
        store: Credential store (defaults to the static pair from config, if any)
    """
    config = config or settings
    if session is None:
        session = BackendSession.from_settings(config)
    if store is None:
        store = CredentialStore(config.credential_pairs())

    logger = structlog.get_logger()

    app = FastAPI(
        title=config.api_title,
        version=config.api_version,
        description="""
S3-compatible gateway in front of a single FTP server.

The FTP root directory is exposed as one virtual bucket. Supported
operations: ListBuckets, ListObjects (V1 and V2), HeadBucket, GetObject,
HeadObject, PutObject and DeleteObject.

## Authentication

When a static access key is configured, every request except the health
check and metrics endpoints must carry an AWS Signature Version 4
`Authorization` header.
        """,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = config
    app.state.session = session
    app.state.credentials = store

    # Innermost first: auth runs inside metrics, so rejected requests are counted
    app.add_middleware(SigV4AuthMiddleware, store=store, config=config)
    app.add_middleware(MetricsMiddleware)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """Log all requests with timing and request ID."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError):
        """Render gateway errors as S3 XML error documents."""
        if isinstance(exc, BackendError):
            gateway_metrics.ERROR_COUNT.labels(
                type=type(exc).__name__, endpoint=normalize_path(request.url.path)
            ).inc()
            logger.warning(
                "backend_request_failed",
                method=request.method,
                path=request.url.path,
                kind=exc.kind.value,
                error=exc.message,
            )
        return responses.error_response(
            exc.code, exc.message, request.url.path, status_code=exc.status_code
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = responses.error_response(
            HTTP_ERROR_CODES.get(exc.status_code, "InvalidRequest"),
            str(exc.detail),
            request.url.path,
            status_code=exc.status_code,
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        endpoint = normalize_path(request.url.path)
        error_type = type(exc).__name__

        gateway_metrics.ERROR_COUNT.labels(type=error_type, endpoint=endpoint).inc()

        logger.error(
            "unhandled_exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=error_type,
            exc_info=True,
        )
        return responses.error_response(
            "InternalError",
            "We encountered an internal error. Please try again.",
            request.url.path,
            status_code=500,
        )

    # Fixed paths first; the S3 routes capture every other path
    app.include_router(health.router)
    if config.metrics_enabled:
        app.include_router(metrics.router)
    app.include_router(s3.router)

    return app


# Setup logging before creating app
setup_logging(settings)

app = create_app()
