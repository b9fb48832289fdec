"""
Edge Gateway - HTTP Application

FastAPI application exposing ingestion, reporting and sync control over the
gateway service.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edge_gateway.config.settings import Settings, get_settings
from edge_gateway.exceptions import GatewayError, StoreError, ValidationError
from edge_gateway.services.gateway import GatewayService
from edge_gateway.utils.logging import get_logger, request_logger, setup_logging

from .routes import data, sensor, sync

logger = get_logger(__name__)

_ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[GatewayService] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Gateway settings, loaded from the environment when omitted
        gateway: Pre-built service (tests inject one with a mock transport)
        configure_logging: Whether the lifespan should configure structlog
    """
    settings = settings or get_settings()
    gateway = gateway or GatewayService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        if configure_logging:
            setup_logging(settings.log_level, settings.log_format)
        logger.info(
            "gateway_starting",
            gateway_id=gateway.gateway_id,
            version=settings.app_version,
        )
        await gateway.start()

        yield

        logger.info("gateway_shutting_down", gateway_id=gateway.gateway_id)
        await gateway.stop()

    app = FastAPI(
        title=settings.app_name,
        description="Edge gateway for environmental sensors: local processing, "
                    "durable buffering and batch synchronization.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.state.settings = settings

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start_time = time.time()
        request_logger.log_request(method=request.method, path=request.url.path)

        response = await call_next(request)

        request_logger.log_response(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return response

    # Exception handlers
    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError):
        """Map typed gateway errors to HTTP responses."""
        status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        content = {"status": "error", "code": exc.code, "message": exc.message}
        if isinstance(exc, ValidationError) and exc.field:
            content["field"] = exc.field
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with detailed messages."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "status": "error",
                "code": ValidationError.code,
                "message": "Validation error",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "code": "internal_error"},
        )

    # Routers
    app.include_router(sensor.router, prefix=f"{settings.api_prefix}/sensor", tags=["Ingestion"])
    app.include_router(data.router, prefix=f"{settings.api_prefix}/data", tags=["Reporting"])
    app.include_router(sync.router, prefix=f"{settings.api_prefix}/sync", tags=["Sync"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Gateway health check endpoint."""
        outcome = gateway.last_sync_outcome
        return {
            "status": "healthy",
            "gateway_id": gateway.gateway_id,
            "version": settings.app_version,
            "sync_enabled": gateway.sync_enabled,
            "last_sync": outcome.to_dict() if outcome else None,
        }

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """Processing and sync counters."""
        return {
            **gateway.get_status(),
            "pending_readings": await gateway.count_pending(),
        }

    return app
