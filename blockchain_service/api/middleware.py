"""
Custom middleware and exception handlers for the FastAPI application.
Provides request logging, CORS and consistent error responses.
"""

import time
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

import structlog

from blockchain_service.core.config import settings
from blockchain_service.core.exceptions import (
    BlockchainServiceException,
    ChainError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)


logger = structlog.get_logger(__name__)


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details."""
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                process_time=process_time,
            )
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_SERVER_ERROR",
                "An internal server error occurred",
            )

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


async def service_exception_handler(request: Request, exc: BlockchainServiceException) -> JSONResponse:
    """Map the service exception taxonomy onto HTTP status codes."""
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (ChainError, ExternalServiceError)):
        status_code = status.HTTP_502_BAD_GATEWAY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request rejected",
        path=request.url.path,
        status_code=status_code,
        error=exc.code,
        message=exc.message,
    )
    return _error_response(status_code, exc.code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body and parameter validation failures are client errors (400)."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}")
    message = "; ".join(parts) or "Invalid request"
    logger.warning("Request validation failed", path=request.url.path, message=message)
    return _error_response(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", message)


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlockchainServiceException, service_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


def add_middleware(app: FastAPI) -> None:
    """Add all middleware to the FastAPI app."""

    # CORS middleware (first to handle preflight requests)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Logging (should be last to capture all processing)
    app.add_middleware(LoggingMiddleware)

    logger.info("Middleware configured successfully")
