"""
Custom exception handlers for consistent API error responses.

Domain errors raised by the modules are HTTPException subclasses and carry
their own payload. The handlers here cover standard Python and database
exceptions that escape a service so that callers still receive a structured
body instead of a bare 500.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
import logging

logger = logging.getLogger(__name__)


async def handle_key_error(request: Request, exc: KeyError) -> JSONResponse:
    """Convert KeyError to consistent API response"""
    logger.warning(f"KeyError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "detail": f"Resource not found: {str(exc)}",
            "error_code": "NOT_FOUND",
            "path": str(request.url.path),
        },
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert ValueError to consistent API response"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": str(exc),
            "error_code": "VALIDATION_ERROR",
            "path": str(request.url.path),
        },
    )


async def handle_operational_error(
    request: Request, exc: OperationalError
) -> JSONResponse:
    """Report an unreachable or locked database as a retryable 503"""
    logger.error(f"Database unavailable at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Database temporarily unavailable, retry the request",
            "error_code": "UPSTREAM_UNAVAILABLE",
            "path": str(request.url.path),
        },
        headers={"Retry-After": "1"},
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(KeyError, handle_key_error)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(OperationalError, handle_operational_error)
