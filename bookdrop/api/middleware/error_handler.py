"""
Error Handling for the BookDrop API

Centralized error handling:
- Structured error responses
- Logging of errors
- Exception translation
"""

import traceback
from datetime import datetime
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from bookdrop.exceptions import BookDropException, RateLimitError


def create_error_response(
    error: str,
    code: str,
    status_code: int,
    detail: Optional[str] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Create standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "detail": detail,
            "timestamp": datetime.utcnow().isoformat(),
        },
        headers=headers,
    )


def setup_exception_handlers(app):
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(BookDropException)
    async def bookdrop_exception_handler(request: Request, exc: BookDropException):
        if exc.status_code >= 500:
            logger.error(f"BookDrop error on {request.url.path}: {exc.code} - {exc.message} ({exc.detail})")
        else:
            logger.warning(f"BookDrop error on {request.url.path}: {exc.code} - {exc.message}")

        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(int(exc.retry_after) + 1)}

        return create_error_response(
            error=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Request validation error on {request.url.path}: {exc.errors()}")
        return create_error_response(
            error="Validation Error",
            code="VALIDATION_ERROR",
            status_code=422,
            detail=str(exc.errors()),
        )

    @app.exception_handler(PydanticValidationError)
    async def validation_exception_handler(request: Request, exc: PydanticValidationError):
        logger.warning(f"Validation error: {str(exc)}")
        return create_error_response(
            error="Validation Error",
            code="VALIDATION_ERROR",
            status_code=400,
            detail=str(exc),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}\n{traceback.format_exc()}"
        )
        return create_error_response(
            error="Internal Server Error",
            code="INTERNAL_ERROR",
            status_code=500,
            detail="An unexpected error occurred",
        )
