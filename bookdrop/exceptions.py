"""
Exceptions for BookDrop

Every error the pipeline can surface carries a stable code and an HTTP
status so the API layer can translate it without inspecting messages.
"""

from typing import Optional


class BookDropException(Exception):
    """Base exception for BookDrop errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class ConfigurationError(BookDropException):
    """A required external capability is not configured."""

    def __init__(self, service: str, detail: Optional[str] = None):
        super().__init__(
            message=f"{service} service unavailable",
            code="SERVICE_UNAVAILABLE",
            status_code=503,
            detail=detail or f"{service} is not configured",
        )
        self.service = service


class ExtractionParseError(BookDropException):
    """Vision output could not be parsed as structured book data."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            message="No books found in the image",
            code="EXTRACTION_PARSE_ERROR",
            status_code=422,
            detail=detail,
        )


class CatalogUnavailable(BookDropException):
    """A single catalog call failed. Never surfaced past the search layer."""

    def __init__(self, catalog: str, detail: Optional[str] = None):
        super().__init__(
            message=f"{catalog} catalog unavailable",
            code="CATALOG_UNAVAILABLE",
            status_code=502,
            detail=detail,
        )
        self.catalog = catalog


class UniquenessConflict(BookDropException):
    """An insert collided with a unique constraint."""

    def __init__(self, entity: str, key: str):
        super().__init__(
            message=f"{entity} already exists",
            code="UNIQUENESS_CONFLICT",
            status_code=409,
            detail=f"{entity} with key '{key}' already exists",
        )
        self.entity = entity
        self.key = key


class Unauthorized(BookDropException):
    """Caller may not mutate the resource."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            message="Unauthorized",
            code="UNAUTHORIZED",
            status_code=403,
            detail=detail,
        )


class AuthenticationRequired(BookDropException):
    """No authenticated actor on the request."""

    def __init__(self):
        super().__init__(
            message="Authentication required",
            code="AUTHENTICATION_REQUIRED",
            status_code=401,
        )


class NotFoundError(BookDropException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            status_code=404,
            detail=f"No {resource} with identifier '{identifier}' exists",
        )


class ValidationError(BookDropException):
    """Input validation failed."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            detail=detail,
        )


class RateLimitError(BookDropException):
    """Request rejected by a rate limiter."""

    def __init__(self, detail: str, retry_after: float = 0.0):
        super().__init__(
            message="Request too recent, please wait a moment",
            code="RATE_LIMIT_EXCEEDED",
            status_code=429,
            detail=detail,
        )
        self.retry_after = retry_after
