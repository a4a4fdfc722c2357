"""
API middleware components.

Provides cross-cutting concerns for the API:
- Error handling
- Rate limiting and duplicate submission guard
- Request/response logging
"""

from .error_handler import (
    create_error_response,
    setup_exception_handlers,
)

from .rate_limit import (
    DuplicateRequestGuard,
    RateLimitConfig,
    RateLimitMiddleware,
    SlidingWindowLimiter,
    setup_rate_limiting,
)

from .logging import (
    LoggingConfig,
    RequestLoggingMiddleware,
    StructuredLogFormatter,
    redact_sensitive_data,
    setup_logging,
)


__all__ = [
    # Error handling
    "create_error_response",
    "setup_exception_handlers",
    # Rate limiting
    "DuplicateRequestGuard",
    "RateLimitConfig",
    "RateLimitMiddleware",
    "SlidingWindowLimiter",
    "setup_rate_limiting",
    # Logging
    "LoggingConfig",
    "RequestLoggingMiddleware",
    "StructuredLogFormatter",
    "redact_sensitive_data",
    "setup_logging",
]
