"""
Request/Response logging middleware.

One structured line per request, tagged with a correlation ID. Credentials,
actor IDs and exact coordinates never reach the log; image uploads are
recorded by size only.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger("bookdrop.api")

REDACTED = "[REDACTED]"


@dataclass
class LoggingConfig:
    """Configuration for request logging."""

    enabled: bool = True

    # JSON bodies only; multipart uploads are logged as a byte count
    log_request_body: bool = False
    max_body_log_size: int = 10000

    excluded_paths: Set[str] = field(default_factory=lambda: {"/health", "/favicon.ico"})

    redacted_headers: Set[str] = field(default_factory=lambda: {
        "authorization",
        "cookie",
        "set-cookie",
        "x-user-id",
    })

    redacted_fields: Set[str] = field(default_factory=lambda: {
        "api_key",
        "token",
        "latitude",
        "longitude",
        "exact_latitude",
        "exact_longitude",
    })

    # Seconds; shelf extraction alone can take several
    slow_request_threshold: float = 15.0

    request_id_header: str = "X-Request-ID"


class StructuredLogFormatter(logging.Formatter):
    """Renders records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id

        for attr, key in (("request_data", "request"), ("response_data", "response"), ("duration_ms", "duration_ms")):
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def redact_sensitive_data(data: Any, redacted_fields: Set[str]) -> Any:
    """Replace the values of named keys at any depth of a JSON structure."""
    if isinstance(data, dict):
        return {
            key: REDACTED if key.lower() in redacted_fields else redact_sensitive_data(value, redacted_fields)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, redacted_fields) for item in data]
    return data


def _status_level(status_code: int, slow: bool) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400 or slow:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request that is not on an excluded path."""

    def __init__(self, app: FastAPI, config: Optional[LoggingConfig] = None):
        super().__init__(app)
        self.config = config or LoggingConfig()

    def _redact_headers(self, headers: Dict[str, str]) -> Dict[str, str]:
        return {
            key: REDACTED if key.lower() in self.config.redacted_headers else value
            for key, value in headers.items()
        }

    async def _describe_body(self, request: Request) -> Optional[str]:
        """Redacted JSON body, or the declared size of a multipart upload."""
        content_type = request.headers.get("content-type", "")

        if content_type.startswith("multipart/"):
            length = request.headers.get("content-length")
            return f"[UPLOAD: {length} bytes]" if length else "[UPLOAD]"

        if "application/json" not in content_type:
            return None

        body = await request.body()
        if len(body) > self.config.max_body_log_size:
            return f"[BODY TOO LARGE: {len(body)} bytes]"

        try:
            parsed = json.loads(body)
        except ValueError:
            return "[INVALID JSON]"
        return json.dumps(redact_sensitive_data(parsed, self.config.redacted_fields))

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        header = self.config.request_id_header
        request_id = request.headers.get(header) or uuid.uuid4().hex[:8]
        request_id_var.set(request_id)

        if not self.config.enabled or request.url.path in self.config.excluded_paths:
            response = await call_next(request)
            response.headers[header] = request_id
            return response

        started = time.perf_counter()

        request_data = {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) or None,
            "headers": self._redact_headers(dict(request.headers)),
            "client_ip": request.client.host if request.client else None,
        }
        if self.config.log_request_body:
            body = await self._describe_body(request)
            if body:
                request_data["body"] = body

        response = await call_next(request)
        response.headers[header] = request_id

        elapsed = time.perf_counter() - started
        duration_ms = round(elapsed * 1000, 2)
        slow = elapsed > self.config.slow_request_threshold

        message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)"
        if slow:
            message = f"[SLOW] {message}"

        logger.log(
            _status_level(response.status_code, slow),
            message,
            extra={
                "request_data": request_data,
                "response_data": {"status_code": response.status_code},
                "duration_ms": duration_ms,
            },
        )
        return response


def setup_logging(
    app: FastAPI,
    config: Optional[LoggingConfig] = None,
    structured: bool = True,
) -> None:
    """
    Install the request logging middleware.

    Args:
        app: FastAPI application instance.
        config: Logging configuration.
        structured: Attach the JSON formatter to the ``bookdrop`` logger.
    """
    if structured:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredLogFormatter())

        bookdrop_logger = logging.getLogger("bookdrop")
        bookdrop_logger.addHandler(handler)
        bookdrop_logger.setLevel(logging.INFO)

    app.add_middleware(RequestLoggingMiddleware, config=config or LoggingConfig())
