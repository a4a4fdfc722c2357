"""
Unit tests for request logging and redaction.
"""

import json
import logging

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from bookdrop.api.middleware.logging import (
    LoggingConfig,
    RequestLoggingMiddleware,
    StructuredLogFormatter,
    redact_sensitive_data,
)


def build_app(config: LoggingConfig) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware, config=config)

    @app.post("/lists")
    async def create(payload: dict):
        return {"ok": True}

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="nope")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


class ApiRecords:
    def __init__(self, caplog):
        self.caplog = caplog

    @property
    def records(self):
        return [r for r in self.caplog.records if r.name == "bookdrop.api"]


@pytest.fixture
def records(caplog):
    caplog.set_level(logging.INFO, logger="bookdrop.api")
    return ApiRecords(caplog)


class TestRedaction:

    def test_nested_coordinates_are_redacted(self):
        data = {"title": "Shelf", "location": {"latitude": 52.37, "Longitude": 4.89}, "books": [{"token": "t"}]}

        redacted = redact_sensitive_data(data, LoggingConfig().redacted_fields)

        assert redacted["title"] == "Shelf"
        assert redacted["location"] == {"latitude": "[REDACTED]", "Longitude": "[REDACTED]"}
        assert redacted["books"] == [{"token": "[REDACTED]"}]


class TestRequestLoggingMiddleware:

    def test_json_body_and_actor_header_are_redacted(self, records):
        client = TestClient(build_app(LoggingConfig(log_request_body=True)))

        response = client.post(
            "/lists",
            json={"title": "Shelf", "latitude": 52.37},
            headers={"X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        record = records.records[-1]
        assert record.levelno == logging.INFO
        assert record.request_data["headers"]["x-user-id"] == "[REDACTED]"
        assert json.loads(record.request_data["body"]) == {"title": "Shelf", "latitude": "[REDACTED]"}

    def test_upload_is_logged_by_size_only(self, records):
        client = TestClient(build_app(LoggingConfig(log_request_body=True)))

        client.post("/lists", files={"image": ("shelf.jpg", b"\xff\xd8" + b"0" * 64, "image/jpeg")})

        body = records.records[-1].request_data["body"]
        assert body.startswith("[UPLOAD")
        assert "shelf.jpg" not in body

    def test_client_error_logs_a_warning(self, records):
        client = TestClient(build_app(LoggingConfig()))

        client.get("/missing")

        assert records.records[-1].levelno == logging.WARNING

    def test_request_id_is_echoed_or_generated(self, records):
        client = TestClient(build_app(LoggingConfig()))

        echoed = client.get("/missing", headers={"X-Request-ID": "abc123"})
        generated = client.get("/missing")

        assert echoed.headers["X-Request-ID"] == "abc123"
        assert len(generated.headers["X-Request-ID"]) == 8

    def test_excluded_path_is_not_logged(self, records):
        client = TestClient(build_app(LoggingConfig()))

        response = client.get("/health")

        assert response.headers["X-Request-ID"]
        assert records.records == []


class TestStructuredLogFormatter:

    def test_record_extras_become_json_fields(self):
        record = logging.LogRecord("bookdrop.api", logging.INFO, __file__, 1, "GET /lists -> 200", None, None)
        record.duration_ms = 12.5
        record.response_data = {"status_code": 200}

        entry = json.loads(StructuredLogFormatter().format(record))

        assert entry["message"] == "GET /lists -> 200"
        assert entry["duration_ms"] == 12.5
        assert entry["response"] == {"status_code": 200}
