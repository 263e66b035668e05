"""Unit tests for structured JSON logging and request id correlation."""

import json
import logging

from observability.logging_config import JSONFormatter, RequestIDFilter
from observability.request_id import get_request_id, reset_request_id, set_request_id


def make_record(message="Job completed", **extra):
    record = logging.LogRecord(
        name="workers.integration_worker",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_core_fields(self):
        record = make_record()
        RequestIDFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "workers.integration_worker"
        assert data["message"] == "Job completed"
        assert data["request_id"] == "no-request-id"
        assert data["timestamp"].endswith("Z")

    def test_integration_context_fields(self):
        record = make_record(tenant_id="tenant-1", job_id="job-1", portal_code="olx", duration_ms=12.5)

        data = json.loads(JSONFormatter().format(record))

        assert data["tenant_id"] == "tenant-1"
        assert data["job_id"] == "job-1"
        assert data["portal_code"] == "olx"
        assert data["duration_ms"] == 12.5

    def test_absent_context_is_omitted(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert "tenant_id" not in data
        assert "job_id" not in data

    def test_exception_info(self):
        try:
            raise RuntimeError("portal unreachable")
        except RuntimeError:
            import sys
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["error"] == "portal unreachable"
        assert "RuntimeError" in data["traceback"]


class TestRequestIdContext:

    def test_set_and_reset(self):
        token = set_request_id("job-123")
        try:
            record = make_record()
            RequestIDFilter().filter(record)
            assert record.request_id == "job-123"
        finally:
            reset_request_id(token)

        assert get_request_id() == "no-request-id"
