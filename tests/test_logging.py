"""Tests for logging setup."""

import logging

from hydrotrack.api.middleware.request_id import request_id_ctx
from hydrotrack.core.logging import RequestIdFilter, configure_logging


def _record() -> logging.LogRecord:
    return logging.LogRecord("hydrotrack.test", logging.INFO, __file__, 1, "msg", None, None)


class TestRequestIdFilter:
    """Tests for request ID injection."""

    def test_default_outside_request(self):
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "-"

    def test_current_request_id(self):
        token = request_id_ctx.set("req-123")
        try:
            record = _record()
            RequestIdFilter().filter(record)
        finally:
            request_id_ctx.reset(token)
        assert record.request_id == "req-123"

    def test_explicit_request_id_kept(self):
        record = _record()
        record.request_id = "given"
        RequestIdFilter().filter(record)
        assert record.request_id == "given"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_filter_installed_once(self):
        configure_logging("DEBUG")
        configure_logging("DEBUG")

        for handler in logging.getLogger().handlers:
            filters = [f for f in handler.filters if isinstance(f, RequestIdFilter)]
            assert len(filters) == 1
