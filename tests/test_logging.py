"""Tests for the structured logging system (settlement_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "settlement.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("payout_completed", extra={"amount": "2645", "seq": 7})

        record = _parse_log(stream)
        assert record["amount"] == "2645"
        assert record["seq"] == 7

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        rec_id = uuid4()
        LogContext.set(correlation_id="abc-123", reconciliation_id=rec_id)
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["reconciliation_id"] == str(rec_id)

    def test_settlement_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from settlement_kernel.exceptions import ReconciliationLockedError

        try:
            raise ReconciliationLockedError("rec-1", "approved")
        except ReconciliationLockedError:
            get_logger("test").error("review_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ReconciliationLockedError"
        assert record["exc_code"] == "RECONCILIATION_LOCKED"
        assert record["exc_reconciliation_id"] == "rec-1"
        assert record["exc_status"] == "approved"
        assert "traceback" in record

    def test_plain_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "reconciliation_id" not in record

    def test_level_filters_records(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(reconciliation_id="outer")
        with LogContext.bind(reconciliation_id="inner", actor_id="a"):
            assert LogContext.get_all() == {"reconciliation_id": "inner", "actor_id": "a"}
        assert LogContext.get_all() == {"reconciliation_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(actor_id=None, trace_id="t"):
            assert LogContext.get_all() == {"trace_id": "t"}
        assert LogContext.get_all() == {}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(correlation_id="temp"):
                raise RuntimeError("fail")
        assert "correlation_id" not in LogContext.get_all()


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("settlement").handlers == [h1]

    def test_get_logger_returns_child(self):
        assert get_logger("services.payout").name == "settlement.services.payout"

    def test_string_level_accepted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="DEBUG")
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "settlement.deep.nested.module"
