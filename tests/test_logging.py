"""Tests for the structured logging system (workload_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from workload_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
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


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "workload_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("recalculated", extra={"pending_stitches": "-200", "attempt": 2})

        record = _parse_log(stream)
        assert record["pending_stitches"] == "-200"
        assert record["attempt"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        work_item_id = uuid4()
        LogContext.set(correlation_id="abc-123", work_item_id=work_item_id)
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["work_item_id"] == str(work_item_id)

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_workload_exception_code_extracted(self):
        from workload_kernel.exceptions import OverReceiptError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OverReceiptError("item-1", "100", "80", "30")
        except OverReceiptError:
            get_logger("test").error("receipt_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "OVER_RECEIPT"
        assert record["exc_sent"] == "100"
        assert record["exc_receiving"] == "30"


class TestLogContext:
    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="nope")

    def test_none_values_are_ignored(self):
        LogContext.set(actor_id="user-1")
        LogContext.set(actor_id=None)
        assert LogContext.get_all() == {"actor_id": "user-1"}

    def test_bind_restores_previous_values(self):
        LogContext.set(machine_id="m-outer")
        with LogContext.bind(machine_id="m-inner", bill_id="b-1"):
            assert LogContext.get_all()["machine_id"] == "m-inner"
            assert LogContext.get_all()["bill_id"] == "b-1"
        assert LogContext.get_all() == {"machine_id": "m-outer"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.INFO, handler=handler)
        logger = get_logger("test")
        logger.debug("hidden")
        logger.info("shown")

        messages = [r["message"] for r in _parse_all_logs(stream)]
        assert messages == ["shown"]

    def test_reset_removes_handlers(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        assert logging.getLogger("workload_kernel").handlers == []
