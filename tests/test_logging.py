"""Tests for the structured logging system (leasing_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from leasing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from leasing_modules.unit.models import OccupancyStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "leasing_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("swept", extra={"processed": 3, "status": "completed"})

        record = _parse_log(stream)
        assert record["processed"] == 3
        assert record["status"] == "completed"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", reservation_id="res-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["reservation_id"] == "res-9"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_leasing_exception_code_extracted(self):
        from leasing_kernel.exceptions import InvalidDateRangeError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise InvalidDateRangeError(date(2024, 6, 1), date(2024, 1, 1))
        except InvalidDateRangeError:
            logger.error("range_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_DATE_RANGE"
        assert record["exc_type"] == "InvalidDateRangeError"
        assert record["exc_start_date"] == "2024-06-01"
        assert record["exc_end_date"] == "2024-01-01"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "unit_id" not in record

    def test_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={
                "reservation": uid,
                "amount": Decimal("3000.00"),
                "end_date": date(2024, 6, 30),
                "status": OccupancyStatus.RENTED,
            },
        )

        record = _parse_log(stream)
        assert record["reservation"] == str(uid)
        assert record["amount"] == "3000.00"
        assert record["end_date"] == "2024-06-30"
        assert record["status"] == "rented"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", unit_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "unit_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(job_id="outer")
        with LogContext.bind(job_id="inner"):
            assert LogContext.get_all()["job_id"] == "inner"
        assert LogContext.get_all()["job_id"] == "outer"

    def test_bind_restores_none(self):
        assert "reservation_id" not in LogContext.get_all()
        with LogContext.bind(reservation_id=uuid4()):
            assert "reservation_id" in LogContext.get_all()
        assert "reservation_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(actor_id=None, unit_id="u-1"):
            assert LogContext.get_all() == {"unit_id": "u-1"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            reservation_id="r",
            unit_id="u",
            job_id="j",
            trace_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["trace_id"] == "t"


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("leasing_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("modules.unit.service").name == "leasing_kernel.modules.unit.service"

    def test_level_accepts_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="warning")
        logger = get_logger("deep.nested")
        logger.info("dropped")
        logger.warning("kept")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["kept"]
