"""Tests for the structured logging system (stock_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_engines.net_stock import calculate_net_stock
from stock_kernel.domain.values import Category
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's DEBUG setup."""
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
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "stock_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("removal_committed", extra={"attempts": 2, "purpose": "sale"})

        record = _parse_log(stream)
        assert record["attempts"] == 2
        assert record["purpose"] == "sale"

    def test_context_fields_come_first_and_win(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(category="leather", stock_key="cow hide"):
            get_logger("test").info("locked", extra={"stock_key": "other"})

        record = _parse_log(stream)
        assert record["category"] == "leather"
        assert record["stock_key"] == "cow hide"

    def test_decimal_uuid_and_date_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={
                "removal_id": uid,
                "remove_quantity": Decimal("30.5"),
                "net_available_after": Decimal("70.000000000"),
                "total_original": Decimal("1E+2"),
            },
        )

        record = _parse_log(stream)
        assert record["removal_id"] == str(uid)
        assert record["remove_quantity"] == "30.5"
        assert record["net_available_after"] == "70"
        assert record["total_original"] == "100"

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

    def test_kernel_exception_fields_extracted(self):
        from stock_kernel.exceptions import StockEntryValidationError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise StockEntryValidationError("quantity", "must be positive")
        except StockEntryValidationError:
            get_logger("test").warning("transaction_rolled_back", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "STOCK_ENTRY_VALIDATION_ERROR"
        assert record["exc_field"] == "quantity"
        assert record["exc_reason"] == "must be positive"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor="admin@shop")
        assert LogContext.get_all() == {"correlation_id": "x", "actor": "admin@shop"}

    def test_unknown_field_is_refused(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="nope")

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(actor="outer")
        with LogContext.bind(actor="inner"):
            assert LogContext.get_all()["actor"] == "inner"
        assert LogContext.get_all()["actor"] == "outer"

    def test_bind_skips_none(self):
        LogContext.set(actor="outer")
        with LogContext.bind(actor=None, stock_key="cow hide"):
            assert LogContext.get_all() == {"actor": "outer", "stock_key": "cow hide"}
        assert "stock_key" not in LogContext.get_all()

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor="a",
            category="material",
            stock_key="k",
            entry_id="e",
            removal_id="r",
        )
        assert len(LogContext.get_all()) == 6


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)

        handlers = logging.getLogger("stock_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers
        assert [h for h in handlers if isinstance(h.formatter, StructuredFormatter)] == [h1]

    def test_level_may_be_a_name(self):
        configure_logging(handler=_make_handler()[0], level="error")

        assert logging.getLogger("stock_kernel").level == logging.ERROR

    def test_get_logger_returns_child(self):
        assert get_logger("services.removal_coordinator").name == (
            "stock_kernel.services.removal_coordinator"
        )

    def test_engine_trace_is_emitted_at_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)

        calculate_net_stock(category=Category.LEATHER, entries=[], removals=[])

        (trace,) = [r for r in _parse_all_logs(stream) if r["message"] == "STOCK_ENGINE_TRACE"]
        assert trace["engine_name"] == "net_stock"
        assert trace["logger"] == "stock_kernel.engines.tracer"
        assert len(trace["input_fingerprint"]) == 16
