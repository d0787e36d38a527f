"""Tests for the structured logging system (advance_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from advance_kernel.exceptions import IllegalTransitionError
from advance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from advance_modules.advances.models import AdvanceStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests; restore the suite configuration after."""
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
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "advance_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("advance_disbursed", extra={"amount": "250.00", "ref": "TRX-9"})

        record = _parse_log(stream)
        assert record["amount"] == "250.00"
        assert record["ref"] == "TRX-9"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        advance_id = uuid4()
        with LogContext.bind(advance_id=advance_id, operation="record_disbursement"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["advance_id"] == str(advance_id)
        assert record["operation"] == "record_disbursement"

    def test_context_wins_over_extra_with_same_key(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(advance_id="from-context")
        get_logger("test").info("clash", extra={"advance_id": "from-extra"})

        assert _parse_log(stream)["advance_id"] == "from-context"

    def test_decimal_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("typed", extra={"total": Decimal("10.50"), "status": AdvanceStatus.SETTLED})

        record = _parse_log(stream)
        assert record["total"] == "10.50"
        assert record["status"] == "SETTLED"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise IllegalTransitionError("DRAFT", "SETTLED", "EMPLOYEE")
        except IllegalTransitionError:
            get_logger("test").error("transition_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "IllegalTransitionError"
        assert record["exc_code"] == "ILLEGAL_TRANSITION"
        assert record["exc_from_status"] == "DRAFT"
        assert record["exc_to_status"] == "SETTLED"
        assert "traceback" in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO
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
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner"):
            assert LogContext.get_all()["operation"] == "inner"
        assert LogContext.get_all()["operation"] == "outer"

    def test_bind_skips_none_and_unknown_fields(self):
        with LogContext.bind(actor_id=None, advance_id="a-1", nonsense="ignored"):
            assert LogContext.get_all() == {"advance_id": "a-1"}
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("advance_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("modules.advances.service").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "advance_kernel.modules.advances.service"
