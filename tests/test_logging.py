"""Tests for the structured logging system (journey_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from journey_kernel.domain.journey import TransitionOrigin
from journey_kernel.logging_config import (
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
        assert record["logger"] == "journey_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("applied", extra={"sequence": 3, "to_state": "ACTIVE"})

        record = _parse_log(stream)
        assert record["sequence"] == 3
        assert record["to_state"] == "ACTIVE"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(tenant_id="tenant-a", actor_id="user-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["tenant_id"] == "tenant-a"
        assert record["actor_id"] == "user-1"

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
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from journey_kernel.exceptions import IllegalTransitionError

        try:
            raise IllegalTransitionError("i-1", "ACTIVE", "ACTIVATE", "MEMBER_LIFECYCLE")
        except IllegalTransitionError:
            get_logger("test").error("transition_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "ILLEGAL_TRANSITION"
        assert record["exc_type"] == "IllegalTransitionError"
        assert record["exc_current_state"] == "ACTIVE"
        assert record["exc_trigger"] == "ACTIVATE"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "tenant_id" not in record
        assert "journey_instance_id" not in record

    def test_uuid_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "with_uuid",
            extra={"journey_instance_id": uid, "origin": TransitionOrigin.APPROVAL_ENGINE},
        )

        record = _parse_log(stream)
        assert record["journey_instance_id"] == str(uid)
        assert record["origin"] == "APPROVAL_ENGINE"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped.
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(tenant_id="x", journey_instance_id="y")
        assert LogContext.get_all() == {"tenant_id": "x", "journey_instance_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner"):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all()["actor_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        with LogContext.bind(approval_request_id="temp"):
            assert LogContext.get_all()["approval_request_id"] == "temp"
        assert "approval_request_id" not in LogContext.get_all()

    def test_bind_skips_none_and_unknown_fields(self):
        with LogContext.bind(actor_id=None, not_a_field="ignored", tenant_id="t"):
            assert LogContext.get_all() == {"tenant_id": "t"}

    def test_bind_stringifies_values(self):
        uid = uuid4()
        with LogContext.bind(journey_instance_id=uid):
            assert LogContext.get_all()["journey_instance_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            tenant_id="t",
            actor_id="a",
            journey_instance_id="j",
            approval_request_id="r",
            trace_id="x",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["approval_request_id"] == "r"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        reset_logging()
        h1, stream = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op

        handlers = logging.getLogger("journey_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers
        get_logger("test").info("once")
        assert len(_parse_all_logs(stream)) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.transition_engine").name == (
            "journey_kernel.services.transition_engine"
        )

    def test_logger_hierarchy(self):
        """Child loggers inherit the journey_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "journey_kernel.deep.nested.module"
