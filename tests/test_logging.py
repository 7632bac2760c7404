"""Tests for the structured logging system (procure_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from procure_kernel.domain.roles import Role
from procure_kernel.exceptions import AuthorizationError, DuplicateDocumentNumberError
from procure_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state around each test, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


class _Capture:
    def __init__(self):
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(StructuredFormatter())

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def first(self) -> dict:
        return self.records()[0]


@pytest.fixture
def capture():
    """JSON capture attached through configure_logging at INFO."""
    cap = _Capture()
    configure_logging(handler=cap.handler)
    return cap


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_envelope(self, capture):
        get_logger("test").info("hello")

        record = capture.first()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "procure_kernel.test"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_become_top_level_keys(self, capture):
        get_logger("test").info("document_added", extra={"number": 7, "kind": "invoice"})

        record = capture.first()
        assert record["number"] == 7
        assert record["kind"] == "invoice"

    def test_context_fields_merged(self, capture):
        LogContext.set(correlation_id="abc-123", transaction_number="BILINV-00001-2")
        get_logger("test").info("billing_payment_recorded")

        record = capture.first()
        assert record["correlation_id"] == "abc-123"
        assert record["transaction_number"] == "BILINV-00001-2"
        assert "actor_id" not in record

    def test_plain_exception(self, capture):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = capture.first()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "ValueError: boom" in record["traceback"]

    def test_procure_error_code_status_and_attributes(self, capture):
        try:
            raise DuplicateDocumentNumberError("invoice", 12)
        except DuplicateDocumentNumberError:
            get_logger("test").error("duplicate_number", exc_info=True)

        record = capture.first()
        assert record["exc_code"] == "DUPLICATE_DOCUMENT_NUMBER"
        assert record["exc_http_status"] == 400
        assert record["exc_kind"] == "invoice"
        assert record["exc_number"] == 12

    def test_role_lists_rendered(self, capture):
        try:
            raise AuthorizationError(
                required=frozenset({Role.MANAGER, Role.ADMIN}),
                granted=frozenset({Role.WAREHOUSE}),
                action="approve invoice",
            )
        except AuthorizationError:
            get_logger("test").warning("forbidden", exc_info=True)

        record = capture.first()
        assert record["exc_http_status"] == 403
        assert record["exc_required"] == ["admin", "manager"]
        assert record["exc_granted"] == ["warehouse"]

    def test_uuid_and_decimal_rendered_as_strings(self, capture):
        uid = uuid4()
        get_logger("test").info("with_values", extra={"billing_id": uid, "amount": Decimal("1110000")})

        record = capture.first()
        assert record["billing_id"] == str(uid)
        assert record["amount"] == "1110000"

    def test_debug_filtered_at_info(self, capture):
        logger = get_logger("test")
        logger.info("first")
        logger.debug("second")
        logger.warning("third")

        assert [r["message"] for r in capture.records()] == ["first", "third"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_ignores_none(self):
        LogContext.set(correlation_id="x", action="invoice.add", actor_id=None)
        assert LogContext.get_all() == {"correlation_id": "x", "action": "invoice.add"}

    def test_clear(self):
        LogContext.set(correlation_id="x", document_id="d")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", action="approve"):
            assert LogContext.get_all() == {"correlation_id": "inner", "action": "approve"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id=uuid4()):
                raise RuntimeError("handler failed")
        assert "actor_id" not in LogContext.get_all()

    def test_values_stringified(self):
        uid = uuid4()
        with LogContext.bind(document_id=uid):
            assert LogContext.get_all()["document_id"] == str(uid)

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="vendor_name"):
            LogContext.set(vendor_name="PT Sumber")


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        first, second = _Capture(), _Capture()
        configure_logging(handler=first.handler)
        configure_logging(handler=second.handler)
        assert logging.getLogger("procure_kernel").handlers == [first.handler]

    def test_level_name_accepted(self):
        configure_logging(level="debug", handler=_Capture().handler)
        assert logging.getLogger("procure_kernel").level == logging.DEBUG

    def test_children_inherit_handler(self):
        cap = _Capture()
        configure_logging(handler=cap.handler, level=logging.DEBUG)
        get_logger("modules.billing.service").debug("hierarchy_test")

        record = cap.first()
        assert record["logger"] == "procure_kernel.modules.billing.service"
