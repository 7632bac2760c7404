"""
Tests for the action dispatcher.

Covers:
- Routing of (kind, verb) pairs and unknown actions
- Authentication and role checks before any store access
- Error mapping to HTTP intent
- Activity logging and log context binding
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from procure_engines.inventory_cost import LedgerPosition
from procure_kernel.domain.roles import Role
from procure_kernel.exceptions import InvalidTokenError, MissingTokenError
from procure_kernel.services.activity_log import ActivityLogModel, SqlActivityLog
from procure_modules.billing.models import PaymentResult
from procure_modules.procurement.models import Document, DocumentStatus
from procure_services import ACTIONS, ActionDispatcher, ActionSpec, Identity, Verb


class FakeAuth:
    """Token -> identity table standing in for the external auth provider."""

    def __init__(self, identities: dict[str, Identity]):
        self._identities = identities

    def authenticate(self, token: str | None) -> Identity:
        if not token:
            raise MissingTokenError()
        try:
            return self._identities[token]
        except KeyError:
            raise InvalidTokenError() from None


PROCUREMENT_USER = Identity(uuid4(), frozenset({Role.PROCUREMENT}))
MANAGER_USER = Identity(uuid4(), frozenset({Role.MANAGER}))
FINANCE_USER = Identity(uuid4(), frozenset({Role.FINANCE}))
WAREHOUSE_USER = Identity(uuid4(), frozenset({Role.WAREHOUSE}))

AUTH = FakeAuth({
    "procurement-token": PROCUREMENT_USER,
    "manager-token": MANAGER_USER,
    "finance-token": FINANCE_USER,
    "warehouse-token": WAREHOUSE_USER,
})


@pytest.fixture
def activity_log(session_factory):
    return SqlActivityLog(session_factory)


@pytest.fixture
def dispatcher(session_factory, accounts, deterministic_clock, activity_log):
    return ActionDispatcher(
        session_factory,
        AUTH,
        accounts=accounts,
        clock=deterministic_clock,
        activity_log=activity_log,
    )


@pytest.fixture
def added_invoice(dispatcher, invoice_payload) -> Document:
    result = dispatcher.dispatch("invoice", "add", "procurement-token", invoice_payload())
    assert result.success
    return result.data


class TestRouting:
    def test_add_returns_201(self, dispatcher, invoice_payload):
        result = dispatcher.dispatch("invoice", Verb.ADD, "procurement-token", invoice_payload())

        assert result.success
        assert result.http_status == 201
        assert result.data.display_number == "INV-00001"

    def test_unknown_kind(self, dispatcher):
        result = dispatcher.dispatch("widget", "add", "procurement-token", {})

        assert not result.success
        assert result.http_status == 400
        assert result.error_code == "UNKNOWN_ACTION"

    def test_unknown_verb(self, dispatcher):
        result = dispatcher.dispatch("invoice", "fly", "procurement-token", {})

        assert result.error_code == "UNKNOWN_ACTION"

    def test_verb_not_offered_for_kind(self, dispatcher):
        result = dispatcher.dispatch("billing_invoice", "delete", "finance-token", {"id": str(uuid4())})

        assert result.error_code == "UNKNOWN_ACTION"

    def test_every_document_kind_has_crud(self):
        for kind in ("request", "order", "quotation", "offer", "shipment", "invoice"):
            for verb in (Verb.ADD, Verb.EDIT, Verb.DELETE, Verb.APPROVE, Verb.REJECT, Verb.GET, Verb.LIST):
                assert (kind, verb) in ACTIONS

    def test_edit_passes_changes_without_id(self, dispatcher, added_invoice):
        result = dispatcher.dispatch(
            "invoice", "edit", "procurement-token",
            {"id": str(added_invoice.id), "memo": "checked"},
        )

        assert result.success
        assert result.data.fields["memo"] == "checked"
        assert "id" not in result.data.fields

    def test_delete_returns_id(self, dispatcher, added_invoice):
        result = dispatcher.dispatch(
            "invoice", "delete", "procurement-token", {"id": str(added_invoice.id)},
        )

        assert result.data == {"id": added_invoice.id}

    def test_list_reads_paging(self, dispatcher, invoice_payload):
        for _ in range(3):
            dispatcher.dispatch("invoice", "add", "procurement-token", invoice_payload())

        result = dispatcher.dispatch(
            "invoice", "list", "warehouse-token", {"offset": "1", "limit": "1"},
        )

        assert [d.number for d in result.data] == [2]


class TestAuthentication:
    def test_missing_token(self, dispatcher):
        result = dispatcher.dispatch("invoice", "list", None)

        assert result.http_status == 401
        assert result.error_code == "MISSING_TOKEN"

    def test_invalid_token(self, dispatcher):
        result = dispatcher.dispatch("invoice", "list", "forged")

        assert result.http_status == 401
        assert result.error_code == "INVALID_TOKEN"

    def test_missing_role(self, dispatcher, invoice_payload):
        result = dispatcher.dispatch("invoice", "add", "warehouse-token", invoice_payload())

        assert result.http_status == 403
        assert result.error_code == "ACCESS_DENIED"

    def test_refused_call_never_opens_session(self, accounts, deterministic_clock):
        def _no_session():
            raise AssertionError("session opened")

        dispatcher = ActionDispatcher(_no_session, AUTH, accounts=accounts, clock=deterministic_clock)

        result = dispatcher.dispatch("invoice", "add", "warehouse-token", {})

        assert result.http_status == 403

    def test_warehouse_can_move_shipment(self, dispatcher, invoice_payload):
        added = dispatcher.dispatch("shipment", "add", "warehouse-token", invoice_payload())

        received = dispatcher.dispatch("shipment", "approve", "warehouse-token", {"id": str(added.data.id)})

        assert received.data.status is DocumentStatus.RECEIVED

    def test_finance_approves_invoice_but_not_request(self, dispatcher, added_invoice, request_payload):
        approved = dispatcher.dispatch("invoice", "approve", "finance-token", {"id": str(added_invoice.id)})
        request = dispatcher.dispatch("request", "add", "procurement-token", request_payload())
        refused = dispatcher.dispatch("request", "approve", "finance-token", {"id": str(request.data.id)})

        assert approved.success
        assert refused.http_status == 403


class TestErrorMapping:
    def test_missing_id(self, dispatcher):
        result = dispatcher.dispatch("invoice", "get", "procurement-token", {})

        assert result.http_status == 400
        assert result.error_code == "MISSING_FIELD"

    def test_malformed_id(self, dispatcher):
        result = dispatcher.dispatch("invoice", "get", "procurement-token", {"id": "not-a-uuid"})

        assert result.error_code == "INVALID_FIELD"

    def test_not_found(self, dispatcher):
        result = dispatcher.dispatch("invoice", "get", "procurement-token", {"id": str(uuid4())})

        assert result.http_status == 404
        assert result.error_code == "DOCUMENT_NOT_FOUND"

    def test_reject_completed_is_404(self, dispatcher, added_invoice):
        dispatcher.dispatch("invoice", "approve", "manager-token", {"id": str(added_invoice.id)})

        result = dispatcher.dispatch("invoice", "reject", "manager-token", {"id": str(added_invoice.id)})

        assert result.http_status == 404
        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_store_error(self, session_factory, accounts, deterministic_clock):
        def _broken(ctx, payload):
            raise SQLAlchemyError("connection reset")

        actions = {("invoice", Verb.LIST): ActionSpec(_broken)}
        dispatcher = ActionDispatcher(
            session_factory, AUTH, accounts=accounts, clock=deterministic_clock, actions=actions,
        )

        result = dispatcher.dispatch("invoice", "list", "procurement-token")

        assert result.http_status == 500
        assert result.error_code == "STORE_ERROR"
        assert "connection reset" in result.error

    def test_unexpected_errors_propagate(self, session_factory, accounts, deterministic_clock):
        def _bug(ctx, payload):
            raise ZeroDivisionError()

        actions = {("invoice", Verb.LIST): ActionSpec(_bug)}
        dispatcher = ActionDispatcher(
            session_factory, AUTH, accounts=accounts, clock=deterministic_clock, actions=actions,
        )

        with pytest.raises(ZeroDivisionError):
            dispatcher.dispatch("invoice", "list", "procurement-token")


class TestBillingActions:
    def test_invoice_payment(self, dispatcher, added_invoice):
        dispatcher.dispatch("invoice", "approve", "manager-token", {"id": str(added_invoice.id)})
        (billing,) = dispatcher.dispatch("billing_invoice", "list", "procurement-token").data

        result = dispatcher.dispatch("billing_invoice", "approve", "finance-token", {
            "id": str(billing.id),
            "paid_amount": "1110000",
            "payment_method": "Full Payment",
            "version": billing.version,
        })

        assert result.success
        assert isinstance(result.data, PaymentResult)
        assert result.data.record.status is DocumentStatus.COMPLETED

    def test_payment_requires_amount(self, dispatcher):
        result = dispatcher.dispatch("billing_invoice", "approve", "finance-token", {"id": str(uuid4())})

        assert result.error_code == "MISSING_FIELD"

    def test_payment_rejects_nan_amount(self, dispatcher):
        result = dispatcher.dispatch(
            "billing_invoice", "approve", "finance-token",
            {"id": str(uuid4()), "paid_amount": "NaN"},
        )

        assert result.http_status == 400
        assert result.error_code == "INVALID_FIELD"

    def test_payment_requires_finance(self, dispatcher):
        result = dispatcher.dispatch(
            "billing_invoice", "approve", "manager-token",
            {"id": str(uuid4()), "paid_amount": "1"},
        )

        assert result.http_status == 403

    def test_stale_version_is_409(self, dispatcher, added_invoice):
        dispatcher.dispatch("invoice", "approve", "manager-token", {"id": str(added_invoice.id)})
        (billing,) = dispatcher.dispatch("billing_invoice", "list", "finance-token").data

        result = dispatcher.dispatch("billing_invoice", "approve", "finance-token", {
            "id": str(billing.id),
            "paid_amount": "1110000",
            "payment_method": "Full Payment",
            "version": billing.version + 1,
        })

        assert result.http_status == 409


class TestInventoryAdjust:
    def test_adjust(self, dispatcher, added_invoice):
        dispatcher.dispatch("invoice", "approve", "manager-token", {"id": str(added_invoice.id)})

        result = dispatcher.dispatch("inventory", "adjust", "warehouse-token", {
            "stock_name": "Steel Bolt M10",
            "month": "2025-01",
            "nett_purchase": "100000",
        })

        assert isinstance(result.data, LedgerPosition)
        assert result.data.total_stock == Decimal("1100000")
        assert result.data.avg_per_unit == Decimal("110000")

    def test_bad_month(self, dispatcher):
        result = dispatcher.dispatch("inventory", "adjust", "warehouse-token", {
            "stock_name": "Steel Bolt M10",
            "month": "2025-13",
            "nett_purchase": "1",
        })

        assert result.error_code == "INVALID_FIELD"

    def test_empty_period_is_404(self, dispatcher):
        result = dispatcher.dispatch("inventory", "adjust", "warehouse-token", {
            "stock_name": "Steel Bolt M10",
            "month": "2025-01",
            "nett_purchase": "1",
        })

        assert result.http_status == 404


class TestActivityAndLogging:
    def test_activity_row_written(self, dispatcher, session_factory, invoice_payload):
        dispatcher.dispatch("invoice", "add", "procurement-token", invoice_payload())

        with session_factory() as s:
            rows = list(s.scalars(select(ActivityLogModel)))

        assert len(rows) == 1
        assert rows[0].endpoint_name == "invoice.add"
        assert rows[0].http_method == "POST"
        assert rows[0].user_id == PROCUREMENT_USER.user_id

    def test_refused_call_not_recorded(self, dispatcher, session_factory):
        dispatcher.dispatch("invoice", "add", "warehouse-token", {})

        with session_factory() as s:
            assert list(s.scalars(select(ActivityLogModel))) == []

    def test_context_bound_on_completion(self, dispatcher, captured_logs, invoice_payload):
        dispatcher.dispatch("invoice", "add", "procurement-token", invoice_payload())

        (completed,) = [r for r in captured_logs() if r["message"] == "action_completed"]
        assert completed["action"] == "invoice.add"
        assert completed["actor_id"] == str(PROCUREMENT_USER.user_id)
        UUID(completed["correlation_id"])
