"""
Tests for document payload parsing and the document workflows.
"""

from datetime import date
from decimal import Decimal

import pytest

from procure_engines.inventory_cost import DiscountType
from procure_kernel.exceptions import (
    InvalidAttachmentTypeError,
    InvalidFieldError,
    MalformedItemsError,
)
from procure_modules.procurement import CASCADE_RULES, WORKFLOWS
from procure_modules.procurement.models import (
    DocumentKind,
    format_document_number,
    normalize_attachments,
    normalize_tags,
    parse_amount,
    parse_date,
    parse_items,
)


class TestParseItems:
    def test_list_of_dicts(self):
        (item,) = parse_items([{
            "item_name": "Steel Bolt M10",
            "qty": "10",
            "price": 100000,
            "disc_item": "5",
            "disc_item_type": "percentage",
            "return_unit": "1",
        }])

        assert item.qty == Decimal("10")
        assert item.price == Decimal("100000")
        assert item.disc_item_type is DiscountType.PERCENTAGE
        assert item.net_qty == Decimal("9")

    def test_sku_stands_in_for_name(self):
        (item,) = parse_items([{"sku": "BOLT-M10", "qty": 1, "price": 1}])

        assert item.item_name == "BOLT-M10"

    @pytest.mark.parametrize("raw", [
        "{broken",
        {"item_name": "x"},
        ["not an object"],
        [{"qty": 1, "price": 1}],
        [{"item_name": "x", "qty": "ten", "price": 1}],
        [{"item_name": "x", "qty": "NaN", "price": 1}],
        [{"item_name": "x", "qty": 1, "price": "Infinity"}],
        [{"item_name": "x", "qty": -1, "price": 1}],
        [{"item_name": "x", "qty": 1, "price": 1, "return_unit": 2}],
    ])
    def test_malformed(self, raw):
        with pytest.raises(MalformedItemsError):
            parse_items(raw)


class TestScalarParsing:
    def test_parse_date(self):
        assert parse_date("date", "2025-01-01T10:00:00") == date(2025, 1, 1)
        assert parse_date("date", "") is None

    def test_parse_date_invalid(self):
        with pytest.raises(InvalidFieldError):
            parse_date("due_date", "01/02/2025")

    def test_parse_amount(self):
        assert parse_amount("freight_in", None) == Decimal("0")
        assert parse_amount("freight_in", 0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", ["lots", "NaN", "sNaN", "-Infinity", Decimal("NaN")])
    def test_parse_amount_invalid(self, value):
        with pytest.raises(InvalidFieldError):
            parse_amount("freight_in", value)

    def test_document_number_format(self):
        assert format_document_number(DocumentKind.SHIPMENT, 42) == "SH-00042"
        assert format_document_number(DocumentKind.BILLING_INVOICE, 7) == "BILINV-00007"


class TestTagsAndAttachments:
    def test_tags_from_list(self):
        assert normalize_tags([" a ", "b", "", "a"]) == ["a", "b"]

    def test_tags_wrong_type(self):
        with pytest.raises(InvalidFieldError):
            normalize_tags(5)

    def test_single_attachment_path(self):
        assert normalize_attachments("uploads/a.png") == ["uploads/a.png"]

    def test_attachment_without_path(self):
        with pytest.raises(InvalidFieldError):
            normalize_attachments([{"content_type": "image/png"}])

    def test_attachment_type(self):
        with pytest.raises(InvalidAttachmentTypeError):
            normalize_attachments({"path": "x.exe", "content_type": "application/x-msdownload"})


class TestWorkflows:
    def test_every_kind_has_a_workflow(self):
        assert set(WORKFLOWS) == set(DocumentKind)

    @pytest.mark.parametrize("kind", [
        DocumentKind.REQUEST,
        DocumentKind.ORDER,
        DocumentKind.QUOTATION,
        DocumentKind.OFFER,
        DocumentKind.SHIPMENT,
        DocumentKind.INVOICE,
    ])
    def test_terminal_states_have_no_exits(self, kind):
        workflow = WORKFLOWS[kind]
        for state in workflow.terminal_states:
            for action in ("approve", "reject"):
                assert workflow.transition(state, action) is None

    def test_billing_invoice_starts_unpaid(self):
        assert WORKFLOWS[DocumentKind.BILLING_INVOICE].initial_state == "Unpaid"

    def test_billing_invoice_payment_transitions(self):
        workflow = WORKFLOWS[DocumentKind.BILLING_INVOICE]

        assert workflow.transition("Unpaid", "pay_partial").to_state == "Pending"
        assert workflow.transition("Pending", "pay_partial").to_state == "Pending"
        assert workflow.transition("Pending", "settle").to_state == "Completed"
        assert workflow.transition("Completed", "settle") is None

    def test_approval_creates_derived_kind(self):
        assert WORKFLOWS[DocumentKind.REQUEST].transition("Pending", "approve").creates is DocumentKind.ORDER
        assert WORKFLOWS[DocumentKind.INVOICE].transition("Pending", "approve").creates is DocumentKind.BILLING_INVOICE
        assert WORKFLOWS[DocumentKind.ORDER].transition("Pending", "approve").creates is None

    def test_cascade_rules_cover_derived_kinds(self):
        assert {k for k, _ in CASCADE_RULES[DocumentKind.REQUEST]} == {
            DocumentKind.ORDER, DocumentKind.BILLING_ORDER,
        }
