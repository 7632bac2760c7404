"""
Tests for InventoryService (persisted moving-average ledger).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from procure_engines.inventory_cost import PurchaseLine, allocate_invoice_costs
from procure_kernel.exceptions import InventoryPeriodNotFoundError
from procure_modules.inventory.service import InventoryService

BOLT = "Steel Bolt M10"


def _costs(qty: str, price: str, stock_name: str = BOLT):
    return allocate_invoice_costs([
        PurchaseLine(
            stock_name=stock_name,
            account_code="1-10300",
            qty=Decimal(qty),
            price=Decimal(price),
        ),
    ])


class TestPosting:
    def test_moving_average_across_invoices(self, session, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        inventory_service.post_invoice_lines(uuid4(), _costs("5", "130"), date(2025, 1, 20), test_actor_id)
        session.commit()

        first, second = inventory_service.ledger_for(BOLT)
        assert second.entry_seq > first.entry_seq
        assert second.total_qty == Decimal("15")
        assert second.total_stock == Decimal("1650")
        assert second.avg_per_unit == Decimal("110")

    def test_stock_item_created_once(self, session, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        inventory_service.post_invoice_lines(uuid4(), _costs("2", "100"), date(2025, 1, 6), test_actor_id)

        item = inventory_service.stock_item(BOLT)
        assert item is not None
        assert item.account_code == "1-10300"

    def test_new_month_resets_by_default(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        inventory_service.post_invoice_lines(uuid4(), _costs("5", "130"), date(2025, 2, 3), test_actor_id)

        february = inventory_service.ledger_for(BOLT)[-1]
        assert february.total_qty == Decimal("5")
        assert february.avg_per_unit == Decimal("130")

    def test_carry_forward(self, session, test_actor_id):
        service = InventoryService(session, carry_forward=True)
        service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        service.post_invoice_lines(uuid4(), _costs("5", "130"), date(2025, 2, 3), test_actor_id)

        february = service.ledger_for(BOLT)[-1]
        assert february.total_qty == Decimal("15")
        assert february.avg_per_unit == Decimal("110")

    def test_items_are_independent(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        inventory_service.post_invoice_lines(
            uuid4(), _costs("4", "2500", stock_name="Nut M10"), date(2025, 1, 6), test_actor_id,
        )

        assert inventory_service.latest_row(BOLT, date(2025, 1, 31)).total_qty == Decimal("10")
        assert inventory_service.latest_row("Nut M10", date(2025, 1, 31)).total_qty == Decimal("4")


class TestReversal:
    def test_reverse_document_once(self, inventory_service, test_actor_id):
        invoice_id = uuid4()
        inventory_service.post_invoice_lines(invoice_id, _costs("10", "100"), date(2025, 1, 5), test_actor_id)

        first = inventory_service.reverse_document(invoice_id, test_actor_id)
        again = inventory_service.reverse_document(invoice_id, test_actor_id)

        assert len(first) == 1
        assert first[0].total_qty == Decimal("0")
        assert again == []
        assert len(inventory_service.ledger_for(BOLT)) == 2


class TestAdjustStock:
    def test_adjust_latest_row_of_month(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 20), test_actor_id)

        row = inventory_service.adjust_stock(BOLT, 2025, 1, Decimal("1000"), test_actor_id)

        assert row.inventory_date == date(2025, 1, 20)
        assert row.total_stock == Decimal("3000")
        assert row.avg_per_unit == Decimal("150")
        assert row.total_nett == Decimal("1000")
        first = inventory_service.ledger_for(BOLT)[0]
        assert first.total_stock == Decimal("1000")

    def test_adjustments_accumulate(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)

        inventory_service.adjust_stock(BOLT, 2025, 1, Decimal("100"), test_actor_id)
        row = inventory_service.adjust_stock(BOLT, 2025, 1, Decimal("-50"), test_actor_id)

        assert row.total_nett == Decimal("50")
        assert row.total_stock == Decimal("1050")

    def test_missing_period(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("10", "100"), date(2025, 1, 5), test_actor_id)

        with pytest.raises(InventoryPeriodNotFoundError) as exc_info:
            inventory_service.adjust_stock(BOLT, 2025, 3, Decimal("100"), test_actor_id)

        assert exc_info.value.period == "2025-03"

    def test_december_bounds(self, inventory_service, test_actor_id):
        inventory_service.post_invoice_lines(uuid4(), _costs("2", "100"), date(2024, 12, 31), test_actor_id)

        row = inventory_service.adjust_stock(BOLT, 2024, 12, Decimal("100"), test_actor_id)

        assert row.avg_per_unit == Decimal("150")
