"""
SQLAlchemy ORM persistence models for the Inventory module.

Responsibility
--------------
Persist the monthly moving-average cost ledger and the stock master.

Invariants enforced
-------------------
* Ledger rows are append-only.  The one exception is a stock adjustment,
  which patches ``total_nett``, ``total_stock`` and ``avg_per_unit`` on the
  latest row of a month.
* ``entry_seq`` orders rows that share an ``inventory_date``.
* ``stock_name`` is unique in the stock master.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procure_kernel.db.base import TrackedBase


class InventoryLedgerModel(TrackedBase):
    """One ledger row per (stock item, purchase or reversal event)."""

    __tablename__ = "inventory_ledger"

    __table_args__ = (
        UniqueConstraint("entry_seq", name="uq_inventory_ledger_seq"),
        Index("idx_inventory_stock_date", "stock_name", "inventory_date"),
        Index("idx_inventory_source", "source_document_id"),
    )

    entry_seq: Mapped[int] = mapped_column(nullable=False)
    stock_name: Mapped[str] = mapped_column(String(200), nullable=False)
    inventory_date: Mapped[date]
    source_document_id: Mapped[UUID | None]
    reversal_of_id: Mapped[UUID | None]

    quantity_purchase: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    return_purchase: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    price_purchase: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    nett_purchase: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    nett_price_item: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    price_sale: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity_sale: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    return_sale: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_sale: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    total_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    avg_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_cogs: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_nett: Mapped[Decimal | None]

    def position(self):
        from procure_engines.inventory_cost import LedgerPosition

        return LedgerPosition(
            inventory_date=self.inventory_date,
            total_qty=self.total_qty,
            total_stock=self.total_stock,
            avg_per_unit=self.avg_per_unit,
            total_cogs=self.total_cogs,
        )

    def to_draft(self):
        from procure_engines.inventory_cost import LedgerEntryDraft

        return LedgerEntryDraft(
            stock_name=self.stock_name,
            inventory_date=self.inventory_date,
            quantity_purchase=self.quantity_purchase,
            return_purchase=self.return_purchase,
            price_purchase=self.price_purchase,
            nett_purchase=self.nett_purchase,
            nett_price_item=self.nett_price_item,
            price_sale=self.price_sale,
            quantity_sale=self.quantity_sale,
            return_sale=self.return_sale,
            total_sale=self.total_sale,
            total_qty=self.total_qty,
            total_stock=self.total_stock,
            avg_per_unit=self.avg_per_unit,
            total_cogs=self.total_cogs,
            is_first_in_month=False,
        )

    @classmethod
    def from_draft(
        cls,
        draft,
        entry_seq: int,
        created_by_id: UUID,
        source_document_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
    ) -> "InventoryLedgerModel":
        return cls(
            entry_seq=entry_seq,
            stock_name=draft.stock_name,
            inventory_date=draft.inventory_date,
            source_document_id=source_document_id,
            reversal_of_id=reversal_of_id,
            quantity_purchase=draft.quantity_purchase,
            return_purchase=draft.return_purchase,
            price_purchase=draft.price_purchase,
            nett_purchase=draft.nett_purchase,
            nett_price_item=draft.nett_price_item,
            price_sale=draft.price_sale,
            quantity_sale=draft.quantity_sale,
            return_sale=draft.return_sale,
            total_sale=draft.total_sale,
            total_qty=draft.total_qty,
            total_stock=draft.total_stock,
            avg_per_unit=draft.avg_per_unit,
            total_cogs=draft.total_cogs,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryLedgerModel {self.stock_name} {self.inventory_date} "
            f"qty={self.total_qty} avg={self.avg_per_unit}>"
        )


class StockItemModel(TrackedBase):
    """Stock master record, created the first time an item is purchased."""

    __tablename__ = "inventory_stock_items"

    __table_args__ = (
        UniqueConstraint("stock_name", name="uq_stock_item_name"),
    )

    stock_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
