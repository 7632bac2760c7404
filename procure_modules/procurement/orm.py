"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Database-backed persistence for requests, orders, quotations, offers,
shipments and invoices.  All six kinds share one header table keyed by
``(kind, number)``; kind-specific header fields live in the ``details``
JSON column.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProcurementService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* ``(kind, number)`` is unique -- the store, not a pre-check, guarantees
  document numbers never repeat.
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* ``DocumentLineModel`` belongs to exactly one ``DocumentModel`` and is
  deleted with it.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procure_kernel.db.base import TrackedBase


class DocumentModel(TrackedBase):
    """
    Header row of a procurement document.

    Maps to the ``Document`` DTO in ``procure_modules.procurement.models``.
    """

    __tablename__ = "procurement_documents"

    __table_args__ = (
        UniqueConstraint("kind", "number", name="uq_document_kind_number"),
        Index("idx_document_kind_status", "kind", "status"),
        Index("idx_document_source", "source_id"),
    )

    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    number: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    document_date: Mapped[date]
    source_id: Mapped[UUID | None]
    vendor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    dpp: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    ppn: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pph: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    tax_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    ppn_percentage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pph_percentage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pph_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    attachments: Mapped[list[str]] = mapped_column(JSON, default=list)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    lines: Mapped[list["DocumentLineModel"]] = relationship(
        "DocumentLineModel",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from procure_modules.procurement.models import (
            Document,
            DocumentKind,
            DocumentStatus,
            format_document_number,
        )

        kind = DocumentKind(self.kind)
        return Document(
            id=self.id,
            kind=kind,
            number=self.number,
            display_number=format_document_number(kind, self.number),
            status=DocumentStatus(self.status),
            document_date=self.document_date,
            items=tuple(line.to_dto() for line in self.lines),
            source_id=self.source_id,
            total=self.total,
            dpp=self.dpp,
            ppn=self.ppn,
            pph=self.pph,
            grand_total=self.grand_total,
            tax_method=self.tax_method,
            ppn_percentage=self.ppn_percentage,
            pph_percentage=self.pph_percentage,
            pph_type=self.pph_type,
            tags=tuple(self.tags or ()),
            attachments=tuple(self.attachments or ()),
            fields={"vendor_name": self.vendor_name, **(self.details or {})},
        )

    def __repr__(self) -> str:
        return f"<DocumentModel {self.kind}:{self.number} [{self.status}]>"


class DocumentLineModel(TrackedBase):
    """
    A line item on a document.

    Guarantees:
        - ``(document_id, line_number)`` is unique.
        - ``total_per_item`` equals ``qty * price`` as of the last add/edit.
    """

    __tablename__ = "procurement_document_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_document_line_number"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    coa: Mapped[str | None] = mapped_column(String(50), nullable=True)
    qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    disc_item: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    disc_item_type: Mapped[str] = mapped_column(String(20), default="nominal")
    return_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_per_item: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    document: Mapped[DocumentModel] = relationship(
        "DocumentModel",
        back_populates="lines",
    )

    def to_dto(self):
        from procure_engines.inventory_cost import DiscountType
        from procure_modules.procurement.models import LineItem

        return LineItem(
            item_name=self.item_name,
            sku=self.sku,
            coa=self.coa,
            qty=self.qty,
            price=self.price,
            disc_item=self.disc_item,
            disc_item_type=DiscountType(self.disc_item_type),
            return_unit=self.return_unit,
        )

    @classmethod
    def from_dto(cls, dto, line_number: int, created_by_id: UUID) -> "DocumentLineModel":
        return cls(
            line_number=line_number,
            item_name=dto.item_name,
            sku=dto.sku,
            coa=dto.coa,
            qty=dto.qty,
            price=dto.price,
            disc_item=dto.disc_item,
            disc_item_type=dto.disc_item_type.value,
            return_unit=dto.return_unit,
            total_per_item=dto.total_per_item,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<DocumentLineModel {self.line_number}: {self.item_name}>"
