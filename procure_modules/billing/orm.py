"""
SQLAlchemy ORM persistence models for the Billing module.

Responsibility
--------------
Persist billing orders and billing invoices together with their ordered
installment history.

Invariants enforced
-------------------
* ``version`` is the optimistic-concurrency token (``version_id_col``).
  Every UPDATE checks it, so two concurrent payments on one record cannot
  both commit.
* Installments are rows ``(sequence, label, amount, paid_on)``; they are
  only ever appended.
* ``(kind, number)`` is unique.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procure_kernel.db.base import TrackedBase


class BillingRecordModel(TrackedBase):
    """Billing order (down payment) or billing invoice (invoice payment)."""

    __tablename__ = "billing_records"

    __table_args__ = (
        UniqueConstraint("kind", "number", name="uq_billing_kind_number"),
        Index("idx_billing_source", "source_id"),
        Index("idx_billing_status", "kind", "status"),
    )

    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    number: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    document_date: Mapped[date]

    grand_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    installment_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    remain_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    installment_count: Mapped[int] = mapped_column(default=0)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    terms: Mapped[str | None] = mapped_column(String(50), nullable=True)

    tax_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    ppn_percentage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pph_percentage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    dpp: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    ppn: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pph: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    version: Mapped[int] = mapped_column(nullable=False)

    installments: Mapped[list["InstallmentModel"]] = relationship(
        "InstallmentModel",
        back_populates="billing_record",
        cascade="all, delete-orphan",
        order_by="InstallmentModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from procure_modules.billing.models import BillingRecord
        from procure_modules.procurement.models import (
            DocumentKind,
            DocumentStatus,
            format_document_number,
        )

        kind = DocumentKind(self.kind)
        return BillingRecord(
            id=self.id,
            kind=kind,
            number=self.number,
            display_number=format_document_number(kind, self.number),
            status=DocumentStatus(self.status),
            source_id=self.source_id,
            document_date=self.document_date,
            grand_total=self.grand_total,
            installment_amount=self.installment_amount,
            paid_amount=self.paid_amount,
            remain_balance=self.remain_balance,
            installment_count=self.installment_count,
            version=self.version,
            payment_method=self.payment_method,
            terms=self.terms,
            tax_method=self.tax_method,
            ppn_percentage=self.ppn_percentage,
            pph_percentage=self.pph_percentage,
            dpp=self.dpp,
            ppn=self.ppn,
            pph=self.pph,
            installments=tuple(i.to_dto() for i in self.installments),
        )

    def __repr__(self) -> str:
        return f"<BillingRecordModel {self.kind}:{self.number} [{self.status}] v{self.version}>"


class InstallmentModel(TrackedBase):
    """One payment appended to a billing record."""

    __tablename__ = "billing_installments"

    __table_args__ = (
        UniqueConstraint("billing_record_id", "sequence", name="uq_installment_sequence"),
    )

    billing_record_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_on: Mapped[date | None]
    transaction_number: Mapped[str | None] = mapped_column(String(60), nullable=True)

    billing_record: Mapped[BillingRecordModel] = relationship(
        "BillingRecordModel",
        back_populates="installments",
    )

    def to_dto(self):
        from procure_engines.installments import InstallmentLabel
        from procure_modules.billing.models import Installment

        return Installment(
            sequence=self.sequence,
            label=InstallmentLabel(self.label),
            amount=self.amount,
            paid_on=self.paid_on,
            transaction_number=self.transaction_number,
        )
