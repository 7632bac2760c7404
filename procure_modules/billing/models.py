"""
Billing Domain Models.

Payment-tracking records derived from approved documents and their
ordered installment history.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from procure_engines.installments import InstallmentLabel
from procure_modules.procurement.models import DocumentKind, DocumentStatus


@dataclass(frozen=True)
class Installment:
    """One recorded payment on a billing record."""
    sequence: int
    label: InstallmentLabel
    amount: Decimal
    paid_on: date | None = None
    transaction_number: str | None = None


@dataclass(frozen=True)
class BillingRecord:
    """A billing order or billing invoice."""
    id: UUID
    kind: DocumentKind
    number: int
    display_number: str
    status: DocumentStatus
    source_id: UUID
    document_date: date
    grand_total: Decimal
    installment_amount: Decimal
    paid_amount: Decimal
    remain_balance: Decimal
    installment_count: int
    version: int
    payment_method: str | None = None
    terms: str | None = None
    tax_method: str | None = None
    ppn_percentage: Decimal = Decimal("0")
    pph_percentage: Decimal = Decimal("0")
    dpp: Decimal = Decimal("0")
    ppn: Decimal = Decimal("0")
    pph: Decimal = Decimal("0")
    installments: tuple[Installment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of approving a payment on a billing record."""
    record: BillingRecord
    label: InstallmentLabel
    transaction_number: str
    discount_amount: Decimal = Decimal("0")
    alerts: tuple[str, ...] = ()
