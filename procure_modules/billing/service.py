"""
Billing Module Service (``procure_modules.billing.service``).

Responsibility
--------------
Opens billing records when documents are approved, and approves payments
on them: the down payment of a billing order ("sent to COA") and each
installment of a billing invoice.  Tax figures come from
``procure_engines.tax``, installment sequencing from
``procure_engines.installments`` and journal lines from
``procure_engines.posting``; the kernel ``JournalWriter`` persists them.

Architecture position
---------------------
**Modules layer**.  ``BillingService`` is the public entry point for
payment approval.  ``ProcurementService`` calls the ``open_*`` helpers
inside its own transaction.

Invariants enforced
-------------------
* Each public approval method owns the transaction boundary
  (``commit`` on success, ``rollback`` on any exception).  Billing state,
  installment row and journal entry are written together or not at all.
* The billing row is read ``FOR UPDATE`` and carries a version column; a
  stale write or a mismatched ``expected_version`` raises
  ``OptimisticLockError``.
* Once a ``full_pay`` or ``final_pay`` installment exists no further
  payment is accepted.

Failure modes
-------------
* ``BillingRecordNotFoundError`` -- unknown id.
* ``InvalidStatusTransitionError`` -- billing order already approved.
* ``AlreadyFullyPaidError`` and the installment validation errors from
  the engine.
* ``OptimisticLockError`` -- concurrent modification.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procure_engines.installments import (
    InstallmentEntry,
    InstallmentLabel,
    InstallmentLedger,
    PaymentMethod,
)
from procure_engines.posting import (
    DiscountPosting,
    InventoryShare,
    build_billing_order_entry,
    build_payment_entry,
)
from procure_engines.tax import compute_tax
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.values import ZERO
from procure_kernel.exceptions import (
    AlreadyFullyPaidError,
    BillingRecordNotFoundError,
    InvalidFieldError,
    InvalidStatusTransitionError,
    OptimisticLockError,
)
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.services.journal_writer import JournalWriter
from procure_modules.billing.models import BillingRecord, PaymentResult
from procure_modules.billing.orm import BillingRecordModel, InstallmentModel
from procure_modules.procurement.config import AccountConfig
from procure_modules.procurement.models import (
    DocumentKind,
    DocumentStatus,
    format_document_number,
)
from procure_modules.procurement.orm import DocumentModel
from procure_modules.procurement.workflows import (
    BILLING_INVOICE_WORKFLOW,
    BILLING_ORDER_WORKFLOW,
)

logger = get_logger("modules.billing.service")


def installment_transaction_number(number: int, installment_count: int) -> str:
    """``BILINV-00123-2`` for the second payment on billing invoice 123."""
    return f"{format_document_number(DocumentKind.BILLING_INVOICE, number)}-{installment_count}"


class BillingService:
    """
    Approves payments on billing records.

    Contract
    --------
    * ``approve_billing_order`` and ``record_invoice_payment`` commit.
    * ``open_billing_order`` / ``open_billing_invoice`` only flush; the
      caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        accounts: AccountConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._accounts = accounts or AccountConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._journal = JournalWriter(session)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_billing_record(self, billing_id: UUID) -> BillingRecord:
        """Billing record with its ordered installment history."""
        model = self._session.get(BillingRecordModel, billing_id)
        if model is None:
            raise BillingRecordNotFoundError(billing_id)
        return model.to_dto()

    def list_billing_records(
        self,
        kind: DocumentKind,
        status: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[BillingRecord]:
        stmt = select(BillingRecordModel).where(BillingRecordModel.kind == kind.value)
        if status:
            stmt = stmt.where(BillingRecordModel.status == status)
        stmt = stmt.order_by(BillingRecordModel.number.desc()).offset(offset).limit(limit)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def find_for_source(self, kind: DocumentKind, source_id: UUID) -> BillingRecordModel | None:
        return self._session.scalars(
            select(BillingRecordModel).where(
                BillingRecordModel.kind == kind.value,
                BillingRecordModel.source_id == source_id,
            )
        ).one_or_none()

    def completed_down_payments(self, order_number: int) -> list[Decimal]:
        """Installment amounts of completed billing orders for an order number."""
        return list(self._session.scalars(
            select(BillingRecordModel.installment_amount).where(
                BillingRecordModel.kind == DocumentKind.BILLING_ORDER.value,
                BillingRecordModel.number == order_number,
                BillingRecordModel.status == DocumentStatus.COMPLETED.value,
            ).order_by(BillingRecordModel.created_at)
        ))

    # =========================================================================
    # Creation (caller-owned transaction)
    # =========================================================================

    def open_billing_order(
        self,
        order: DocumentModel,
        installment_amount: Decimal,
        actor_id: UUID,
    ) -> BillingRecordModel:
        """Pending billing order carrying the down payment of ``order``."""
        record = BillingRecordModel(
            kind=DocumentKind.BILLING_ORDER.value,
            number=order.number,
            status=BILLING_ORDER_WORKFLOW.initial_state,
            source_id=order.id,
            document_date=order.document_date,
            grand_total=order.grand_total,
            installment_amount=installment_amount,
            remain_balance=installment_amount,
            tax_method=order.tax_method,
            ppn_percentage=order.ppn_percentage,
            pph_percentage=order.pph_percentage,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()
        logger.info("billing_order_opened", extra={
            "billing_id": str(record.id),
            "order_number": order.number,
            "installment_amount": str(installment_amount),
        })
        return record

    def open_billing_invoice(self, invoice: DocumentModel, actor_id: UUID) -> BillingRecordModel:
        """Unpaid billing invoice for an approved invoice."""
        details = invoice.details or {}
        record = BillingRecordModel(
            kind=DocumentKind.BILLING_INVOICE.value,
            number=invoice.number,
            status=BILLING_INVOICE_WORKFLOW.initial_state,
            source_id=invoice.id,
            document_date=invoice.document_date,
            grand_total=invoice.grand_total,
            remain_balance=invoice.grand_total,
            terms=details.get("terms"),
            tax_method=invoice.tax_method,
            ppn_percentage=invoice.ppn_percentage,
            pph_percentage=invoice.pph_percentage,
            dpp=invoice.dpp,
            ppn=invoice.ppn,
            pph=invoice.pph,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()
        logger.info("billing_invoice_opened", extra={
            "billing_id": str(record.id),
            "invoice_number": invoice.number,
            "grand_total": str(invoice.grand_total),
        })
        return record

    # =========================================================================
    # Approval
    # =========================================================================

    def _lock(self, billing_id: UUID, kind: DocumentKind, expected_version: int | None) -> BillingRecordModel:
        record = self._session.scalars(
            select(BillingRecordModel)
            .where(BillingRecordModel.id == billing_id, BillingRecordModel.kind == kind.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if record is None:
            raise BillingRecordNotFoundError(billing_id)
        if expected_version is not None and record.version != expected_version:
            logger.warning("billing_version_mismatch", extra={
                "billing_id": str(billing_id),
                "expected_version": expected_version,
                "actual_version": record.version,
            })
            raise OptimisticLockError("BillingRecord", billing_id)
        return record

    def _flush_versioned(self, record: BillingRecordModel) -> None:
        try:
            self._session.flush()
        except StaleDataError as e:
            raise OptimisticLockError("BillingRecord", record.id) from e

    def approve_billing_order(
        self,
        billing_id: UUID,
        actor_id: UUID,
        entry_date: date | None = None,
        expected_version: int | None = None,
    ) -> BillingRecord:
        """
        Send a billing order's down payment to the ledger.

        Tax is computed on ``installment_amount``; the journal debits the
        prepaid installment and VAT-in accounts and credits cash/bank with
        ``paid_amount``.
        """
        try:
            with LogContext.bind(actor_id=actor_id, document_id=billing_id):
                record = self._lock(billing_id, DocumentKind.BILLING_ORDER, expected_version)
                transition = BILLING_ORDER_WORKFLOW.transition(record.status, "approve")
                if transition is None:
                    raise InvalidStatusTransitionError(
                        DocumentKind.BILLING_ORDER.value, billing_id, record.status, "approve",
                    )

                logger.info("billing_order_approval_started", extra={
                    "billing_id": str(billing_id),
                    "installment_amount": str(record.installment_amount),
                })

                tax = compute_tax(
                    base=record.installment_amount,
                    method=record.tax_method,
                    vat_percent=record.ppn_percentage,
                    wh_percent=record.pph_percentage,
                )
                when = entry_date or self._clock.today()
                transaction_number = format_document_number(
                    DocumentKind.BILLING_ORDER, record.number,
                )
                draft = build_billing_order_entry(
                    transaction_number=transaction_number,
                    entry_date=when,
                    installment_amount=record.installment_amount,
                    ppn=tax.ppn,
                    paid_amount=tax.paid_amount,
                    accounts=self._accounts.posting_accounts(),
                    description=f"Down payment {transaction_number}",
                )
                self._journal.write(draft, actor_id, source_id=record.id)

                record.installments.append(InstallmentModel(
                    sequence=1,
                    label=InstallmentLabel.FULL_PAY.value,
                    amount=record.installment_amount,
                    paid_on=when,
                    transaction_number=transaction_number,
                    created_by_id=actor_id,
                ))
                record.dpp = tax.dpp
                record.ppn = tax.ppn
                record.pph = tax.pph
                record.paid_amount = tax.paid_amount
                record.remain_balance = ZERO
                record.installment_count = 1
                record.status = transition.to_state
                record.updated_by_id = actor_id
                self._flush_versioned(record)

                self._session.commit()
                logger.info("billing_order_approved", extra={
                    "billing_id": str(billing_id),
                    "transaction_number": transaction_number,
                    "paid_amount": str(tax.paid_amount),
                    "ppn": str(tax.ppn),
                })
                return record.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def _inventory_shares(self, invoice_id: UUID) -> tuple[InventoryShare, ...]:
        invoice = self._session.get(DocumentModel, invoice_id)
        if invoice is None:
            return ()
        return tuple(
            InventoryShare(
                account_code=line.coa or self._accounts.default_inventory,
                net_qty=line.qty - line.return_unit,
                description=f"Early payment discount {line.item_name}",
            )
            for line in invoice.lines
        )

    def record_invoice_payment(
        self,
        billing_id: UUID,
        paid_amount: Decimal,
        actor_id: UUID,
        payment_method: PaymentMethod | str | None = None,
        payment_date: date | None = None,
        expected_version: int | None = None,
    ) -> PaymentResult:
        """
        Approve one payment on a billing invoice.

        The payment method is fixed by the first payment; later calls may
        omit it.  Withholding tax is posted with the payment that settles
        the balance and is computed on the grand total.
        """
        try:
            with LogContext.bind(actor_id=actor_id, document_id=billing_id):
                record = self._lock(billing_id, DocumentKind.BILLING_INVOICE, expected_version)
                if record.status == DocumentStatus.COMPLETED.value:
                    raise AlreadyFullyPaidError(billing_id)

                method = PaymentMethod.parse(payment_method or record.payment_method)
                if record.payment_method and method.value != record.payment_method:
                    raise InvalidFieldError(
                        "payment_method",
                        f"billing record is already paid by {record.payment_method}",
                    )
                paid_on = payment_date or self._clock.today()

                ledger = InstallmentLedger(
                    grand_total=record.grand_total,
                    payment_method=method,
                    entries=tuple(
                        InstallmentEntry(InstallmentLabel(i.label), i.amount, i.paid_on)
                        for i in record.installments
                    ),
                    terms=record.terms,
                    minimum_down_payment_ratio=self._accounts.minimum_down_payment_ratio,
                    max_partials=self._accounts.max_partial_installments,
                )
                outcome = ledger.apply_payment(
                    paid_amount=paid_amount,
                    paid_on=paid_on,
                    invoice_date=record.document_date,
                    billing_id=str(billing_id),
                )

                action = "settle" if outcome.is_final else "pay_partial"
                transition = BILLING_INVOICE_WORKFLOW.transition(record.status, action)
                if transition is None:
                    raise InvalidStatusTransitionError(
                        DocumentKind.BILLING_INVOICE.value, billing_id, record.status, action,
                    )

                ppn = ZERO
                pph = ZERO
                if record.tax_method:
                    ppn = compute_tax(
                        base=paid_amount,
                        method=record.tax_method,
                        vat_percent=record.ppn_percentage,
                    ).ppn
                    if outcome.is_final and record.pph_percentage > ZERO:
                        pph = compute_tax(
                            base=record.grand_total,
                            method=record.tax_method,
                            vat_percent=record.ppn_percentage,
                            wh_percent=record.pph_percentage,
                        ).pph

                discount = None
                discount_amount = ZERO
                if outcome.discount is not None and outcome.discount.eligible:
                    discount_amount = outcome.discount.discount_amount
                    discount = DiscountPosting(
                        discount_amount=discount_amount,
                        rate=outcome.discount.terms.rate,
                        inventory_shares=self._inventory_shares(record.source_id),
                    )

                transaction_number = installment_transaction_number(
                    record.number, outcome.installment_count,
                )
                draft = build_payment_entry(
                    transaction_number=transaction_number,
                    entry_date=paid_on,
                    amount=paid_amount,
                    ppn=ppn,
                    pph=pph,
                    debit_account=self._accounts.vendor_payable,
                    accounts=self._accounts.posting_accounts(),
                    discount=discount,
                    description=f"{outcome.label.value} {transaction_number}",
                )
                self._journal.write(draft, actor_id, source_id=record.id)

                record.installments.append(InstallmentModel(
                    sequence=outcome.installment_count,
                    label=outcome.label.value,
                    amount=paid_amount,
                    paid_on=paid_on,
                    transaction_number=transaction_number,
                    created_by_id=actor_id,
                ))
                record.payment_method = method.value
                record.paid_amount = outcome.total_paid
                record.remain_balance = outcome.remain_balance
                record.installment_count = outcome.installment_count
                record.status = transition.to_state
                record.updated_by_id = actor_id
                self._flush_versioned(record)

                self._session.commit()
                logger.info("billing_payment_recorded", extra={
                    "billing_id": str(billing_id),
                    "label": outcome.label.value,
                    "transaction_number": transaction_number,
                    "paid_amount": str(paid_amount),
                    "remain_balance": str(outcome.remain_balance),
                    "discount_amount": str(discount_amount),
                    "status": record.status,
                })
                return PaymentResult(
                    record=record.to_dto(),
                    label=outcome.label,
                    transaction_number=transaction_number,
                    discount_amount=discount_amount,
                    alerts=outcome.alerts,
                )
        except Exception:
            self._session.rollback()
            raise
