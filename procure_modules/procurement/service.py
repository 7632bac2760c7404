"""
Procurement Module Service (``procure_modules.procurement.service``).

Responsibility
--------------
Orchestrates the document lifecycle for requests, orders, quotations,
offers, shipments and invoices: add, edit, delete, approve, reject, get
and list.  Approval creates the downstream record (request -> order and
optional billing order, quotation -> offer, invoice -> billing invoice)
and, for invoices, posts the inventory ledger and the approval journal.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ProcurementService`` is the sole public
entry point for document operations.  It composes ``BillingService``
(billing record creation), ``InventoryService`` (cost ledger), the kernel
``JournalWriter`` and ``SequenceService``, and the pure engines.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` on any exception).  Invoice approval writes status,
  inventory rows, journal entry and billing invoice in one transaction.
* Document numbers come from a locked counter and are protected by the
  ``(kind, number)`` unique constraint.
* Editing or deleting a ``Completed`` ancestor applies the cascade rules
  in ``workflows.CASCADE_RULES``; a paid or in-progress dependent blocks
  the change.

Failure modes
-------------
* ``MissingFieldError`` / ``InvalidFieldError`` / ``MalformedItemsError``
  / ``InvalidTaxMethodError`` / ``InvalidAttachmentTypeError`` -- payload.
* ``DocumentNotFoundError`` -- unknown id for the kind.
* ``InvalidStatusTransitionError`` -- action not allowed from the status.
* ``DuplicateDocumentNumberError`` -- caller-supplied number in use.
* ``DependentDocumentLockedError`` -- cascade blocked.

Usage::

    service = ProcurementService(session, accounts, clock=clock)
    invoice = service.add_document(DocumentKind.INVOICE, payload, actor_id)
    service.approve_document(DocumentKind.INVOICE, invoice.id, actor_id)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procure_engines.inventory_cost import PurchaseLine, allocate_invoice_costs
from procure_engines.posting import InventoryDebit, build_invoice_approval_entry
from procure_engines.tax import TaxMethod, compute_document_totals
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.values import ZERO, round_amount
from procure_kernel.exceptions import (
    DependentDocumentLockedError,
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    InvalidFieldError,
    InvalidStatusTransitionError,
    MissingFieldError,
)
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.services.journal_writer import JournalWriter
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.billing.service import BillingService
from procure_modules.inventory.service import InventoryService
from procure_modules.procurement.config import AccountConfig
from procure_modules.procurement.models import (
    COMMON_FIELDS,
    KIND_FIELDS,
    Document,
    DocumentKind,
    DocumentStatus,
    LineItem,
    format_document_number,
    normalize_attachments,
    normalize_tags,
    parse_amount,
    parse_date,
    parse_items,
)
from procure_modules.procurement.orm import DocumentLineModel, DocumentModel
from procure_modules.procurement.workflows import (
    CASCADE_RULES,
    EDIT_CASCADE_KINDS,
    WORKFLOWS,
)

logger = get_logger("modules.procurement.service")

_AMOUNT_FIELDS = frozenset({"installment_amount", "freight_in", "insurance"})
_DATE_FIELDS = frozenset({"orders_date", "due_date", "expiry_date", "shipping_date"})
_HEADER_COLUMNS = frozenset({"vendor_name", "tax_method", "ppn_percentage", "pph_percentage", "pph_type"})


def _sequence_name(kind: DocumentKind) -> str:
    return f"document.{kind.value}"


class ProcurementService:
    """
    Orchestrates the document lifecycle through engines and kernel.

    Contract
    --------
    * Every public method either returns a ``Document`` DTO (or list) after
      committing, or raises a ``ProcureError`` after rolling back.

    Non-goals
    ---------
    * Does NOT approve payments on billing records (``BillingService``).
    * Does NOT check roles; the action dispatcher does.
    """

    def __init__(
        self,
        session: Session,
        accounts: AccountConfig | None = None,
        clock: Clock | None = None,
        carry_forward: bool = False,
    ):
        self._session = session
        self._accounts = accounts or AccountConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._journal = JournalWriter(session)
        self._sequence = SequenceService(session)
        self._billing = BillingService(session, self._accounts, clock=self._clock)
        self._inventory = InventoryService(session, carry_forward=carry_forward)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, kind: DocumentKind, document_id: UUID, lock: bool = False) -> DocumentModel:
        stmt = select(DocumentModel).where(
            DocumentModel.id == document_id,
            DocumentModel.kind == kind.value,
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.scalars(stmt).one_or_none()
        if model is None:
            raise DocumentNotFoundError(kind.value, document_id)
        return model

    def _dependents(self, kind: DocumentKind, source_id: UUID) -> list[DocumentModel]:
        return list(self._session.scalars(
            select(DocumentModel).where(
                DocumentModel.kind == kind.value,
                DocumentModel.source_id == source_id,
            )
        ))

    def _allocate_number(self, kind: DocumentKind, requested: Any = None) -> int:
        if requested in (None, ""):
            return self._sequence.next_value(_sequence_name(kind))
        try:
            number = int(requested)
        except (TypeError, ValueError) as e:
            raise InvalidFieldError("number", "must be an integer") from e
        if number <= 0:
            raise InvalidFieldError("number", "must be positive")
        exists = self._session.scalars(
            select(DocumentModel.id).where(
                DocumentModel.kind == kind.value,
                DocumentModel.number == number,
            )
        ).first()
        if exists is not None:
            raise DuplicateDocumentNumberError(kind.value, number)
        self._sequence.advance_to(_sequence_name(kind), number)
        return number

    def _apply_payload(
        self,
        model: DocumentModel,
        kind: DocumentKind,
        payload: dict[str, Any],
        actor_id: UUID,
        creating: bool,
    ) -> None:
        """Copy header fields, items, tags and attachments onto ``model``."""
        if creating:
            missing = [f for f in ("date", "items") if not payload.get(f)]
            if missing:
                raise MissingFieldError(missing)

        if "date" in payload:
            document_date = parse_date("date", payload["date"])
            if document_date is None:
                raise MissingFieldError(["date"])
            model.document_date = document_date

        if "vendor_name" in payload:
            model.vendor_name = payload["vendor_name"] or None
        if "tax_method" in payload:
            raw = payload["tax_method"]
            model.tax_method = TaxMethod.parse(raw).value if raw not in (None, "") else None
        if "ppn_percentage" in payload:
            model.ppn_percentage = parse_amount("ppn_percentage", payload["ppn_percentage"])
        if "pph_percentage" in payload:
            model.pph_percentage = parse_amount("pph_percentage", payload["pph_percentage"])
        if "pph_type" in payload:
            model.pph_type = payload["pph_type"] or None

        details = dict(model.details or {})
        for name in COMMON_FIELDS + KIND_FIELDS.get(kind, ()):
            if name not in payload or name in _HEADER_COLUMNS:
                continue
            value = payload[name]
            if name in _AMOUNT_FIELDS:
                value = str(parse_amount(name, value))
            elif name in _DATE_FIELDS:
                parsed = parse_date(name, value)
                value = parsed.isoformat() if parsed else None
            elif name == "order_number" and value not in (None, ""):
                try:
                    value = int(value)
                except (TypeError, ValueError) as e:
                    raise InvalidFieldError("order_number", "must be an integer") from e
            details[name] = value
        model.details = details

        if "tags" in payload:
            model.tags = normalize_tags(payload["tags"])
        if "attachments" in payload:
            model.attachments = normalize_attachments(payload["attachments"])

        if "items" in payload:
            items = parse_items(payload["items"])
            if not items:
                raise MissingFieldError(["items"])
            model.lines.clear()
            self._session.flush()
            for index, item in enumerate(items, start=1):
                model.lines.append(DocumentLineModel.from_dto(item, index, actor_id))

        self._recompute_totals(model, kind)

    def _recompute_totals(self, model: DocumentModel, kind: DocumentKind) -> None:
        line_totals = [line.qty * line.price for line in model.lines]
        for line, total in zip(model.lines, line_totals):
            line.total_per_item = total
        model.total = sum(line_totals, ZERO)
        if kind is DocumentKind.INVOICE:
            totals = compute_document_totals(
                line_totals, model.ppn_percentage or ZERO, model.pph_percentage or ZERO,
            )
            model.dpp = totals.dpp
            model.ppn = totals.ppn
            model.pph = totals.pph
            model.grand_total = totals.grand_total
        else:
            model.grand_total = model.total

    def _copy_document(
        self,
        source: DocumentModel,
        kind: DocumentKind,
        actor_id: UUID,
    ) -> DocumentModel:
        """New Pending document of ``kind`` derived from ``source``."""
        copy = DocumentModel(
            kind=kind.value,
            number=self._allocate_number(kind),
            status=WORKFLOWS[kind].initial_state,
            document_date=source.document_date,
            source_id=source.id,
            vendor_name=source.vendor_name,
            total=source.total,
            grand_total=source.grand_total,
            tax_method=source.tax_method,
            ppn_percentage=source.ppn_percentage,
            pph_percentage=source.pph_percentage,
            pph_type=source.pph_type,
            tags=list(source.tags or []),
            attachments=[],
            details={
                k: v for k, v in (source.details or {}).items()
                if k in COMMON_FIELDS + KIND_FIELDS.get(kind, ())
            },
            created_by_id=actor_id,
        )
        for line in source.lines:
            copy.lines.append(DocumentLineModel.from_dto(line.to_dto(), line.line_number, actor_id))
        self._session.add(copy)
        self._session.flush()
        return copy

    def _cascade(self, model: DocumentModel, kind: DocumentKind, actor_id: UUID) -> None:
        """Remove records derived from a Completed document, or refuse."""
        display = format_document_number(kind, model.number)

        if kind is DocumentKind.REQUEST:
            orders = self._dependents(DocumentKind.ORDER, model.id)
            billing_orders = [
                b for b in (
                    self._billing.find_for_source(DocumentKind.BILLING_ORDER, o.id) for o in orders
                )
                if b is not None
            ]
            blocking = dict(CASCADE_RULES[kind])[DocumentKind.BILLING_ORDER]
            for b in billing_orders:
                if b.status in blocking:
                    raise DependentDocumentLockedError(
                        kind.value, model.id, DocumentKind.BILLING_ORDER.value, b.status,
                    )
            for b in billing_orders:
                self._session.delete(b)
            for o in orders:
                self._session.delete(o)
            logger.info("request_cascade_applied", extra={
                "document": display,
                "orders_deleted": len(orders),
                "billing_orders_deleted": len(billing_orders),
            })

        elif kind is DocumentKind.QUOTATION:
            offers = self._dependents(DocumentKind.OFFER, model.id)
            for offer in offers:
                self._session.delete(offer)
            logger.info("quotation_cascade_applied", extra={
                "document": display,
                "offers_deleted": len(offers),
            })

        elif kind is DocumentKind.INVOICE:
            ((rule_kind, blocking),) = CASCADE_RULES[kind]
            billing = self._billing.find_for_source(rule_kind, model.id)
            if billing is not None and billing.status in blocking:
                raise DependentDocumentLockedError(
                    kind.value, model.id, rule_kind.value, billing.status,
                )
            if billing is not None:
                self._session.delete(billing)
            removed = self._journal.delete_by_transaction_numbers(
                transaction_numbers=(display,),
                prefixes=(f"{format_document_number(rule_kind, model.number)}-",),
            )
            self._inventory.reverse_document(model.id, actor_id)
            logger.info("invoice_cascade_applied", extra={
                "document": display,
                "billing_deleted": billing is not None,
                "journal_entries_deleted": removed,
            })

        self._session.flush()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_document(self, kind: DocumentKind, document_id: UUID) -> Document:
        return self._load(kind, document_id).to_dto()

    def list_documents(
        self,
        kind: DocumentKind,
        status: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Document]:
        """Documents of one kind, newest number first."""
        stmt = select(DocumentModel).where(DocumentModel.kind == kind.value)
        if status:
            stmt = stmt.where(DocumentModel.status == status)
        if search:
            stmt = stmt.where(DocumentModel.vendor_name.ilike(f"%{search}%"))
        stmt = stmt.order_by(DocumentModel.number.desc()).offset(offset).limit(limit)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    # =========================================================================
    # Add / edit / delete
    # =========================================================================

    def add_document(self, kind: DocumentKind, payload: dict[str, Any], actor_id: UUID) -> Document:
        """Create a Pending document with the next number for its kind."""
        try:
            model = DocumentModel(
                kind=kind.value,
                number=self._allocate_number(kind, payload.get("number")),
                status=WORKFLOWS[kind].initial_state,
                tags=[],
                attachments=[],
                details={},
                created_by_id=actor_id,
            )
            self._apply_payload(model, kind, payload, actor_id, creating=True)
            self._session.add(model)
            try:
                self._session.flush()
            except IntegrityError as e:
                raise DuplicateDocumentNumberError(kind.value, model.number) from e
            self._session.commit()
            logger.info("document_added", extra={
                "kind": kind.value,
                "document_id": str(model.id),
                "number": format_document_number(kind, model.number),
                "line_count": len(model.lines),
                "grand_total": str(model.grand_total),
            })
            return model.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def edit_document(
        self,
        kind: DocumentKind,
        document_id: UUID,
        payload: dict[str, Any],
        actor_id: UUID,
    ) -> Document:
        """
        Update a document and recompute its totals.

        A Completed request or invoice first has its derived records
        removed and returns to Pending.
        """
        try:
            with LogContext.bind(actor_id=actor_id, document_id=document_id):
                model = self._load(kind, document_id, lock=True)
                reset = (
                    model.status == DocumentStatus.COMPLETED.value
                    and kind in EDIT_CASCADE_KINDS
                )
                if reset:
                    self._cascade(model, kind, actor_id)
                    model.status = DocumentStatus.PENDING.value

                requested = payload.get("number")
                if requested not in (None, "") and str(requested) != str(model.number):
                    model.number = self._allocate_number(kind, requested)

                self._apply_payload(model, kind, payload, actor_id, creating=False)
                model.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info("document_edited", extra={
                    "kind": kind.value,
                    "document_id": str(document_id),
                    "status_reset": reset,
                    "grand_total": str(model.grand_total),
                })
                return model.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def delete_document(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> None:
        """Delete a document; a Completed ancestor cascades first."""
        try:
            with LogContext.bind(actor_id=actor_id, document_id=document_id):
                model = self._load(kind, document_id, lock=True)
                if model.status == DocumentStatus.COMPLETED.value and kind in CASCADE_RULES:
                    self._cascade(model, kind, actor_id)
                self._session.delete(model)
                self._session.flush()
                self._session.commit()
                logger.info("document_deleted", extra={
                    "kind": kind.value,
                    "document_id": str(document_id),
                    "number": format_document_number(kind, model.number),
                })
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _transition(self, model: DocumentModel, kind: DocumentKind, action: str):
        transition = WORKFLOWS[kind].transition(model.status, action)
        if transition is None:
            raise InvalidStatusTransitionError(kind.value, model.id, model.status, action)
        return transition

    def _approve_invoice(self, model: DocumentModel, actor_id: UUID) -> None:
        details = model.details or {}
        display = format_document_number(DocumentKind.INVOICE, model.number)
        items: list[LineItem] = [line.to_dto() for line in model.lines]

        purchase_lines = [
            PurchaseLine(
                stock_name=item.item_name,
                account_code=item.coa or self._accounts.default_inventory,
                qty=item.qty,
                price=item.price,
                disc_item=item.disc_item,
                disc_item_type=item.disc_item_type,
                return_unit=item.return_unit,
            )
            for item in items
        ]
        costs = allocate_invoice_costs(
            purchase_lines,
            freight_in=parse_amount("freight_in", details.get("freight_in")),
            insurance=parse_amount("insurance", details.get("insurance")),
        )
        self._inventory.post_invoice_lines(model.id, costs, model.document_date, actor_id)

        order_number = details.get("order_number")
        down_payments: list[Decimal] = (
            self._billing.completed_down_payments(int(order_number))
            if order_number not in (None, "")
            else []
        )
        draft = build_invoice_approval_entry(
            transaction_number=display,
            entry_date=model.document_date,
            inventory_debits=[
                InventoryDebit(
                    account_code=c.line.account_code,
                    amount=round_amount(c.net),
                    description=f"Inventory {c.line.stock_name}",
                )
                for c in costs
            ],
            down_payments=down_payments,
            accounts=self._accounts.posting_accounts(),
            description=f"Invoice {display}",
        )
        self._journal.write(draft, actor_id, source_id=model.id)
        self._billing.open_billing_invoice(model, actor_id)

    def approve_document(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> Document:
        """
        Advance a document along its workflow.

        request -> order (+ billing order when ``installment_amount`` is
        set), quotation -> offer, invoice -> inventory + journal + billing
        invoice, shipment Pending -> Received -> Completed.
        """
        try:
            with LogContext.bind(actor_id=actor_id, document_id=document_id, action="approve"):
                model = self._load(kind, document_id, lock=True)
                transition = self._transition(model, kind, "approve")
                logger.info("document_approval_started", extra={
                    "kind": kind.value,
                    "from_state": transition.from_state,
                    "to_state": transition.to_state,
                })

                if kind is DocumentKind.INVOICE:
                    self._approve_invoice(model, actor_id)
                elif transition.creates is not None:
                    installment = parse_amount(
                        "installment_amount", (model.details or {}).get("installment_amount"),
                    )
                    opens_billing = transition.creates is DocumentKind.ORDER and installment > ZERO
                    if opens_billing and not model.tax_method:
                        raise MissingFieldError(["tax_method"])
                    derived = self._copy_document(model, transition.creates, actor_id)
                    if opens_billing:
                        self._billing.open_billing_order(derived, installment, actor_id)

                model.status = transition.to_state
                model.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info("document_approved", extra={
                    "kind": kind.value,
                    "number": format_document_number(kind, model.number),
                    "status": model.status,
                })
                return model.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def reject_document(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> Document:
        """Flip a Pending (or Received) document to Rejected."""
        try:
            with LogContext.bind(actor_id=actor_id, document_id=document_id, action="reject"):
                model = self._load(kind, document_id, lock=True)
                transition = self._transition(model, kind, "reject")
                model.status = transition.to_state
                model.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info("document_rejected", extra={
                    "kind": kind.value,
                    "number": format_document_number(kind, model.number),
                })
                return model.to_dto()
        except Exception:
            self._session.rollback()
            raise
