"""
Procurement Domain Models.

The nouns of the back office: documents of each kind, their line items,
and the payload parsing helpers shared by add and edit.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from procure_engines.inventory_cost import DiscountType
from procure_kernel.domain.values import ZERO, to_decimal
from procure_kernel.exceptions import (
    InvalidAttachmentTypeError,
    InvalidFieldError,
    MalformedItemsError,
)
from procure_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")


class DocumentKind(str, Enum):
    """Every record kind the back office manages."""
    REQUEST = "request"
    ORDER = "order"
    QUOTATION = "quotation"
    OFFER = "offer"
    SHIPMENT = "shipment"
    INVOICE = "invoice"
    BILLING_ORDER = "billing_order"
    BILLING_INVOICE = "billing_invoice"

    @property
    def is_billing(self) -> bool:
        return self in (DocumentKind.BILLING_ORDER, DocumentKind.BILLING_INVOICE)

    @property
    def prefix(self) -> str:
        return DOCUMENT_PREFIXES[self]


class DocumentStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    UNPAID = "Unpaid"
    RECEIVED = "Received"


DOCUMENT_PREFIXES: dict[DocumentKind, str] = {
    DocumentKind.REQUEST: "REQ",
    DocumentKind.ORDER: "ORD",
    DocumentKind.QUOTATION: "QUO",
    DocumentKind.OFFER: "OFR",
    DocumentKind.SHIPMENT: "SH",
    DocumentKind.INVOICE: "INV",
    DocumentKind.BILLING_ORDER: "BILORD",
    DocumentKind.BILLING_INVOICE: "BILINV",
}

ALLOWED_ATTACHMENT_TYPES = frozenset({"application/pdf", "image/png", "image/jpeg"})

# Kind-specific header fields accepted on add/edit, on top of the common ones.
KIND_FIELDS: dict[DocumentKind, tuple[str, ...]] = {
    DocumentKind.REQUEST: ("requested_by", "urgency", "installment_amount"),
    DocumentKind.ORDER: ("orders_date", "due_date", "order_type"),
    DocumentKind.QUOTATION: ("expiry_date",),
    DocumentKind.OFFER: ("discount_terms", "expiry_date"),
    DocumentKind.SHIPMENT: ("tracking_number", "carrier", "shipping_date"),
    DocumentKind.INVOICE: (
        "approver",
        "order_number",
        "due_date",
        "terms",
        "freight_in",
        "insurance",
    ),
}

COMMON_FIELDS = (
    "vendor_name",
    "vendor_address",
    "vendor_phone",
    "memo",
    "tax_method",
    "ppn_percentage",
    "pph_type",
    "pph_percentage",
)


def format_document_number(kind: DocumentKind, number: int) -> str:
    """Human-facing number, e.g. ``INV-00123``."""
    return f"{kind.prefix}-{number:05d}"


@dataclass(frozen=True)
class LineItem:
    """One line on a document."""
    item_name: str
    qty: Decimal
    price: Decimal
    coa: str | None = None
    sku: str | None = None
    disc_item: Decimal = ZERO
    disc_item_type: DiscountType = DiscountType.NOMINAL
    return_unit: Decimal = ZERO

    @property
    def total_per_item(self) -> Decimal:
        return self.qty * self.price

    @property
    def net_qty(self) -> Decimal:
        return self.qty - self.return_unit


@dataclass(frozen=True)
class Document:
    """A procurement document of any non-billing kind."""
    id: UUID
    kind: DocumentKind
    number: int
    display_number: str
    status: DocumentStatus
    document_date: date
    items: tuple[LineItem, ...] = field(default_factory=tuple)
    source_id: UUID | None = None
    total: Decimal = ZERO
    dpp: Decimal = ZERO
    ppn: Decimal = ZERO
    pph: Decimal = ZERO
    grand_total: Decimal = ZERO
    tax_method: str | None = None
    ppn_percentage: Decimal = ZERO
    pph_percentage: Decimal = ZERO
    pph_type: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    attachments: tuple[str, ...] = field(default_factory=tuple)
    fields: dict[str, Any] = field(default_factory=dict)


def parse_date(name: str, value: Any) -> date | None:
    """Parse a payload date field; None when absent."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise InvalidFieldError(name, "must be an ISO date (YYYY-MM-DD)") from e


def parse_amount(name: str, value: Any) -> Decimal:
    """Parse a payload amount field; zero when absent."""
    try:
        return to_decimal(value)
    except ValueError as e:
        raise InvalidFieldError(name, "must be numeric") from e


def parse_items(raw: Any) -> tuple[LineItem, ...]:
    """
    Parse the ``items`` payload.

    Accepts a list of dicts or a JSON string encoding one (multipart forms
    send items as a string).

    Raises:
        MalformedItemsError: Not a list of objects, or a line lacks a name
            or carries non-numeric amounts.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedItemsError(f"items is not valid JSON: {e.msg}") from e
    if not isinstance(raw, list):
        raise MalformedItemsError("items must be a list")

    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise MalformedItemsError(f"item {index} must be an object")
        name = entry.get("item_name") or entry.get("sku")
        if not name:
            raise MalformedItemsError(f"item {index} has no item_name")
        try:
            items.append(LineItem(
                item_name=str(name),
                sku=entry.get("sku"),
                coa=entry.get("coa"),
                qty=to_decimal(entry.get("qty")),
                price=to_decimal(entry.get("price")),
                disc_item=to_decimal(entry.get("disc_item")),
                disc_item_type=DiscountType.parse(entry.get("disc_item_type")),
                return_unit=to_decimal(entry.get("return_unit")),
            ))
        except ValueError as e:
            raise MalformedItemsError(f"item {index}: {e}") from e
        if items[-1].qty < ZERO or items[-1].return_unit > items[-1].qty:
            raise MalformedItemsError(
                f"item {index}: qty must be non-negative and return_unit at most qty"
            )
    return tuple(items)


def normalize_tags(raw: Any) -> list[str]:
    """Comma-separated string or list -> list of trimmed, non-empty tags."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        parts = [str(p) for p in raw]
    else:
        raise InvalidFieldError("tags", "must be a string or a list")
    seen: list[str] = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def normalize_attachments(raw: Any) -> list[str]:
    """
    Attachment references as stored paths.

    Each entry is a path string, or a dict with ``path`` and an optional
    ``content_type`` that must be an allowed type.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, dict)):
        raw = [raw]
    paths = []
    for entry in raw:
        if isinstance(entry, dict):
            content_type = entry.get("content_type")
            if content_type is not None and content_type not in ALLOWED_ATTACHMENT_TYPES:
                raise InvalidAttachmentTypeError(content_type)
            path = entry.get("path")
        else:
            path = entry
        if not path:
            raise InvalidFieldError("attachments", "every attachment needs a path")
        paths.append(str(path))
    return paths
