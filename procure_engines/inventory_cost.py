"""
Inventory Cost Engine - monthly moving-average cost ledger.

Pure functions with no I/O.  The service layer loads the latest ledger
position for a stock item and persists the ``LedgerEntryDraft`` returned
here.

Each invoice line produces one ledger row.  Freight and insurance on the
invoice are spread per unit across every item on it.  Running quantity and
stock value are carried forward within a calendar month; by default a new
month opens from zero (``carry_forward=True`` opens it from the latest
prior row instead).

    avg_per_unit = total_stock / total_qty      (0 when total_qty <= 0)

Sales-side consumption (``quantity_sale`` / ``return_sale``) is zero on the
purchase path; the parameters exist so a sales flow can feed the same
ledger.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from procure_engines.tracer import traced_engine
from procure_kernel.domain.values import ZERO, percent_of, safe_divide
from procure_kernel.exceptions import InvalidFieldError
from procure_kernel.logging_config import get_logger

logger = get_logger("engines.inventory_cost")

_ONE = Decimal("1")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    NOMINAL = "nominal"

    @classmethod
    def parse(cls, value: Any) -> DiscountType:
        if isinstance(value, DiscountType):
            return value
        if value in (None, ""):
            return cls.NOMINAL
        for member in cls:
            if str(value).strip().lower() == member.value:
                return member
        raise InvalidFieldError("disc_item_type", "must be 'percentage' or 'nominal'")


@dataclass(frozen=True)
class PurchaseLine:
    """One purchased item on an invoice."""

    stock_name: str
    account_code: str
    qty: Decimal
    price: Decimal
    disc_item: Decimal = ZERO
    disc_item_type: DiscountType = DiscountType.NOMINAL
    return_unit: Decimal = ZERO

    @property
    def net_qty(self) -> Decimal:
        return self.qty - self.return_unit

    @property
    def unit_discount(self) -> Decimal:
        if self.disc_item_type is DiscountType.PERCENTAGE:
            return percent_of(self.price, self.disc_item)
        return self.disc_item


@dataclass(frozen=True)
class LineCost:
    """Cost breakdown of one purchase line."""

    line: PurchaseLine
    freight_share: Decimal
    insurance_share: Decimal
    gross: Decimal
    return_amount: Decimal
    net: Decimal
    nett_purchase: Decimal
    nett_price_item: Decimal


@dataclass(frozen=True)
class LedgerPosition:
    """Running balances of the latest ledger row for a stock item."""

    inventory_date: date
    total_qty: Decimal
    total_stock: Decimal
    avg_per_unit: Decimal
    total_cogs: Decimal = ZERO

    @property
    def period(self) -> tuple[int, int]:
        return (self.inventory_date.year, self.inventory_date.month)


@dataclass(frozen=True)
class LedgerEntryDraft:
    """A ledger row ready to persist."""

    stock_name: str
    inventory_date: date
    quantity_purchase: Decimal
    return_purchase: Decimal
    price_purchase: Decimal
    nett_purchase: Decimal
    nett_price_item: Decimal
    price_sale: Decimal
    quantity_sale: Decimal
    return_sale: Decimal
    total_sale: Decimal
    total_qty: Decimal
    total_stock: Decimal
    avg_per_unit: Decimal
    total_cogs: Decimal
    is_first_in_month: bool

    def position(self) -> LedgerPosition:
        return LedgerPosition(
            inventory_date=self.inventory_date,
            total_qty=self.total_qty,
            total_stock=self.total_stock,
            avg_per_unit=self.avg_per_unit,
            total_cogs=self.total_cogs,
        )


@dataclass(frozen=True)
class StockAdjustment:
    """Corrected balances for the latest row of a month."""

    total_stock: Decimal
    avg_per_unit: Decimal
    nett_delta: Decimal


def allocate_invoice_costs(
    lines: Sequence[PurchaseLine],
    freight_in: Decimal = ZERO,
    insurance: Decimal = ZERO,
) -> list[LineCost]:
    """
    Compute gross, return and net cost for every line of an invoice.

    Freight and insurance are divided by the total quantity across all
    lines, so each unit carries the same share.
    """
    total_qty = sum((line.qty for line in lines), ZERO)
    freight_share = safe_divide(freight_in, total_qty)
    insurance_share = safe_divide(insurance, total_qty)
    landed = freight_share + insurance_share

    costs = []
    for line in lines:
        if line.disc_item_type is DiscountType.PERCENTAGE:
            unit_cost = line.price * (_ONE - line.disc_item / 100) + landed
        else:
            unit_cost = line.price + landed - line.disc_item
        gross = unit_cost * line.qty
        return_amount = unit_cost * line.return_unit
        nett_purchase = (
            line.net_qty * line.price
            - line.unit_discount * line.net_qty
            + freight_share * line.qty
            + insurance_share * line.qty
        )
        costs.append(LineCost(
            line=line,
            freight_share=freight_share,
            insurance_share=insurance_share,
            gross=gross,
            return_amount=return_amount,
            net=gross - return_amount,
            nett_purchase=nett_purchase,
            nett_price_item=safe_divide(nett_purchase, line.net_qty),
        ))
    return costs


def _opening(
    previous: LedgerPosition | None,
    inventory_date: date,
    carry_forward: bool,
) -> tuple[bool, Decimal, Decimal, Decimal]:
    """(is_first_in_month, opening_qty, opening_stock, cogs_to_date)."""
    same_month = previous is not None and previous.period == (
        inventory_date.year, inventory_date.month,
    )
    if same_month:
        return False, previous.total_qty, previous.total_stock, previous.total_cogs
    if carry_forward and previous is not None:
        return True, previous.total_qty, previous.total_stock, ZERO
    return True, ZERO, ZERO, ZERO


def _roll_forward(
    *,
    stock_name: str,
    inventory_date: date,
    quantity_purchase: Decimal,
    return_purchase: Decimal,
    price_purchase: Decimal,
    nett_purchase: Decimal,
    nett_price_item: Decimal,
    previous: LedgerPosition | None,
    carry_forward: bool,
    quantity_sale: Decimal,
    return_sale: Decimal,
) -> LedgerEntryDraft:
    first, opening_qty, opening_stock, cogs_to_date = _opening(
        previous, inventory_date, carry_forward,
    )
    price_sale = price_purchase if first else previous.avg_per_unit
    total_sale = price_sale * (quantity_sale - return_sale)

    total_qty = opening_qty + quantity_purchase - return_purchase - quantity_sale
    total_stock = opening_stock + nett_purchase - total_sale
    avg_per_unit = total_stock / total_qty if total_qty > ZERO else ZERO

    return LedgerEntryDraft(
        stock_name=stock_name,
        inventory_date=inventory_date,
        quantity_purchase=quantity_purchase,
        return_purchase=return_purchase,
        price_purchase=price_purchase,
        nett_purchase=nett_purchase,
        nett_price_item=nett_price_item,
        price_sale=price_sale,
        quantity_sale=quantity_sale,
        return_sale=return_sale,
        total_sale=total_sale,
        total_qty=total_qty,
        total_stock=total_stock,
        avg_per_unit=avg_per_unit,
        total_cogs=cogs_to_date + total_sale,
        is_first_in_month=first,
    )


@traced_engine("inventory_cost", "1.0", fingerprint_fields=("inventory_date",))
def post_purchase(
    *,
    cost: LineCost,
    inventory_date: date,
    previous: LedgerPosition | None,
    carry_forward: bool = False,
    quantity_sale: Decimal = ZERO,
    return_sale: Decimal = ZERO,
) -> LedgerEntryDraft:
    """
    Ledger row for one purchased line.

    Args:
        cost: Output of ``allocate_invoice_costs`` for the line.
        inventory_date: Invoice date; selects the month.
        previous: Latest existing row for the stock item, if any.
        carry_forward: Open a new month from the prior month's balances.
        quantity_sale: Units consumed by sales in this event.
        return_sale: Units returned by customers in this event.
    """
    line = cost.line
    draft = _roll_forward(
        stock_name=line.stock_name,
        inventory_date=inventory_date,
        quantity_purchase=line.qty,
        return_purchase=line.return_unit,
        price_purchase=line.price,
        nett_purchase=cost.nett_purchase,
        nett_price_item=cost.nett_price_item,
        previous=previous,
        carry_forward=carry_forward,
        quantity_sale=quantity_sale,
        return_sale=return_sale,
    )
    logger.info("inventory_purchase_posted", extra={
        "stock_name": draft.stock_name,
        "inventory_date": draft.inventory_date,
        "nett_purchase": str(draft.nett_purchase),
        "total_qty": str(draft.total_qty),
        "total_stock": str(draft.total_stock),
        "avg_per_unit": str(draft.avg_per_unit),
        "first_in_month": draft.is_first_in_month,
    })
    return draft


def reverse_purchase(
    *,
    original: LedgerEntryDraft,
    inventory_date: date,
    previous: LedgerPosition | None,
    carry_forward: bool = False,
) -> LedgerEntryDraft:
    """
    Compensating row that takes a posted purchase back out of the ledger.

    Quantities and cost are negated and rolled forward from the current
    position; earlier rows are left untouched.
    """
    draft = _roll_forward(
        stock_name=original.stock_name,
        inventory_date=inventory_date,
        quantity_purchase=-original.quantity_purchase,
        return_purchase=-original.return_purchase,
        price_purchase=original.price_purchase,
        nett_purchase=-original.nett_purchase,
        nett_price_item=original.nett_price_item,
        previous=previous,
        carry_forward=carry_forward,
        quantity_sale=ZERO,
        return_sale=ZERO,
    )
    logger.info("inventory_purchase_reversed", extra={
        "stock_name": draft.stock_name,
        "nett_purchase": str(draft.nett_purchase),
        "total_qty": str(draft.total_qty),
        "total_stock": str(draft.total_stock),
    })
    return draft


def adjust_stock(latest: LedgerPosition, nett_purchase_delta: Decimal) -> StockAdjustment:
    """Apply a stock-value correction to the latest position of a month."""
    total_stock = latest.total_stock + nett_purchase_delta
    avg = total_stock / latest.total_qty if latest.total_qty > ZERO else ZERO
    return StockAdjustment(
        total_stock=total_stock,
        avg_per_unit=avg,
        nett_delta=nett_purchase_delta,
    )
