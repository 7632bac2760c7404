"""
Module: procure_engines.posting
Responsibility:
    Build balanced journal drafts for payment and approval events.  Each
    builder takes already-computed amounts (TaxEngine output, installment
    outcome, inventory costs) and returns a ``JournalDraft``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The kernel
    ``JournalWriter`` persists the drafts.

Invariants enforced:
    - Every draft returned by this module satisfies
      total_debits == total_credits.  Each builder ends with
      ``assert_balanced()`` so a computation bug fails before any row is
      written.
    - Zero-amount lines are never emitted.

Entry shapes:
    Payment (full or partial):
        Dr payable/prepaid   amount
        Dr VAT-in            ppn
        Cr cash/bank         amount + ppn
        Dr prepaid PPh       pph        (only when pph > 0)
        Cr cash/bank         pph
    Early-payment discount (appended to a payment):
        Dr cash/bank         discount + (ppn - ppn * rate / 100)
        Cr VAT-in            ppn - ppn * rate / 100
        Cr inventory         discount allocated by net quantity
    Billing-order approval:
        Dr prepaid installment   installment_amount
        Dr VAT-in                ppn
        Cr cash/bank             paid_amount
        Cr tax clearing          installment_amount + ppn - paid_amount
    Invoice approval:
        Dr inventory (per line)  net cost
        Cr prepaid installment   each completed down payment
        Cr vendor payable        total net cost - down payments
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from procure_kernel.domain.dtos import JournalDraft, JournalLineSpec
from procure_kernel.domain.values import ZERO, percent_of, round_amount, safe_divide
from procure_kernel.logging_config import get_logger

logger = get_logger("engines.posting")


@dataclass(frozen=True)
class PostingAccounts:
    """Ledger account codes used by the posting builders."""

    vendor_payable: str
    vat_in: str
    cash_bank: str
    prepaid_withholding: str
    prepaid_installment: str
    tax_clearing: str


@dataclass(frozen=True)
class InventoryShare:
    """An inventory account and the quantity it carries for allocation."""

    account_code: str
    net_qty: Decimal
    description: str = ""


@dataclass(frozen=True)
class InventoryDebit:
    """Net cost of one invoice line, debited to its inventory account."""

    account_code: str
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class DiscountPosting:
    """Early-payment discount taken on a payment event."""

    discount_amount: Decimal
    rate: Decimal
    inventory_shares: tuple[InventoryShare, ...]


def allocate_by_quantity(
    amount: Decimal,
    shares: Sequence[InventoryShare],
) -> list[tuple[InventoryShare, Decimal]]:
    """
    Split ``amount`` across ``shares`` in proportion to ``net_qty``.

    Each share is rounded to whole units; the last share takes the
    remainder so the parts always sum to ``amount``.
    """
    if not shares:
        return []
    total_qty = sum((s.net_qty for s in shares), ZERO)
    allocated: list[tuple[InventoryShare, Decimal]] = []
    running = ZERO
    for share in shares[:-1]:
        part = round_amount(amount * safe_divide(share.net_qty, total_qty))
        allocated.append((share, part))
        running += part
    allocated.append((shares[-1], amount - running))
    return allocated


def _discount_lines(
    discount: DiscountPosting,
    ppn: Decimal,
    accounts: PostingAccounts,
) -> list[JournalLineSpec]:
    # VAT-in is reduced by ppn less its discount-rate share; cash takes both legs
    vat_reduction = ppn - round_amount(percent_of(ppn, discount.rate))
    lines = [
        JournalLineSpec.dr(
            accounts.cash_bank,
            discount.discount_amount + vat_reduction,
            "Early payment discount",
        ),
        JournalLineSpec.cr(accounts.vat_in, vat_reduction, "VAT on early payment discount"),
    ]
    if discount.inventory_shares:
        for share, part in allocate_by_quantity(
            discount.discount_amount, discount.inventory_shares
        ):
            lines.append(JournalLineSpec.cr(
                share.account_code, part, share.description or "Early payment discount",
            ))
    else:
        lines.append(JournalLineSpec.cr(
            accounts.vendor_payable, discount.discount_amount, "Early payment discount",
        ))
    return lines


def _finish(
    transaction_number: str,
    entry_date: date,
    source_kind: str,
    lines: list[JournalLineSpec],
    description: str,
) -> JournalDraft:
    draft = JournalDraft(
        transaction_number=transaction_number,
        entry_date=entry_date,
        source_kind=source_kind,
        lines=tuple(line for line in lines if not line.is_zero),
        description=description,
    )
    draft.assert_balanced()
    logger.debug("journal_draft_built", extra={
        "transaction_number": transaction_number,
        "source_kind": source_kind,
        "line_count": len(draft.lines),
        "total_debits": str(draft.total_debits),
    })
    return draft


def build_payment_entry(
    *,
    transaction_number: str,
    entry_date: date,
    amount: Decimal,
    ppn: Decimal,
    pph: Decimal,
    debit_account: str,
    accounts: PostingAccounts,
    source_kind: str = "billing_invoice",
    discount: DiscountPosting | None = None,
    description: str = "",
) -> JournalDraft:
    """
    Journal for one payment event (full or partial).

    ``debit_account`` is the vendor or prepaid account the payment settles.
    Callers pass ``pph`` only when withholding is due on this event.
    """
    lines = [
        JournalLineSpec.dr(debit_account, amount, description),
        JournalLineSpec.dr(accounts.vat_in, ppn, "VAT in"),
        JournalLineSpec.cr(accounts.cash_bank, amount + ppn, description),
    ]
    if pph > ZERO:
        lines.append(JournalLineSpec.dr(accounts.prepaid_withholding, pph, "Prepaid withholding tax"))
        lines.append(JournalLineSpec.cr(accounts.cash_bank, pph, "Withholding tax"))
    if discount is not None and discount.discount_amount > ZERO:
        lines.extend(_discount_lines(discount, ppn, accounts))
    return _finish(transaction_number, entry_date, source_kind, lines, description)


def build_billing_order_entry(
    *,
    transaction_number: str,
    entry_date: date,
    installment_amount: Decimal,
    ppn: Decimal,
    paid_amount: Decimal,
    accounts: PostingAccounts,
    description: str = "",
) -> JournalDraft:
    """
    Journal for a down payment recorded when a billing order is approved.

    The clearing leg absorbs the difference between the gross legs and the
    cash actually paid; it is a debit when negative.
    """
    clearing = installment_amount + ppn - paid_amount
    lines = [
        JournalLineSpec.dr(accounts.prepaid_installment, installment_amount, description),
        JournalLineSpec.dr(accounts.vat_in, ppn, "VAT in"),
        JournalLineSpec.cr(accounts.cash_bank, paid_amount, description),
        JournalLineSpec.cr(accounts.tax_clearing, clearing, "Tax clearing"),
    ]
    return _finish(transaction_number, entry_date, "billing_order", lines, description)


def build_invoice_approval_entry(
    *,
    transaction_number: str,
    entry_date: date,
    inventory_debits: Sequence[InventoryDebit],
    down_payments: Sequence[Decimal],
    accounts: PostingAccounts,
    description: str = "",
) -> JournalDraft:
    """
    Journal for an approved purchase invoice.

    Inventory is debited per line.  Down payments already recorded on
    completed billing orders are released from the prepaid installment
    account; the vendor is credited with the rest.
    """
    lines = [
        JournalLineSpec.dr(d.account_code, d.amount, d.description) for d in inventory_debits
    ]
    total_inventory = sum((d.amount for d in inventory_debits), ZERO)
    total_down = sum(down_payments, ZERO)
    for down in down_payments:
        lines.append(JournalLineSpec.cr(
            accounts.prepaid_installment, down, "Down payment applied",
        ))
    lines.append(JournalLineSpec.cr(
        accounts.vendor_payable, total_inventory - total_down, description,
    ))
    return _finish(transaction_number, entry_date, "invoice", lines, description)
