"""
Module: procure_engines
Responsibility:
    Pure calculation engines for the procurement ledger: tax figures,
    installment sequencing, journal line construction and moving-average
    inventory cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procure_kernel (domain values, DTOs, exceptions,
    logging) and sibling engine modules.  MUST NOT import procure_modules or
    procure_services.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are passed in.
    - Decimal-only arithmetic; rounding is half-up to whole units.
    - Every journal draft leaving ``posting`` is balanced.

Usage:
    from procure_engines.tax import TaxMethod, compute_tax
    from procure_engines.installments import InstallmentLedger, PaymentMethod
    from procure_engines.posting import build_payment_entry
    from procure_engines.inventory_cost import allocate_invoice_costs, post_purchase
"""

from procure_engines.installments import (
    DiscountEvaluation,
    DiscountTerms,
    InstallmentEntry,
    InstallmentLabel,
    InstallmentLedger,
    InstallmentOutcome,
    PaymentMethod,
    evaluate_discount,
)
from procure_engines.inventory_cost import (
    DiscountType,
    LedgerEntryDraft,
    LedgerPosition,
    LineCost,
    PurchaseLine,
    adjust_stock,
    allocate_invoice_costs,
    post_purchase,
    reverse_purchase,
)
from procure_engines.posting import (
    DiscountPosting,
    InventoryDebit,
    InventoryShare,
    PostingAccounts,
    build_billing_order_entry,
    build_invoice_approval_entry,
    build_payment_entry,
)
from procure_engines.tax import (
    PAID_AMOUNT_POLICY,
    DocumentTotals,
    TaxComputation,
    TaxMethod,
    VatRegime,
    compute_document_totals,
    compute_tax,
)
from procure_engines.tracer import traced_engine

__all__ = [
    "PAID_AMOUNT_POLICY",
    "DiscountEvaluation",
    "DiscountPosting",
    "DiscountTerms",
    "DiscountType",
    "DocumentTotals",
    "InstallmentEntry",
    "InstallmentLabel",
    "InstallmentLedger",
    "InstallmentOutcome",
    "InventoryDebit",
    "InventoryShare",
    "LedgerEntryDraft",
    "LedgerPosition",
    "LineCost",
    "PaymentMethod",
    "PostingAccounts",
    "PurchaseLine",
    "TaxComputation",
    "TaxMethod",
    "VatRegime",
    "adjust_stock",
    "allocate_invoice_costs",
    "build_billing_order_entry",
    "build_invoice_approval_entry",
    "build_payment_entry",
    "compute_document_totals",
    "compute_tax",
    "evaluate_discount",
    "post_purchase",
    "reverse_purchase",
    "traced_engine",
]
