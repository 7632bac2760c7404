"""
Billing Module (``procure_modules.billing``).

Billing orders carry the down payment agreed on a request; billing
invoices track installment payments against an approved invoice.
``BillingService`` (in ``.service``) approves payments.
"""

from procure_modules.billing.models import BillingRecord, Installment, PaymentResult

__all__ = [
    "BillingRecord",
    "Installment",
    "PaymentResult",
]
