"""
Procurement Module (``procure_modules.procurement``).

Responsibility
--------------
Document lifecycle for the purchase side of the back office: requests,
orders, quotations, offers, shipments and invoices.  Approval creates the
downstream document or billing record; approving an invoice also posts
the inventory ledger and the approval journal.

Architecture position
---------------------
**Modules layer** -- domain models, workflows, account config and the
``ProcurementService`` facade (imported from ``.service``).

Invariants enforced
-------------------
* Document numbers are unique per kind.
* Status changes follow ``WORKFLOWS``; ``Completed`` and ``Rejected`` are
  terminal except through the edit/delete cascade.
* Invoice approval is atomic with its journal entry.
"""

from procure_modules.procurement.config import AccountConfig
from procure_modules.procurement.models import (
    Document,
    DocumentKind,
    DocumentStatus,
    LineItem,
    format_document_number,
)
from procure_modules.procurement.workflows import (
    CASCADE_RULES,
    WORKFLOWS,
)

__all__ = [
    "AccountConfig",
    "Document",
    "DocumentKind",
    "DocumentStatus",
    "LineItem",
    "format_document_number",
    "WORKFLOWS",
    "CASCADE_RULES",
]
