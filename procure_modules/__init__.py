"""
Procure Modules.

Thin orchestration layers over the Procure Kernel and Engines.
Each module contains:
- Domain models (the nouns)
- ORM persistence models
- Workflows (state machines)
- A service that owns the transaction boundary

Modules:
- Procurement: Requests, orders, quotations, offers, shipments, invoices
- Billing: Billing orders (down payments), billing invoices (installments)
- Inventory: Moving-average cost ledger, stock master

Actual calculation logic lives in the engines.
"""

from procure_modules import billing, inventory, procurement

__all__ = [
    "procurement",
    "billing",
    "inventory",
]
