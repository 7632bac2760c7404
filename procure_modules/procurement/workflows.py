"""
Procurement Workflows.

Status state machines for every document kind (DocumentLifecycle).
``Completed`` and ``Rejected`` are terminal; rejection is only possible
from ``Pending`` or ``Received``.
"""

from dataclasses import dataclass

from procure_kernel.logging_config import get_logger
from procure_modules.procurement.models import DocumentKind, DocumentStatus

logger = get_logger("modules.procurement.workflows")

PENDING = DocumentStatus.PENDING.value
COMPLETED = DocumentStatus.COMPLETED.value
REJECTED = DocumentStatus.REJECTED.value
UNPAID = DocumentStatus.UNPAID.value
RECEIVED = DocumentStatus.RECEIVED.value


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    creates: DocumentKind | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = (COMPLETED, REJECTED)

    def transition(self, from_state: str, action: str) -> Transition | None:
        """The transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None


def _approve_reject(name: str, description: str, **approve_kwargs) -> Workflow:
    return Workflow(
        name=name,
        description=description,
        initial_state=PENDING,
        states=(PENDING, COMPLETED, REJECTED),
        transitions=(
            Transition(PENDING, COMPLETED, action="approve", **approve_kwargs),
            Transition(PENDING, REJECTED, action="reject"),
        ),
    )


REQUEST_WORKFLOW = _approve_reject(
    "request", "Purchase request lifecycle", creates=DocumentKind.ORDER,
)

ORDER_WORKFLOW = _approve_reject("order", "Purchase order lifecycle")

QUOTATION_WORKFLOW = _approve_reject(
    "quotation", "Quotation lifecycle", creates=DocumentKind.OFFER,
)

OFFER_WORKFLOW = _approve_reject("offer", "Vendor offer lifecycle")

INVOICE_WORKFLOW = _approve_reject(
    "invoice",
    "Purchase invoice lifecycle",
    creates=DocumentKind.BILLING_INVOICE,
)

SHIPMENT_WORKFLOW = Workflow(
    name="shipment",
    description="Shipment lifecycle",
    initial_state=PENDING,
    states=(PENDING, RECEIVED, COMPLETED, REJECTED),
    transitions=(
        Transition(PENDING, RECEIVED, action="approve"),
        Transition(RECEIVED, COMPLETED, action="approve"),
        Transition(PENDING, REJECTED, action="reject"),
        Transition(RECEIVED, REJECTED, action="reject"),
    ),
)

BILLING_ORDER_WORKFLOW = Workflow(
    name="billing_order",
    description="Down payment sent to the ledger",
    initial_state=PENDING,
    states=(PENDING, COMPLETED),
    transitions=(
        Transition(PENDING, COMPLETED, action="approve"),
    ),
    terminal_states=(COMPLETED,),
)

BILLING_INVOICE_WORKFLOW = Workflow(
    name="billing_invoice",
    description="Invoice payment in one or more installments",
    initial_state=UNPAID,
    states=(UNPAID, PENDING, COMPLETED),
    transitions=(
        Transition(UNPAID, COMPLETED, action="settle"),
        Transition(UNPAID, PENDING, action="pay_partial"),
        Transition(PENDING, PENDING, action="pay_partial"),
        Transition(PENDING, COMPLETED, action="settle"),
    ),
    terminal_states=(COMPLETED,),
)

WORKFLOWS: dict[DocumentKind, Workflow] = {
    DocumentKind.REQUEST: REQUEST_WORKFLOW,
    DocumentKind.ORDER: ORDER_WORKFLOW,
    DocumentKind.QUOTATION: QUOTATION_WORKFLOW,
    DocumentKind.OFFER: OFFER_WORKFLOW,
    DocumentKind.SHIPMENT: SHIPMENT_WORKFLOW,
    DocumentKind.INVOICE: INVOICE_WORKFLOW,
    DocumentKind.BILLING_ORDER: BILLING_ORDER_WORKFLOW,
    DocumentKind.BILLING_INVOICE: BILLING_INVOICE_WORKFLOW,
}

# Cascade rules when a Completed ancestor is edited or deleted.
# kind -> (dependent kind, statuses that block the change)
CASCADE_RULES: dict[DocumentKind, tuple[tuple[DocumentKind, tuple[str, ...]], ...]] = {
    DocumentKind.REQUEST: (
        (DocumentKind.ORDER, ()),
        (DocumentKind.BILLING_ORDER, (COMPLETED,)),
    ),
    DocumentKind.QUOTATION: (
        (DocumentKind.OFFER, ()),
    ),
    DocumentKind.INVOICE: (
        (DocumentKind.BILLING_INVOICE, (COMPLETED, PENDING)),
    ),
}

# Kinds whose edit (not only delete) triggers the cascade and resets status.
EDIT_CASCADE_KINDS = frozenset({DocumentKind.REQUEST, DocumentKind.INVOICE})

logger.info(
    "procurement_workflows_registered",
    extra={
        "workflows": sorted(w.name for w in WORKFLOWS.values()),
        "transition_count": sum(len(w.transitions) for w in WORKFLOWS.values()),
    },
)
