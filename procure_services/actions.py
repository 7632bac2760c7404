"""
procure_services.actions -- Table-driven action dispatch.

Responsibility:
    Routes a ``(kind, verb)`` pair to its handler, after authenticating the
    caller and checking the roles the action requires.  Every outcome is
    returned as an ``ActionResult`` carrying the HTTP intent for the thin
    API layer: data on success, an error message and status on failure.

Architecture position:
    Services -- the outermost layer of the core.  Opens one session per
    call and builds the module services over it.  Routing is a lookup in
    ``ACTIONS``; adding an action means adding a row, not a branch.

Invariants enforced:
    - Authentication happens before any store access; an unknown action or
      a missing role never opens a session.
    - ``ProcureError`` maps to its own ``http_status``; any other
      ``SQLAlchemyError`` becomes ``StoreError`` (500).  Unexpected
      exceptions propagate.
    - Activity logging is best-effort and never changes the result.

Failure modes:
    - ``UnknownActionError`` (400) -- no row for ``(kind, verb)``.
    - ``MissingTokenError`` / ``InvalidTokenError`` (401).
    - ``AuthorizationError`` (403).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.roles import Role, require_roles
from procure_kernel.exceptions import (
    InvalidFieldError,
    MissingFieldError,
    ProcureError,
    StoreError,
    UnknownActionError,
)
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.services.activity_log import ActivityLogSink
from procure_modules.billing.service import BillingService
from procure_modules.inventory.service import InventoryService
from procure_modules.procurement.config import AccountConfig
from procure_modules.procurement.models import DocumentKind, parse_amount, parse_date
from procure_modules.procurement.service import ProcurementService
from procure_services.auth import AuthProvider, Identity

logger = get_logger("services.actions")

INVENTORY = "inventory"


class Verb(str, Enum):
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    GET = "get"
    LIST = "list"
    ADJUST = "adjust"

    @property
    def http_method(self) -> str:
        return _HTTP_METHODS[self]


_HTTP_METHODS = {
    Verb.ADD: "POST",
    Verb.EDIT: "PUT",
    Verb.DELETE: "DELETE",
    Verb.APPROVE: "POST",
    Verb.REJECT: "POST",
    Verb.GET: "GET",
    Verb.LIST: "GET",
    Verb.ADJUST: "POST",
}


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one dispatched action."""

    success: bool
    http_status: int
    data: Any = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, data: Any, http_status: int = 200) -> ActionResult:
        return cls(success=True, http_status=http_status, data=data)

    @classmethod
    def failure(cls, exc: ProcureError) -> ActionResult:
        return cls(
            success=False,
            http_status=exc.http_status,
            error=str(exc),
            error_code=exc.code,
        )


@dataclass
class ActionContext:
    """Services and caller handed to a handler."""

    identity: Identity
    procurement: ProcurementService
    billing: BillingService
    inventory: InventoryService

    @property
    def actor_id(self) -> UUID:
        return self.identity.user_id


Handler = Callable[[ActionContext, dict[str, Any]], Any]


@dataclass(frozen=True)
class ActionSpec:
    """One row of the dispatch table."""

    handler: Handler
    required_roles: frozenset[Role] = frozenset()
    success_status: int = 200


# -----------------------------------------------------------------------------
# Payload helpers
# -----------------------------------------------------------------------------


def _require_id(payload: dict[str, Any], name: str = "id") -> UUID:
    raw = payload.get(name)
    if raw in (None, ""):
        raise MissingFieldError([name])
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError as e:
        raise InvalidFieldError(name, "must be a UUID") from e


def _int_field(payload: dict[str, Any], name: str, default: int) -> int:
    raw = payload.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise InvalidFieldError(name, "must be an integer") from e
    if value < 0:
        raise InvalidFieldError(name, "must not be negative")
    return value


def _optional_version(payload: dict[str, Any]) -> int | None:
    if payload.get("version") in (None, ""):
        return None
    return _int_field(payload, "version", 0)


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------


def _document_handlers(kind: DocumentKind) -> dict[Verb, Handler]:
    def add(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.procurement.add_document(kind, payload, ctx.actor_id)

    def edit(ctx: ActionContext, payload: dict[str, Any]):
        document_id = _require_id(payload)
        changes = {k: v for k, v in payload.items() if k != "id"}
        return ctx.procurement.edit_document(kind, document_id, changes, ctx.actor_id)

    def delete(ctx: ActionContext, payload: dict[str, Any]):
        document_id = _require_id(payload)
        ctx.procurement.delete_document(kind, document_id, ctx.actor_id)
        return {"id": document_id}

    def approve(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.procurement.approve_document(kind, _require_id(payload), ctx.actor_id)

    def reject(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.procurement.reject_document(kind, _require_id(payload), ctx.actor_id)

    def get(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.procurement.get_document(kind, _require_id(payload))

    def list_(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.procurement.list_documents(
            kind,
            status=payload.get("status"),
            search=payload.get("search"),
            offset=_int_field(payload, "offset", 0),
            limit=_int_field(payload, "limit", 50),
        )

    return {
        Verb.ADD: add,
        Verb.EDIT: edit,
        Verb.DELETE: delete,
        Verb.APPROVE: approve,
        Verb.REJECT: reject,
        Verb.GET: get,
        Verb.LIST: list_,
    }


def _approve_billing_order(ctx: ActionContext, payload: dict[str, Any]):
    return ctx.billing.approve_billing_order(
        _require_id(payload),
        ctx.actor_id,
        entry_date=parse_date("date", payload.get("date")),
        expected_version=_optional_version(payload),
    )


def _approve_billing_invoice(ctx: ActionContext, payload: dict[str, Any]):
    if payload.get("paid_amount") in (None, ""):
        raise MissingFieldError(["paid_amount"])
    return ctx.billing.record_invoice_payment(
        _require_id(payload),
        parse_amount("paid_amount", payload["paid_amount"]),
        ctx.actor_id,
        payment_method=payload.get("payment_method"),
        payment_date=parse_date("payment_date", payload.get("payment_date")),
        expected_version=_optional_version(payload),
    )


def _billing_reader(kind: DocumentKind) -> dict[Verb, Handler]:
    def get(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.billing.get_billing_record(_require_id(payload))

    def list_(ctx: ActionContext, payload: dict[str, Any]):
        return ctx.billing.list_billing_records(
            kind,
            status=payload.get("status"),
            offset=_int_field(payload, "offset", 0),
            limit=_int_field(payload, "limit", 50),
        )

    return {Verb.GET: get, Verb.LIST: list_}


def _adjust_inventory(ctx: ActionContext, payload: dict[str, Any]):
    missing = [f for f in ("stock_name", "month", "nett_purchase") if payload.get(f) in (None, "")]
    if missing:
        raise MissingFieldError(missing)
    period = str(payload["month"])
    try:
        year, month = (int(p) for p in period.split("-")[:2])
        date(year, month, 1)
    except ValueError as e:
        raise InvalidFieldError("month", "must be YYYY-MM") from e
    row = ctx.inventory.adjust_stock(
        payload["stock_name"],
        year,
        month,
        parse_amount("nett_purchase", payload["nett_purchase"]),
        ctx.actor_id,
    )
    return row.position()


# -----------------------------------------------------------------------------
# Dispatch table
# -----------------------------------------------------------------------------

_EDITORS = frozenset({Role.ADMIN, Role.MANAGER, Role.PROCUREMENT})
_APPROVERS = frozenset({Role.ADMIN, Role.MANAGER})
_SHIPMENT_EDITORS = frozenset({Role.ADMIN, Role.MANAGER, Role.LOGISTICS, Role.WAREHOUSE})
_FINANCE = frozenset({Role.ADMIN, Role.FINANCE})
_STOCK_KEEPERS = frozenset({Role.ADMIN, Role.FINANCE, Role.WAREHOUSE})

_APPROVER_OVERRIDES = {
    DocumentKind.SHIPMENT: _SHIPMENT_EDITORS,
    DocumentKind.INVOICE: _APPROVERS | _FINANCE,
}

_DOCUMENT_KINDS = (
    DocumentKind.REQUEST,
    DocumentKind.ORDER,
    DocumentKind.QUOTATION,
    DocumentKind.OFFER,
    DocumentKind.SHIPMENT,
    DocumentKind.INVOICE,
)


def _build_actions() -> dict[tuple[str, Verb], ActionSpec]:
    actions: dict[tuple[str, Verb], ActionSpec] = {}
    for kind in _DOCUMENT_KINDS:
        editors = _SHIPMENT_EDITORS if kind is DocumentKind.SHIPMENT else _EDITORS
        approvers = _APPROVER_OVERRIDES.get(kind, _APPROVERS)
        roles = {
            Verb.ADD: editors,
            Verb.EDIT: editors,
            Verb.DELETE: editors,
            Verb.APPROVE: approvers,
            Verb.REJECT: approvers,
            Verb.GET: frozenset(),
            Verb.LIST: frozenset(),
        }
        for verb, handler in _document_handlers(kind).items():
            actions[(kind.value, verb)] = ActionSpec(
                handler,
                roles[verb],
                success_status=201 if verb is Verb.ADD else 200,
            )

    for kind in (DocumentKind.BILLING_ORDER, DocumentKind.BILLING_INVOICE):
        for verb, handler in _billing_reader(kind).items():
            actions[(kind.value, verb)] = ActionSpec(handler)
    actions[(DocumentKind.BILLING_ORDER.value, Verb.APPROVE)] = ActionSpec(
        _approve_billing_order, _FINANCE,
    )
    actions[(DocumentKind.BILLING_INVOICE.value, Verb.APPROVE)] = ActionSpec(
        _approve_billing_invoice, _FINANCE,
    )
    actions[(INVENTORY, Verb.ADJUST)] = ActionSpec(_adjust_inventory, _STOCK_KEEPERS)
    return actions


ACTIONS: dict[tuple[str, Verb], ActionSpec] = _build_actions()


def _key(
    kind: DocumentKind | str,
    verb: Verb | str,
    actions: dict[tuple[str, Verb], ActionSpec],
) -> tuple[str, Verb]:
    kind_value = kind.value if isinstance(kind, Enum) else str(kind)
    try:
        verb_value = Verb(verb)
    except ValueError as e:
        raise UnknownActionError(kind_value, str(verb)) from e
    if (kind_value, verb_value) not in actions:
        raise UnknownActionError(kind_value, verb_value.value)
    return kind_value, verb_value


class ActionDispatcher:
    """Authenticates, authorizes and routes one action per call.

    Contract:
        ``dispatch`` never raises ``ProcureError`` or ``SQLAlchemyError``;
        both come back as a failed ``ActionResult``.

    Usage:
        dispatcher = ActionDispatcher(get_session_factory(), auth, activity_log=sink)
        result = dispatcher.dispatch("invoice", "approve", token, {"id": invoice_id})
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        auth: AuthProvider,
        accounts: AccountConfig | None = None,
        clock: Clock | None = None,
        activity_log: ActivityLogSink | None = None,
        carry_forward: bool = False,
        actions: dict[tuple[str, Verb], ActionSpec] | None = None,
    ):
        self._session_factory = session_factory
        self._auth = auth
        self._accounts = accounts or AccountConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._activity_log = activity_log
        self._carry_forward = carry_forward
        self._actions = actions if actions is not None else ACTIONS

    def _context(self, session: Session, identity: Identity) -> ActionContext:
        return ActionContext(
            identity=identity,
            procurement=ProcurementService(
                session, self._accounts, clock=self._clock, carry_forward=self._carry_forward,
            ),
            billing=BillingService(session, self._accounts, clock=self._clock),
            inventory=InventoryService(session, carry_forward=self._carry_forward),
        )

    def _record_activity(self, identity: Identity, kind: str, verb: Verb) -> None:
        if self._activity_log is None:
            return
        self._activity_log.record(
            user_id=identity.user_id,
            endpoint_name=f"{kind}.{verb.value}",
            http_method=verb.http_method,
            timestamp=self._clock.now(),
        )

    def dispatch(
        self,
        kind: DocumentKind | str,
        verb: Verb | str,
        token: str | None,
        payload: dict[str, Any] | None = None,
    ) -> ActionResult:
        payload = dict(payload or {})
        kind_label = getattr(kind, "value", kind)
        verb_label = getattr(verb, "value", verb)
        with LogContext.bind(correlation_id=uuid4(), action=f"{kind_label}.{verb_label}"):
            try:
                kind_value, verb_value = _key(kind, verb, self._actions)
                spec = self._actions[(kind_value, verb_value)]
                identity = self._auth.authenticate(token)
                require_roles(identity.roles, spec.required_roles, f"{verb_value.value} {kind_value}")
            except ProcureError as exc:
                logger.warning("action_refused", extra={
                    "kind": kind_label,
                    "verb": verb_label,
                    "error_code": exc.code,
                })
                return ActionResult.failure(exc)

            with LogContext.bind(actor_id=identity.user_id):
                self._record_activity(identity, kind_value, verb_value)
                session = self._session_factory()
                try:
                    data = spec.handler(self._context(session, identity), payload)
                except ProcureError as exc:
                    logger.info("action_failed", extra={
                        "kind": kind_value,
                        "verb": verb_value.value,
                        "error_code": exc.code,
                        "http_status": exc.http_status,
                    })
                    return ActionResult.failure(exc)
                except SQLAlchemyError as exc:
                    logger.error("action_store_error", exc_info=True, extra={
                        "kind": kind_value,
                        "verb": verb_value.value,
                    })
                    return ActionResult.failure(
                        StoreError(f"{verb_value.value} {kind_value}", str(getattr(exc, "orig", None) or exc)),
                    )
                finally:
                    session.close()

                logger.info("action_completed", extra={
                    "kind": kind_value,
                    "verb": verb_value.value,
                })
                return ActionResult.ok(data, spec.success_status)
