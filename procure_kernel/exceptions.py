"""
Typed Exception Hierarchy for the procurement ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the action dispatcher, tests, batch jobs) must react to failures by
type, not by parsing message strings.  Every exception therefore carries:

  1. A ``code`` class attribute (machine-readable, API-safe)
  2. An ``http_status`` class attribute (the HTTP intent the thin API layer
     should answer with)
  3. Structured instance attributes (document ids, amounts, labels)

Example:

    try:
        billing.record_invoice_payment(...)
    except ExceedsRemainingBalanceError as e:
        api_response(code=e.code, remaining=e.remaining)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcureError (base)
    |
    +-- AuthError                          401
    |   +-- MissingTokenError
    |   +-- InvalidTokenError
    |
    +-- AuthorizationError                 403
    |
    +-- ValidationError                    400
    |   +-- MissingFieldError
    |   +-- InvalidFieldError
    |   +-- InvalidTaxMethodError
    |   +-- MalformedItemsError
    |   +-- InvalidAttachmentTypeError
    |   +-- UnknownActionError
    |   +-- MinimumDownPaymentError
    |   +-- FullPaymentRequiredError
    |   +-- FullPaymentMismatchError
    |
    +-- NotFoundError                      404
    |   +-- DocumentNotFoundError
    |   +-- BillingRecordNotFoundError
    |   +-- InvalidStatusTransitionError
    |   +-- InventoryPeriodNotFoundError
    |
    +-- ConflictError                      400 / 404 / 409
    |   +-- DuplicateDocumentNumberError   400
    |   +-- AlreadyFullyPaidError          404 (inherited behavior)
    |   +-- ExceedsRemainingBalanceError   400
    |   +-- InstallmentCapExceededError    400
    |   +-- FinalInstallmentMismatchError  400
    |   +-- DependentDocumentLockedError   400
    |   +-- OptimisticLockError            409
    |
    +-- PostingError                       500
    |   +-- UnbalancedEntryError
    |
    +-- StoreError                         500

Some conflicts answer 404 instead of 409.  That mirrors the behavior API
clients already depend on and is kept on purpose.
"""

from decimal import Decimal


class ProcureError(Exception):
    """
    Base exception for all procurement ledger errors.

    All subclasses must define ``code`` and ``http_status``.
    """

    code: str = "PROCURE_ERROR"
    http_status: int = 500


# Authentication


class AuthError(ProcureError):
    """Missing or invalid bearer token."""

    code: str = "AUTH_ERROR"
    http_status: int = 401


class MissingTokenError(AuthError):
    """No authorization header / token supplied."""

    code: str = "MISSING_TOKEN"

    def __init__(self):
        super().__init__("No authorization header provided")


class InvalidTokenError(AuthError):
    """Token rejected by the auth provider."""

    code: str = "INVALID_TOKEN"

    def __init__(self, reason: str = "Invalid or expired token"):
        self.reason = reason
        super().__init__(reason)


class AuthorizationError(ProcureError):
    """Caller does not hold any of the roles required for an action."""

    code: str = "ACCESS_DENIED"
    http_status: int = 403

    def __init__(self, action: str, required: frozenset, granted: frozenset):
        self.action = action
        self.required = sorted(r.value for r in required)
        self.granted = sorted(r.value for r in granted)
        super().__init__(
            f"Access denied for {action}: requires one of {self.required}"
        )


# Validation


class ValidationError(ProcureError):
    """Base exception for malformed or missing input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class MissingFieldError(ValidationError):
    """One or more required fields are absent."""

    code: str = "MISSING_FIELD"

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class InvalidFieldError(ValidationError):
    """A field is present but its value cannot be used."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for {field}: {reason}")


class InvalidTaxMethodError(ValidationError):
    """Tax method is neither 'Before Calculate' nor 'After Calculate'."""

    code: str = "INVALID_TAX_METHOD"

    def __init__(self, tax_method: str | None):
        self.tax_method = tax_method
        super().__init__(f"Unknown tax calculation method: {tax_method!r}")


class MalformedItemsError(ValidationError):
    """Line-item payload could not be parsed."""

    code: str = "MALFORMED_ITEMS"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid items payload: {reason}")


class InvalidAttachmentTypeError(ValidationError):
    """Attachment content type is not accepted."""

    code: str = "INVALID_ATTACHMENT_TYPE"

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"File type not allowed: {content_type}")


class UnknownActionError(ValidationError):
    """No handler is registered for a (kind, verb) pair."""

    code: str = "UNKNOWN_ACTION"

    def __init__(self, kind: str, verb: str):
        self.kind = kind
        self.verb = verb
        super().__init__(f"Unknown action: {verb} {kind}")


class MinimumDownPaymentError(ValidationError):
    """First partial payment is below the minimum down payment."""

    code: str = "MINIMUM_DOWN_PAYMENT"

    def __init__(self, paid_amount: Decimal, minimum: Decimal):
        self.paid_amount = str(paid_amount)
        self.minimum = str(minimum)
        super().__init__(
            f"First payment {paid_amount} is below the minimum down payment {minimum}"
        )


class FullPaymentRequiredError(ValidationError):
    """A partial first payment covers the whole grand total."""

    code: str = "FULL_PAYMENT_REQUIRED"

    def __init__(self, grand_total: Decimal):
        self.grand_total = str(grand_total)
        super().__init__(
            "Payment equals the grand total; use Full Payment instead of Partial Payment"
        )


class FullPaymentMismatchError(ValidationError):
    """A full payment does not equal the grand total."""

    code: str = "FULL_PAYMENT_MISMATCH"

    def __init__(self, paid_amount: Decimal, grand_total: Decimal):
        self.paid_amount = str(paid_amount)
        self.grand_total = str(grand_total)
        super().__init__(
            f"Full payment must equal the grand total {grand_total}, got {paid_amount}"
        )


# Not found


class NotFoundError(ProcureError):
    """Base exception for absent records."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class DocumentNotFoundError(NotFoundError):
    """Document with given id does not exist for its kind."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, kind: str, document_id: str):
        self.kind = kind
        self.document_id = str(document_id)
        super().__init__(f"{kind.capitalize()} not found: {document_id}")


class BillingRecordNotFoundError(NotFoundError):
    """Billing record absent."""

    code: str = "BILLING_RECORD_NOT_FOUND"

    def __init__(self, billing_id: str):
        self.billing_id = str(billing_id)
        super().__init__(f"Billing record not found: {billing_id}")


class InvalidStatusTransitionError(NotFoundError):
    """
    Document exists but is not in a state that allows the action.

    Answered as 404 (the record "in that status" was not found).
    """

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, kind: str, document_id: str, status: str, action: str):
        self.kind = kind
        self.document_id = str(document_id)
        self.status = status
        self.action = action
        super().__init__(
            f"{kind.capitalize()} {document_id} in status {status!r} cannot {action}"
        )


class InventoryPeriodNotFoundError(NotFoundError):
    """No inventory ledger row exists for the stock item in the month."""

    code: str = "INVENTORY_PERIOD_NOT_FOUND"

    def __init__(self, stock_name: str, period: str):
        self.stock_name = stock_name
        self.period = period
        super().__init__(f"No inventory ledger entry for {stock_name} in {period}")


# Conflicts


class ConflictError(ProcureError):
    """Base exception for business-rule conflicts."""

    code: str = "CONFLICT"
    http_status: int = 400


class DuplicateDocumentNumberError(ConflictError):
    """Document number already used for this kind."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, kind: str, number: int):
        self.kind = kind
        self.number = number
        super().__init__(f"{kind.capitalize()} number {number} already exists")


class AlreadyFullyPaidError(ConflictError):
    """Billing record already has a final or full payment."""

    code: str = "ALREADY_FULLY_PAID"
    http_status: int = 404

    def __init__(self, billing_id: str):
        self.billing_id = str(billing_id)
        super().__init__(f"Billing record {billing_id} is already fully paid")


class ExceedsRemainingBalanceError(ConflictError):
    """Payment would exceed the remaining balance."""

    code: str = "EXCEEDS_REMAINING_BALANCE"

    def __init__(self, paid_amount: Decimal, remaining: Decimal):
        self.paid_amount = str(paid_amount)
        self.remaining = str(remaining)
        super().__init__(
            f"Payment {paid_amount} exceeds the remaining balance {remaining}"
        )


class InstallmentCapExceededError(ConflictError):
    """More partial installments than allowed."""

    code: str = "INSTALLMENT_CAP_EXCEEDED"

    def __init__(self, max_partials: int):
        self.max_partials = max_partials
        super().__init__(
            f"Installment limit reached: at most {max_partials} partial payments plus a final payment"
        )


class FinalInstallmentMismatchError(ConflictError):
    """The last allowed installment does not settle the balance exactly."""

    code: str = "FINAL_INSTALLMENT_MISMATCH"

    def __init__(self, paid_amount: Decimal, remaining: Decimal):
        self.paid_amount = str(paid_amount)
        self.remaining = str(remaining)
        super().__init__(
            f"Final installment must equal the remaining balance {remaining}, got {paid_amount}"
        )


class DependentDocumentLockedError(ConflictError):
    """A completed ancestor cannot change because a dependent is paid or in progress."""

    code: str = "DEPENDENT_DOCUMENT_LOCKED"

    def __init__(self, kind: str, document_id: str, dependent_kind: str, dependent_status: str):
        self.kind = kind
        self.document_id = str(document_id)
        self.dependent_kind = dependent_kind
        self.dependent_status = dependent_status
        super().__init__(
            f"Cannot modify {kind} {document_id}: its {dependent_kind} is {dependent_status}"
        )


class OptimisticLockError(ConflictError):
    """Concurrent modification detected on a versioned row."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"
    http_status: int = 409

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Posting


class PostingError(ProcureError):
    """Base exception for journal construction errors."""

    code: str = "POSTING_ERROR"
    http_status: int = 500


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, transaction_number: str, debits: Decimal, credits: Decimal):
        self.transaction_number = transaction_number
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Unbalanced entry {transaction_number}: debits={debits}, credits={credits}"
        )


# Store


class StoreError(ProcureError):
    """Downstream relational store failure."""

    code: str = "STORE_ERROR"
    http_status: int = 500

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Failed to {operation}: {message}")
