"""
Installment Ledger - sequential payment state machine for billing records.

Pure functions with no I/O.  The caller loads the existing installment rows,
builds an ``InstallmentLedger`` and asks it to apply one payment.  The
ledger returns the label for the new payment, the updated history and the
remaining balance, or raises a typed error.

Partial payments follow first -> second -> third -> final.  At most three
partial payments precede the final one; the final payment must settle the
balance exactly.  Full payments take a single ``full_pay`` entry equal to
the grand total.

Discount terms use the ``"d/discountDays, n/netDays"`` notation
(``"2/10, n/30"``: 2% off when paid within 10 days, net due in 30).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from procure_engines.tracer import traced_engine
from procure_kernel.domain.values import ZERO, percent_of, round_amount
from procure_kernel.exceptions import (
    AlreadyFullyPaidError,
    ExceedsRemainingBalanceError,
    FinalInstallmentMismatchError,
    FullPaymentMismatchError,
    FullPaymentRequiredError,
    InstallmentCapExceededError,
    InvalidFieldError,
    MinimumDownPaymentError,
)
from procure_kernel.logging_config import get_logger

logger = get_logger("engines.installments")

DEFAULT_MINIMUM_DOWN_PAYMENT_RATIO = Decimal("0.10")
DEFAULT_MAX_PARTIALS = 3

_TERMS_PATTERN = re.compile(r"(\d+)/(\d+),\s*n/(\d+)")
_SECONDS_PER_DAY = 86400


class PaymentMethod(str, Enum):
    FULL = "Full Payment"
    PARTIAL = "Partial Payment"

    @classmethod
    def parse(cls, value: Any) -> PaymentMethod:
        if isinstance(value, PaymentMethod):
            return value
        for method in cls:
            if value == method.value:
                return method
        raise InvalidFieldError(
            "payment_method", f"must be one of {[m.value for m in cls]}"
        )


class InstallmentLabel(str, Enum):
    FULL_PAY = "full_pay"
    FIRST_PAY = "first_pay"
    SECOND_PAY = "second_pay"
    THIRD_PAY = "third_pay"
    FINAL_PAY = "final_pay"

    @property
    def settles_balance(self) -> bool:
        return self in (InstallmentLabel.FULL_PAY, InstallmentLabel.FINAL_PAY)


PARTIAL_LABELS: tuple[InstallmentLabel, ...] = (
    InstallmentLabel.FIRST_PAY,
    InstallmentLabel.SECOND_PAY,
    InstallmentLabel.THIRD_PAY,
)


@dataclass(frozen=True)
class InstallmentEntry:
    """One recorded payment."""

    label: InstallmentLabel
    amount: Decimal
    paid_on: date | None = None


@dataclass(frozen=True)
class DiscountTerms:
    """Parsed ``"d/discountDays, n/netDays"`` clause."""

    rate: Decimal
    discount_days: int
    net_days: int

    @classmethod
    def parse(cls, terms: str | None) -> DiscountTerms | None:
        """Return the parsed terms, or None when the string has no clause."""
        if not terms:
            return None
        match = _TERMS_PATTERN.search(terms)
        if match is None:
            return None
        rate, discount_days, net_days = match.groups()
        return cls(
            rate=Decimal(rate),
            discount_days=int(discount_days),
            net_days=int(net_days),
        )


@dataclass(frozen=True)
class DiscountEvaluation:
    """Outcome of checking one payment against the discount window."""

    terms: DiscountTerms
    diff_days: int
    eligible: bool
    discount_amount: Decimal
    alerts: tuple[str, ...] = ()


@dataclass(frozen=True)
class InstallmentOutcome:
    """Result of applying one payment to the ledger."""

    label: InstallmentLabel
    amount: Decimal
    entries: tuple[InstallmentEntry, ...]
    total_paid: Decimal
    remain_balance: Decimal
    installment_count: int
    discount: DiscountEvaluation | None = None

    @property
    def is_final(self) -> bool:
        return self.label.settles_balance

    @property
    def alerts(self) -> tuple[str, ...]:
        if self.discount is None:
            return ()
        return self.discount.alerts


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole days from ``start`` to ``end``, rounded up."""
    if isinstance(start, datetime) and isinstance(end, datetime):
        return math.ceil((end - start).total_seconds() / _SECONDS_PER_DAY)
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    return (end - start).days


def evaluate_discount(
    terms: DiscountTerms,
    invoice_date: date | datetime,
    payment_date: date | datetime,
    amount: Decimal,
    *,
    settles_balance: bool,
    third_payment: bool = False,
) -> DiscountEvaluation:
    """
    Check whether a payment falls inside the early-payment window.

    Inside the window the discount is ``amount * rate / 100``, rounded.
    Outside it:

    - any payment after the net due date gets an overdue warning;
    - once a third installment exists the payment is overdue against the
      discount window;
    - otherwise a non-final payment gets a days-remaining reminder.
    """
    diff_days = days_between(invoice_date, payment_date)
    if diff_days <= terms.discount_days:
        discount = round_amount(percent_of(amount, terms.rate))
        return DiscountEvaluation(
            terms=terms,
            diff_days=diff_days,
            eligible=True,
            discount_amount=discount,
        )

    alerts: list[str] = []
    if diff_days > terms.net_days:
        alerts.append(
            f"Payment is overdue by {diff_days - terms.net_days} day(s); "
            f"net terms were {terms.net_days} days"
        )
    elif third_payment:
        alerts.append(
            f"Payment is overdue: third installment made {diff_days - terms.discount_days} "
            f"day(s) after the {terms.discount_days}-day discount window"
        )
    elif not settles_balance:
        alerts.append(
            f"{terms.net_days - diff_days} day(s) remaining until the payment is due"
        )
    return DiscountEvaluation(
        terms=terms,
        diff_days=diff_days,
        eligible=False,
        discount_amount=ZERO,
        alerts=tuple(alerts),
    )


@dataclass(frozen=True)
class InstallmentLedger:
    """
    Installment history of one billing record.

    Immutable: ``apply_payment`` returns an outcome carrying the new
    history and leaves this ledger unchanged.
    """

    grand_total: Decimal
    payment_method: PaymentMethod
    entries: tuple[InstallmentEntry, ...] = field(default_factory=tuple)
    terms: str | None = None
    minimum_down_payment_ratio: Decimal = DEFAULT_MINIMUM_DOWN_PAYMENT_RATIO
    max_partials: int = DEFAULT_MAX_PARTIALS

    @property
    def total_paid(self) -> Decimal:
        return sum((e.amount for e in self.entries), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.grand_total - self.total_paid

    @property
    def is_settled(self) -> bool:
        return any(e.label.settles_balance for e in self.entries)

    @property
    def partial_count(self) -> int:
        return sum(1 for e in self.entries if not e.label.settles_balance)

    @property
    def minimum_down_payment(self) -> Decimal:
        return self.grand_total * self.minimum_down_payment_ratio

    def _label_for_full(self, paid_amount: Decimal) -> InstallmentLabel:
        if paid_amount != self.grand_total:
            raise FullPaymentMismatchError(paid_amount, self.grand_total)
        return InstallmentLabel.FULL_PAY

    def _label_for_partial(self, paid_amount: Decimal) -> InstallmentLabel:
        count = self.partial_count
        remaining = self.remaining

        if count > self.max_partials:
            raise InstallmentCapExceededError(self.max_partials)

        if count == self.max_partials:
            if paid_amount != remaining:
                raise FinalInstallmentMismatchError(paid_amount, remaining)
            return InstallmentLabel.FINAL_PAY

        if paid_amount > remaining:
            raise ExceedsRemainingBalanceError(paid_amount, remaining)

        if count == 0:
            if paid_amount == self.grand_total:
                raise FullPaymentRequiredError(self.grand_total)
            if paid_amount < self.minimum_down_payment:
                raise MinimumDownPaymentError(paid_amount, self.minimum_down_payment)
            return InstallmentLabel.FIRST_PAY

        if paid_amount == remaining:
            return InstallmentLabel.FINAL_PAY
        return PARTIAL_LABELS[count]

    @traced_engine("installments", "1.0", fingerprint_fields=("paid_amount", "paid_on"))
    def apply_payment(
        self,
        *,
        paid_amount: Decimal,
        paid_on: date | None = None,
        invoice_date: date | None = None,
        billing_id: str = "",
    ) -> InstallmentOutcome:
        """
        Apply one payment.

        Args:
            paid_amount: Amount of this payment event.
            paid_on: Payment date, stored on the new entry and used for the
                discount window.
            invoice_date: Start of the discount window.  Without it (or
                without terms) no discount is evaluated.
            billing_id: Used in error messages only.

        Raises:
            AlreadyFullyPaidError: A full or final payment exists.
            InvalidFieldError: ``paid_amount`` is not positive.
            FullPaymentMismatchError: Full payment differs from grand total.
            FullPaymentRequiredError: First partial payment equals the total.
            MinimumDownPaymentError: First partial payment is too small.
            ExceedsRemainingBalanceError: Payment is above the balance.
            FinalInstallmentMismatchError: Last allowed payment does not
                settle the balance.
            InstallmentCapExceededError: History already exceeds the cap.
        """
        if self.is_settled:
            raise AlreadyFullyPaidError(billing_id)
        if paid_amount <= ZERO:
            raise InvalidFieldError("paid_amount", "must be greater than zero")

        if self.payment_method is PaymentMethod.FULL:
            label = self._label_for_full(paid_amount)
        else:
            label = self._label_for_partial(paid_amount)

        entries = self.entries + (InstallmentEntry(label, paid_amount, paid_on),)
        total_paid = self.total_paid + paid_amount

        discount = None
        parsed_terms = DiscountTerms.parse(self.terms)
        if parsed_terms is not None and invoice_date is not None and paid_on is not None:
            discount = evaluate_discount(
                parsed_terms,
                invoice_date,
                paid_on,
                paid_amount,
                settles_balance=label.settles_balance,
                third_payment=any(
                    e.label is InstallmentLabel.THIRD_PAY for e in entries
                ),
            )

        outcome = InstallmentOutcome(
            label=label,
            amount=paid_amount,
            entries=entries,
            total_paid=total_paid,
            remain_balance=self.grand_total - total_paid,
            installment_count=len(entries),
            discount=discount,
        )

        logger.info("installment_applied", extra={
            "billing_id": billing_id,
            "label": label.value,
            "paid_amount": str(paid_amount),
            "remain_balance": str(outcome.remain_balance),
            "installment_count": outcome.installment_count,
            "discount_eligible": bool(discount and discount.eligible),
        })
        return outcome
