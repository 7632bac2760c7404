"""
Tests for the Installment Ledger.

Covers:
- Full payment
- Partial payment sequencing first -> second -> third -> final
- Down payment minimum and the full-payment-as-partial rejection
- Balance and cap violations
- Discount terms parsing and the early-payment window
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from procure_engines.installments import (
    DiscountTerms,
    InstallmentEntry,
    InstallmentLabel,
    InstallmentLedger,
    PaymentMethod,
    days_between,
    evaluate_discount,
)
from procure_kernel.exceptions import (
    AlreadyFullyPaidError,
    ExceedsRemainingBalanceError,
    FinalInstallmentMismatchError,
    FullPaymentMismatchError,
    FullPaymentRequiredError,
    InvalidFieldError,
    MinimumDownPaymentError,
)

GRAND_TOTAL = Decimal("5000000")


def _partial(*amounts: str, total: Decimal = GRAND_TOTAL) -> InstallmentLedger:
    """Ledger with the given partial payments already applied."""
    ledger = InstallmentLedger(grand_total=total, payment_method=PaymentMethod.PARTIAL)
    for amount in amounts:
        outcome = ledger.apply_payment(paid_amount=Decimal(amount))
        ledger = InstallmentLedger(
            grand_total=total,
            payment_method=PaymentMethod.PARTIAL,
            entries=outcome.entries,
        )
    return ledger


class TestFullPayment:
    def test_exact_amount_is_full_pay(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.FULL)

        outcome = ledger.apply_payment(paid_amount=GRAND_TOTAL)

        assert outcome.label is InstallmentLabel.FULL_PAY
        assert outcome.remain_balance == Decimal("0")
        assert outcome.installment_count == 1
        assert outcome.is_final

    def test_mismatch_rejected(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.FULL)

        with pytest.raises(FullPaymentMismatchError):
            ledger.apply_payment(paid_amount=Decimal("4999999"))

    def test_second_payment_after_full_rejected(self):
        ledger = InstallmentLedger(
            grand_total=GRAND_TOTAL,
            payment_method=PaymentMethod.FULL,
            entries=(InstallmentEntry(InstallmentLabel.FULL_PAY, GRAND_TOTAL),),
        )

        with pytest.raises(AlreadyFullyPaidError):
            ledger.apply_payment(paid_amount=Decimal("1"))

    def test_ledger_is_not_mutated(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.FULL)

        ledger.apply_payment(paid_amount=GRAND_TOTAL)

        assert ledger.entries == ()


class TestPartialPayment:
    def test_first_payment(self):
        """12% down payment clears the 10% minimum."""
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.PARTIAL)

        outcome = ledger.apply_payment(paid_amount=Decimal("600000"))

        assert outcome.label is InstallmentLabel.FIRST_PAY
        assert outcome.remain_balance == Decimal("4400000")
        assert outcome.installment_count == 1
        assert not outcome.is_final

    def test_sequence_through_third(self):
        ledger = _partial("1000000", "1000000")

        outcome = ledger.apply_payment(paid_amount=Decimal("1000000"))

        assert outcome.label is InstallmentLabel.THIRD_PAY
        assert outcome.remain_balance == Decimal("2000000")
        assert [e.label for e in outcome.entries] == [
            InstallmentLabel.FIRST_PAY,
            InstallmentLabel.SECOND_PAY,
            InstallmentLabel.THIRD_PAY,
        ]

    def test_settling_early_is_final(self):
        ledger = _partial("1000000")

        outcome = ledger.apply_payment(paid_amount=Decimal("4000000"))

        assert outcome.label is InstallmentLabel.FINAL_PAY
        assert outcome.remain_balance == Decimal("0")

    def test_after_three_partials_must_settle(self):
        ledger = _partial("1000000", "1000000", "1000000")

        with pytest.raises(FinalInstallmentMismatchError):
            ledger.apply_payment(paid_amount=Decimal("1000000"))

        outcome = ledger.apply_payment(paid_amount=Decimal("2000000"))
        assert outcome.label is InstallmentLabel.FINAL_PAY
        assert outcome.installment_count == 4

    def test_below_minimum_down_payment(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.PARTIAL)

        with pytest.raises(MinimumDownPaymentError):
            ledger.apply_payment(paid_amount=Decimal("499999"))

    def test_exactly_minimum_down_payment_accepted(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.PARTIAL)

        outcome = ledger.apply_payment(paid_amount=Decimal("500000"))

        assert outcome.label is InstallmentLabel.FIRST_PAY

    def test_full_amount_as_first_partial_rejected(self):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.PARTIAL)

        with pytest.raises(FullPaymentRequiredError, match="Full Payment"):
            ledger.apply_payment(paid_amount=GRAND_TOTAL)

    def test_exceeding_remaining_rejected(self):
        ledger = _partial("1000000")

        with pytest.raises(ExceedsRemainingBalanceError):
            ledger.apply_payment(paid_amount=Decimal("4000001"))

    def test_payment_after_final_rejected(self):
        ledger = _partial("1000000", "4000000")

        with pytest.raises(AlreadyFullyPaidError):
            ledger.apply_payment(paid_amount=Decimal("1"))

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount_rejected(self, amount):
        ledger = InstallmentLedger(grand_total=GRAND_TOTAL, payment_method=PaymentMethod.PARTIAL)

        with pytest.raises(InvalidFieldError):
            ledger.apply_payment(paid_amount=Decimal(amount))

    def test_custom_minimum_ratio(self):
        ledger = InstallmentLedger(
            grand_total=GRAND_TOTAL,
            payment_method=PaymentMethod.PARTIAL,
            minimum_down_payment_ratio=Decimal("0.20"),
        )

        with pytest.raises(MinimumDownPaymentError):
            ledger.apply_payment(paid_amount=Decimal("600000"))


@st.composite
def payment_plans(draw):
    """A grand total and up to four payments that sum to it."""
    total = draw(st.integers(min_value=100, max_value=100_000_000))
    first = draw(st.integers(min_value=-(-total // 10), max_value=total - 1))
    payments = [first]
    remaining = total - first
    for _ in range(2):
        if remaining <= 1 or not draw(st.booleans()):
            break
        part = draw(st.integers(min_value=1, max_value=remaining - 1))
        payments.append(part)
        remaining -= part
    payments.append(remaining)
    return Decimal(total), [Decimal(p) for p in payments]


class TestInstallmentProperties:
    @given(plan=payment_plans())
    @settings(max_examples=200)
    def test_exact_sum_terminates_in_final_pay(self, plan):
        total, payments = plan
        ledger = InstallmentLedger(grand_total=total, payment_method=PaymentMethod.PARTIAL)

        for index, amount in enumerate(payments):
            outcome = ledger.apply_payment(paid_amount=amount)
            is_last = index == len(payments) - 1
            assert (outcome.label is InstallmentLabel.FINAL_PAY) == is_last
            ledger = InstallmentLedger(
                grand_total=total,
                payment_method=PaymentMethod.PARTIAL,
                entries=outcome.entries,
            )

        assert ledger.remaining == Decimal("0")
        with pytest.raises(AlreadyFullyPaidError):
            ledger.apply_payment(paid_amount=Decimal("1"))

    @given(total=st.integers(min_value=10, max_value=100_000_000))
    def test_first_partial_below_minimum_always_rejected(self, total):
        grand_total = Decimal(total)
        ledger = InstallmentLedger(grand_total=grand_total, payment_method=PaymentMethod.PARTIAL)
        below = grand_total * Decimal("0.10") - Decimal("0.01")

        with pytest.raises(MinimumDownPaymentError):
            ledger.apply_payment(paid_amount=below)


class TestDiscountTerms:
    def test_parse(self):
        terms = DiscountTerms.parse("2/10, n/30")

        assert terms == DiscountTerms(rate=Decimal("2"), discount_days=10, net_days=30)

    @pytest.mark.parametrize("raw", [None, "", "Net 30", "COD"])
    def test_no_clause(self, raw):
        assert DiscountTerms.parse(raw) is None

    def test_days_between_dates(self):
        assert days_between(date(2025, 1, 1), date(2025, 1, 8)) == 7

    def test_days_between_datetimes_rounds_up(self):
        start = datetime(2025, 1, 1, 9, 0)
        end = datetime(2025, 1, 8, 10, 0)

        assert days_between(start, end) == 8


class TestEarlyPaymentDiscount:
    terms = DiscountTerms(rate=Decimal("2"), discount_days=10, net_days=30)

    def test_inside_window(self):
        evaluation = evaluate_discount(
            self.terms, date(2025, 1, 1), date(2025, 1, 8), Decimal("5000000"),
            settles_balance=True,
        )

        assert evaluation.eligible
        assert evaluation.diff_days == 7
        assert evaluation.discount_amount == Decimal("100000")
        assert evaluation.alerts == ()

    def test_reminder_for_partial_outside_window(self):
        evaluation = evaluate_discount(
            self.terms, date(2025, 1, 1), date(2025, 1, 20), Decimal("1000000"),
            settles_balance=False,
        )

        assert not evaluation.eligible
        assert evaluation.discount_amount == Decimal("0")
        assert evaluation.alerts == ("11 day(s) remaining until the payment is due",)

    def test_no_reminder_on_final_payment(self):
        evaluation = evaluate_discount(
            self.terms, date(2025, 1, 1), date(2025, 1, 20), Decimal("1000000"),
            settles_balance=True,
        )

        assert evaluation.alerts == ()

    def test_overdue(self):
        evaluation = evaluate_discount(
            self.terms, date(2025, 1, 1), date(2025, 2, 5), Decimal("1000000"),
            settles_balance=True,
        )

        assert not evaluation.eligible
        assert "overdue by 5 day(s)" in evaluation.alerts[0]

    def test_third_installment_after_window_is_overdue(self):
        evaluation = evaluate_discount(
            self.terms, date(2025, 1, 1), date(2025, 1, 20), Decimal("1000000"),
            settles_balance=False,
            third_payment=True,
        )

        assert evaluation.alerts == (
            "Payment is overdue: third installment made 9 day(s) after the 10-day discount window",
        )

    def test_ledger_third_payment_after_window(self):
        earlier = _partial("1000000", "1000000")
        ledger = InstallmentLedger(
            grand_total=GRAND_TOTAL,
            payment_method=PaymentMethod.PARTIAL,
            entries=earlier.entries,
            terms="2/10, n/30",
        )

        outcome = ledger.apply_payment(
            paid_amount=Decimal("1000000"),
            paid_on=date(2025, 1, 20),
            invoice_date=date(2025, 1, 1),
        )

        assert outcome.label is InstallmentLabel.THIRD_PAY
        assert not outcome.discount.eligible
        assert len(outcome.alerts) == 1
        assert outcome.alerts[0].startswith("Payment is overdue")
        assert "remaining until" not in outcome.alerts[0]

    def test_ledger_applies_terms(self):
        ledger = InstallmentLedger(
            grand_total=GRAND_TOTAL,
            payment_method=PaymentMethod.FULL,
            terms="2/10, n/30",
        )

        outcome = ledger.apply_payment(
            paid_amount=GRAND_TOTAL,
            paid_on=date(2025, 1, 8),
            invoice_date=date(2025, 1, 1),
        )

        assert outcome.discount.eligible
        assert outcome.discount.discount_amount == Decimal("100000")

    def test_ledger_without_invoice_date_skips_discount(self):
        ledger = InstallmentLedger(
            grand_total=GRAND_TOTAL,
            payment_method=PaymentMethod.FULL,
            terms="2/10, n/30",
        )

        outcome = ledger.apply_payment(paid_amount=GRAND_TOTAL, paid_on=date(2025, 1, 8))

        assert outcome.discount is None
        assert outcome.alerts == ()
