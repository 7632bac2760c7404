"""
Tax Engine - DPP / PPN / PPh computation for purchase documents.

Pure functions with no I/O.  Rates are passed in as percentages
(``11`` for 11%).

Two mutually exclusive tax methods exist:

* ``Before Calculate`` -- the base is the tax base (DPP) itself, VAT is added
  on top.
* ``After Calculate`` -- the base already includes VAT, DPP is extracted.

Two VAT regimes are special-cased.  At 11% the standard formulas apply.  At
12% the DPP is the "other value" base of 11/12 of the amount, so the
effective VAT stays at 11%.  Any other rate falls back to the legacy rules.

The net cash movement for billing-order installments (``paid_amount``)
follows ``PAID_AMOUNT_POLICY``.  Its asymmetries (some rows add PPN, some
subtract it from DPP, one subtracts it from the base) are business rules
carried over as observed, not typos.

Usage:
    from procure_engines.tax import TaxMethod, compute_tax

    result = compute_tax(
        base=Decimal("1000000"),
        method=TaxMethod.BEFORE,
        vat_percent=Decimal("11"),
        wh_percent=Decimal("2"),
    )
    result.ppn          # Decimal("110000")
    result.paid_amount  # Decimal("890000")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from procure_engines.tracer import traced_engine
from procure_kernel.domain.values import HUNDRED, ZERO, percent_of, round_amount, to_decimal
from procure_kernel.exceptions import InvalidTaxMethodError
from procure_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_ELEVEN = Decimal("11")
_TWELVE = Decimal("12")


class TaxMethod(str, Enum):
    """How the document amount relates to VAT."""

    BEFORE = "Before Calculate"
    AFTER = "After Calculate"

    @classmethod
    def parse(cls, value: Any) -> TaxMethod:
        """
        Parse a payload value.  Accepts the full labels and the short forms
        ``Before`` / ``After`` (case-insensitive).

        Raises:
            InvalidTaxMethodError: For anything else.
        """
        if isinstance(value, TaxMethod):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for method in cls:
                if normalized in (method.value.lower(), method.value.split()[0].lower()):
                    return method
        raise InvalidTaxMethodError(value)


class VatRegime(str, Enum):
    """VAT-rate regime selecting the DPP formula."""

    RATE_11 = "rate_11"
    RATE_12 = "rate_12"
    LEGACY = "legacy"

    @classmethod
    def for_percent(cls, vat_percent: Decimal) -> VatRegime:
        if vat_percent == _ELEVEN:
            return cls.RATE_11
        if vat_percent == _TWELVE:
            return cls.RATE_12
        return cls.LEGACY


class PaidAmountRule(str, Enum):
    """Formula for the net cash movement of a billing-order installment."""

    DPP_MINUS_PPN = "dpp_minus_ppn"
    BASE_PLUS_PPN = "base_plus_ppn"
    BASE_MINUS_PPN = "base_minus_ppn"


PAID_AMOUNT_POLICY: dict[tuple[TaxMethod, VatRegime], PaidAmountRule] = {
    (TaxMethod.BEFORE, VatRegime.RATE_11): PaidAmountRule.DPP_MINUS_PPN,
    (TaxMethod.BEFORE, VatRegime.RATE_12): PaidAmountRule.DPP_MINUS_PPN,
    (TaxMethod.BEFORE, VatRegime.LEGACY): PaidAmountRule.BASE_PLUS_PPN,
    (TaxMethod.AFTER, VatRegime.RATE_11): PaidAmountRule.DPP_MINUS_PPN,
    (TaxMethod.AFTER, VatRegime.RATE_12): PaidAmountRule.BASE_MINUS_PPN,
    (TaxMethod.AFTER, VatRegime.LEGACY): PaidAmountRule.DPP_MINUS_PPN,
}


@dataclass(frozen=True)
class TaxComputation:
    """
    Result of a tax computation.

    ``dpp`` is unrounded; ``ppn``, ``pph`` and ``paid_amount`` are rounded
    half-up to whole units.
    """

    base: Decimal
    method: TaxMethod
    regime: VatRegime
    vat_percent: Decimal
    wh_percent: Decimal
    dpp: Decimal
    ppn: Decimal
    pph: Decimal
    paid_amount: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    """Totals stored on a purchase invoice when it is created or edited."""

    dpp: Decimal
    ppn: Decimal
    pph: Decimal
    grand_total: Decimal


def _dpp(base: Decimal, method: TaxMethod, regime: VatRegime, vat_percent: Decimal) -> Decimal:
    if regime is VatRegime.RATE_12:
        return base * _ELEVEN / _TWELVE
    if method is TaxMethod.BEFORE:
        if regime is VatRegime.RATE_11:
            return base
        return base * _ELEVEN / _TWELVE
    return base / (1 + vat_percent / HUNDRED)


def _paid_amount(rule: PaidAmountRule, base: Decimal, dpp: Decimal, ppn: Decimal) -> Decimal:
    if rule is PaidAmountRule.DPP_MINUS_PPN:
        return round_amount(dpp - ppn)
    if rule is PaidAmountRule.BASE_PLUS_PPN:
        return round_amount(base + ppn)
    return round_amount(base - ppn)


@traced_engine("tax", "1.0", fingerprint_fields=("base", "method", "vat_percent", "wh_percent"))
def compute_tax(
    *,
    base: Decimal,
    method: TaxMethod | str,
    vat_percent: Decimal,
    wh_percent: Decimal = ZERO,
) -> TaxComputation:
    """
    Compute DPP, PPN, PPh and the installment paid amount.

    Args:
        base: Installment amount or document total, depending on caller.
        method: Tax method (enum or payload label).
        vat_percent: PPN rate as a percentage.
        wh_percent: PPh rate as a percentage; zero means no withholding.

    Raises:
        InvalidTaxMethodError: Unknown method label.
    """
    tax_method = TaxMethod.parse(method)
    vat = to_decimal(vat_percent)
    wh = to_decimal(wh_percent)
    regime = VatRegime.for_percent(vat)

    dpp = _dpp(base, tax_method, regime, vat)
    ppn = round_amount(percent_of(dpp, vat))
    pph = round_amount(percent_of(dpp, wh)) if wh > ZERO else ZERO
    rule = PAID_AMOUNT_POLICY[(tax_method, regime)]
    paid_amount = _paid_amount(rule, base, dpp, ppn)

    logger.debug("tax_computed", extra={
        "base": str(base),
        "method": tax_method.value,
        "regime": regime.value,
        "dpp": str(dpp),
        "ppn": str(ppn),
        "pph": str(pph),
        "paid_amount": str(paid_amount),
        "paid_amount_rule": rule.value,
    })

    return TaxComputation(
        base=base,
        method=tax_method,
        regime=regime,
        vat_percent=vat,
        wh_percent=wh,
        dpp=dpp,
        ppn=ppn,
        pph=pph,
        paid_amount=paid_amount,
    )


def line_total(qty: Decimal, price: Decimal) -> Decimal:
    """``total_per_item``; recomputed on every add/edit."""
    return qty * price


def compute_document_totals(
    line_totals: Iterable[Decimal],
    ppn_percent: Decimal = ZERO,
    pph_percent: Decimal = ZERO,
) -> DocumentTotals:
    """
    Invoice header totals: DPP is the sum of line totals, PPN is added,
    PPh is withheld.
    """
    dpp = sum(line_totals, ZERO)
    ppn = round_amount(percent_of(dpp, ppn_percent))
    pph = round_amount(percent_of(dpp, pph_percent))
    return DocumentTotals(
        dpp=dpp,
        ppn=ppn,
        pph=pph,
        grand_total=dpp + ppn - pph,
    )
