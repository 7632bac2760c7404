"""
Values -- Decimal helpers for rupiah amounts and quantities.

Responsibility:
    Every amount in the ledger is a ``Decimal``.  Payload values arrive as
    str/int/float/None from the API layer; ``to_decimal`` is the single
    conversion boundary.  Monetary rounding is ROUND_HALF_UP to whole units.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_WHOLE_UNIT = Decimal("1")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert a payload value to Decimal.

    None and empty strings become ``default``.  Floats go through ``str`` so
    ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValueError: If the value is not numeric, or is NaN or infinite.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def round_amount(value: Decimal) -> Decimal:
    """Round half-up to the nearest whole currency unit."""
    return value.quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP)


def percent_of(value: Decimal, percent: Decimal) -> Decimal:
    """``value * percent / 100`` without rounding."""
    return value * percent / HUNDRED


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning zero when the denominator is not positive."""
    if denominator <= ZERO:
        return ZERO
    return numerator / denominator
