"""
DTOs -- immutable journal drafts passed from engines to the journal writer.

Engines build ``JournalDraft`` values (pure, no I/O); the kernel
``JournalWriter`` persists them.  A draft is validated for balance before any
row is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from procure_kernel.exceptions import UnbalancedEntryError

_ZERO = Decimal("0")


@dataclass(frozen=True)
class JournalLineSpec:
    """A single debit or credit line.  Exactly one side is non-zero."""

    account_code: str
    debit: Decimal = _ZERO
    credit: Decimal = _ZERO
    description: str = ""

    def __post_init__(self) -> None:
        if self.debit < _ZERO or self.credit < _ZERO:
            raise ValueError(
                f"Journal line amounts must be non-negative: "
                f"{self.account_code} D={self.debit} C={self.credit}"
            )
        if self.debit and self.credit:
            raise ValueError(
                f"Journal line {self.account_code} cannot carry both debit and credit"
            )

    @classmethod
    def dr(cls, account_code: str, amount: Decimal, description: str = "") -> JournalLineSpec:
        """Debit line; a negative amount flips to the credit side."""
        if amount < _ZERO:
            return cls(account_code=account_code, credit=-amount, description=description)
        return cls(account_code=account_code, debit=amount, description=description)

    @classmethod
    def cr(cls, account_code: str, amount: Decimal, description: str = "") -> JournalLineSpec:
        """Credit line; a negative amount flips to the debit side."""
        if amount < _ZERO:
            return cls(account_code=account_code, debit=-amount, description=description)
        return cls(account_code=account_code, credit=amount, description=description)

    @property
    def is_zero(self) -> bool:
        return self.debit == _ZERO and self.credit == _ZERO


@dataclass(frozen=True)
class JournalDraft:
    """A balanced set of lines under one transaction number."""

    transaction_number: str
    entry_date: date
    source_kind: str
    lines: tuple[JournalLineSpec, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), _ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), _ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def assert_balanced(self) -> None:
        """Raise UnbalancedEntryError when debits != credits."""
        if not self.is_balanced:
            raise UnbalancedEntryError(
                self.transaction_number, self.total_debits, self.total_credits
            )
