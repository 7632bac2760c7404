"""
Module: procure_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_number is unique (one entry per document event).
    - Balance: sum(debit) == sum(credit) per entry.  Checked by JournalWriter
      before flush; exposed here as ``is_balanced`` for read-side assertions.
    - Lines are owned by their entry (delete-orphan cascade).

Audit relevance:
    Entries are keyed by a human-readable transaction number derived from
    the document kind and number (``ORD-00123``, ``INV-00042``,
    ``BILINV-00042-2``) so cascades can find and remove them.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procure_kernel.db.base import TrackedBase


class JournalEntry(TrackedBase):
    """Journal entry header."""

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("transaction_number", name="uq_journal_transaction_number"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_source", "source_kind", "source_id"),
    )

    transaction_number: Mapped[str] = mapped_column(String(60), nullable=False)
    entry_date: Mapped[date] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID | None]

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_seq",
        lazy="selectin",
    )

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def __repr__(self) -> str:
        return f"<JournalEntry {self.transaction_number} {self.entry_date}>"


class JournalEntryLine(TrackedBase):
    """One debit or credit line of a journal entry."""

    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        Index("idx_journal_line_entry", "journal_entry_id"),
        Index("idx_journal_line_account", "account_code"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    debit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped[JournalEntry] = relationship(
        "JournalEntry",
        back_populates="lines",
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntryLine {self.account_code} "
            f"D={self.debit} C={self.credit}>"
        )
