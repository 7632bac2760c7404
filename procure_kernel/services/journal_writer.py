"""
JournalWriter -- persists balanced journal drafts.

Responsibility:
    Turn a ``JournalDraft`` into a ``JournalEntry`` header plus its
    ``JournalEntryLine`` rows inside the caller's transaction, and remove
    entries by transaction number when a document is reset.

Architecture position:
    Kernel > Services.  Does NOT commit; the calling module service owns
    the transaction boundary, so header and lines are written atomically
    with the rest of the approval.

Invariants enforced:
    - Balance: ``draft.assert_balanced()`` runs before any row is added.
    - Zero lines are dropped; an entry always has at least two lines.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from procure_kernel.domain.dtos import JournalDraft
from procure_kernel.logging_config import get_logger
from procure_kernel.models.journal import JournalEntry, JournalEntryLine

logger = get_logger("services.journal_writer")


class JournalWriter:
    """Writes and removes journal entries within an open session."""

    def __init__(self, session: Session):
        self._session = session

    def write(
        self,
        draft: JournalDraft,
        actor_id: UUID,
        source_id: UUID | None = None,
    ) -> JournalEntry:
        """
        Persist a draft as one entry.

        Raises:
            UnbalancedEntryError: If the draft's debits != credits.
        """
        draft.assert_balanced()

        entry = JournalEntry(
            transaction_number=draft.transaction_number,
            entry_date=draft.entry_date,
            description=draft.description or None,
            source_kind=draft.source_kind,
            source_id=source_id,
            created_by_id=actor_id,
        )
        seq = 0
        for spec in draft.lines:
            if spec.is_zero:
                continue
            seq += 1
            entry.lines.append(
                JournalEntryLine(
                    line_seq=seq,
                    account_code=spec.account_code,
                    debit=spec.debit,
                    credit=spec.credit,
                    description=spec.description or None,
                    created_by_id=actor_id,
                )
            )
        self._session.add(entry)
        self._session.flush()

        logger.info("journal_entry_written", extra={
            "transaction_number": draft.transaction_number,
            "entry_date": draft.entry_date.isoformat(),
            "line_count": seq,
            "total_debits": str(draft.total_debits),
            "total_credits": str(draft.total_credits),
        })
        return entry

    def find(self, transaction_number: str) -> JournalEntry | None:
        return self._session.execute(
            select(JournalEntry).where(
                JournalEntry.transaction_number == transaction_number
            )
        ).scalar_one_or_none()

    def delete_by_transaction_numbers(
        self,
        transaction_numbers: Iterable[str] = (),
        prefixes: Iterable[str] = (),
    ) -> int:
        """Delete entries (and their lines) matching exact numbers or prefixes."""
        numbers = list(transaction_numbers)
        prefix_list = list(prefixes)
        entry_ids: list[UUID] = []
        if numbers:
            entry_ids.extend(self._session.execute(
                select(JournalEntry.id).where(
                    JournalEntry.transaction_number.in_(numbers)
                )
            ).scalars())
        for prefix in prefix_list:
            entry_ids.extend(self._session.execute(
                select(JournalEntry.id).where(
                    JournalEntry.transaction_number.like(f"{prefix}%")
                )
            ).scalars())
        if not entry_ids:
            return 0

        self._session.execute(
            delete(JournalEntryLine).where(JournalEntryLine.journal_entry_id.in_(entry_ids))
        )
        self._session.execute(
            delete(JournalEntry).where(JournalEntry.id.in_(entry_ids))
        )
        self._session.expire_all()
        logger.info("journal_entries_deleted", extra={
            "transaction_numbers": numbers,
            "prefixes": prefix_list,
            "deleted_count": len(entry_ids),
        })
        return len(entry_ids)
