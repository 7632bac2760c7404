"""
SequenceService -- per-kind document number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing document numbers (``number`` on requests,
    orders, invoices, ...).  Uses a dedicated counter table with row-level
    locking (``SELECT ... FOR UPDATE``) so concurrent "add" calls never
    receive the same number.

Architecture position:
    Kernel > Services.  Called by ProcurementService when a document is
    created.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  Fetching every existing number and checking
      membership is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - Uniqueness itself is enforced by the ``(kind, number)`` unique
      constraint on the document table; the counter only avoids collisions.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from procure_kernel.db.base import Base
from procure_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value("document.invoice")
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter:
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counter is not None:
            return counter

        if self._session.get_bind().dialect.name != "postgresql":
            # SQLite serializes writers; no creation race to guard.
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            return counter

        # First use of this sequence.  Another transaction may create it at
        # the same time; the savepoint keeps the caller's work intact.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            return self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == sequence_name)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence (always > 0).

        Postconditions:
            - Strictly greater than any previously returned value for this
              sequence name.
            - The counter row is locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def advance_to(self, sequence_name: str, value: int) -> None:
        """Move the counter forward to ``value`` if it is behind."""
        counter = self._lock_counter(sequence_name)
        if counter.current_value < value:
            counter.current_value = value
            self._session.flush()

    def current_value(self, sequence_name: str) -> int | None:
        """Get the current value of a sequence without incrementing."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
