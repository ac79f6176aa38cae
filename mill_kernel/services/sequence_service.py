"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for ledger transactions
    (TXN-000001, ...) and generated account numbers.  Uses a dedicated
    counter table with row-level locking (``SELECT ... FOR UPDATE``) so two
    concurrent postings can never draw the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerEngine and AccountRegistry.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth.
      Counting existing rows and adding one is FORBIDDEN; it hands the same
      number to concurrent writers.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-read).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from mill_kernel.db.base import Base
from mill_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "transaction", "account:CAS"
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

    Guarantees:
        - Strictly monotonic values per sequence name.
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations on
          PostgreSQL; SQLite's BEGIN IMMEDIATE serializes all writers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    TRANSACTION = "transaction"
    ACCOUNT_PREFIX = "account"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def account_sequence(cls, prefix: str) -> str:
        """Sequence name for generated account numbers with ``prefix``."""
        return f"{cls.ACCOUNT_PREFIX}:{prefix}"

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the sequence row (creating it on first use), increments it,
        and returns the new value.  The counter row stays locked until the
        caller's transaction ends.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use; another session may be creating the same counter.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
