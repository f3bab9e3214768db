"""
SequenceService -- named counters for bill numbering via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per named scope (one scope per
    billing day for standard bills, one per year for optimized bills).
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) so concurrent bill creation in the same
    scope never draws the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by BillingService.generate_bill_number().

Invariants enforced:
    - The locked counter row is the sole source of the next value; the
      max-plus-one over persisted bill numbers is never used to allocate.
    - The increment is only visible after the caller's transaction commits.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-read under lock).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from workload_kernel.db.base import Base
from workload_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence; row-level locking serializes increments."""

    __tablename__ = "sequence_counters"

    # e.g. "bill:standard:20240115", "bill:optimized:2024"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        ``next_value(name)`` returns a value strictly greater than any value
        previously returned for ``name`` in a committed transaction.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        If the transaction rolls back, the value is not consumed.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # Another transaction may create the same counter concurrently;
            # the savepoint keeps the caller's other work intact.
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
                counter = self._locked_counter(sequence_name)
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
        """Current value without incrementing; None if the sequence doesn't exist."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

