"""
SequenceService -- monotonic sequence allocation via an atomic counter row.

Responsibility:
    Provides strictly increasing sequence numbers for audit entries.  The
    counter row is incremented with a single ``UPDATE ... RETURNING``
    statement, so the row lock taken by the UPDATE serializes concurrent
    allocations until the caller's transaction ends.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by AuditLogWriter.

Invariants enforced:
    - Sequence monotonicity: the counter row is the sole source of truth.
      The aggregate-max-plus-one pattern is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - First use of a sequence name races another first use: the insert is
      ``ON CONFLICT DO NOTHING`` and the increment is retried.

Audit relevance:
    The global ordering of audit entries (``AuditEntry.seq``) comes from here.
"""

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Mapped, Session, mapped_column

from payables_kernel.db.base import Base
from payables_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    AUDIT_ENTRY = "audit_entry"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        value = self._increment(sequence_name)
        if value is None:
            self._create_counter(sequence_name)
            value = self._increment(sequence_name)
            if value is None:
                raise RuntimeError(f"Sequence counter {sequence_name!r} could not be created")

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _increment(self, sequence_name: str) -> int | None:
        return self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .returning(SequenceCounter.current_value)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()

    def _create_counter(self, sequence_name: str) -> None:
        dialect = self._session.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        self._session.execute(
            insert_fn(SequenceCounter)
            .values(name=sequence_name, current_value=0)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        logger.debug("sequence_counter_created", extra={"sequence_name": sequence_name})
