"""
AuditLogWriter -- append-only, hash-chained audit log.

Responsibility:
    Appends immutable audit entries for invoice uploads, lifecycle
    transitions and risk assessments.  Each entry is linked to the previous
    entry of the same entity by hash, so an entity's trail is tamper-evident
    and can be replayed in insertion order.

Architecture position:
    Kernel > Services -- imperative shell.  Called by
    InvoiceLifecycleService and RiskAssessmentService inside their
    transaction; never commits.

Invariants enforced:
    - Append-only: entries are inserted, never updated or deleted
      (db/immutability.py blocks ORM mutation).
    - Ordering: ``seq`` comes from SequenceService, so insertion order is
      total and gap-free under commit.
    - Chain: ``hash = H(entity_type, entity_id, action, payload_hash,
      prev_hash)`` where ``prev_hash`` is the last hash for the same entity.

Failure modes:
    - AuditWriteError: the INSERT (or the sequence allocation) failed.  The
      caller's transaction must roll back so no state change survives
      without its audit entry.
    - AuditChainBrokenError: raised by ``validate_trail`` on tampering.

Audit relevance:
    This IS the audit trail.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payables_kernel.domain.clock import Clock, SystemClock
from payables_kernel.domain.documents import AuditEntryRecord, AuditRecord
from payables_kernel.exceptions import AuditChainBrokenError, AuditWriteError
from payables_kernel.logging_config import get_logger
from payables_kernel.models.audit_entry import AuditEntry
from payables_kernel.services.sequence_service import SequenceService
from payables_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.audit_log")


class AuditLogWriter:
    """
    Append-only audit log writer.

    Contract:
        ``record(entry)`` flushes exactly one new AuditEntry row in the
        caller's transaction, or raises AuditWriteError.

    Non-goals:
        - Does NOT commit.  Read queries live in AuditSelector.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)

    def record(self, entry: AuditRecord) -> AuditEntryRecord:
        """
        Append ``entry`` to the audit log.

        Postconditions:
            - A new AuditEntry row is flushed with a fresh ``seq`` and a
              valid chain link to the entity's previous entry.

        Raises:
            AuditWriteError: if the row could not be written.
        """
        try:
            seq = self._sequence.next_value(SequenceService.AUDIT_ENTRY)
            prev_hash = self._last_hash(entry.entity_type, entry.entity_id)

            detail = to_json_safe(entry.detail)
            payload_hash = hash_payload(detail)
            entry_hash = hash_audit_entry(
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                action=entry.action,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )

            row = AuditEntry(
                seq=seq,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
                actor_id=entry.actor_id,
                performed_at=self._clock.now(),
                detail=detail,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=entry_hash,
            )
            self._session.add(row)
            self._session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "audit_write_failed",
                extra={
                    "entity_type": entry.entity_type,
                    "entity_id": str(entry.entity_id),
                    "action": entry.action,
                },
                exc_info=True,
            )
            raise AuditWriteError(
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                action=entry.action,
                reason=str(exc),
            ) from exc

        logger.info(
            "audit_entry_recorded",
            extra={
                "seq": seq,
                "entity_type": entry.entity_type,
                "entity_id": str(entry.entity_id),
                "action": entry.action,
                "actor_id": str(entry.actor_id),
            },
        )
        return row.to_dto()

    def validate_trail(self, entity_type: str, entity_id: UUID) -> bool:
        """
        Recompute every hash in an entity's trail.

        Raises:
            AuditChainBrokenError: on the first entry whose stored hashes do
                not match the recomputed ones.
        """
        rows = self._session.execute(
            select(AuditEntry)
            .where(AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id)
            .order_by(AuditEntry.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for row in rows:
            if row.prev_hash != prev_hash:
                raise AuditChainBrokenError(str(row.id), prev_hash or "GENESIS", row.prev_hash or "GENESIS")
            expected_payload = hash_payload(row.detail or {})
            if expected_payload != row.payload_hash:
                raise AuditChainBrokenError(str(row.id), expected_payload, row.payload_hash)
            expected = hash_audit_entry(
                entity_type=row.entity_type,
                entity_id=str(row.entity_id),
                action=row.action,
                payload_hash=row.payload_hash,
                prev_hash=row.prev_hash,
            )
            if expected != row.hash:
                raise AuditChainBrokenError(str(row.id), expected, row.hash)
            prev_hash = row.hash
        return True

    def _last_hash(self, entity_type: str, entity_id: UUID) -> str | None:
        return self._session.execute(
            select(AuditEntry.hash)
            .where(AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id)
            .order_by(AuditEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
