"""
Module: payables_kernel.models.audit_entry
Responsibility: ORM persistence for the append-only audit log.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for to_dto only).

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py listeners).
    - seq is globally unique and strictly increasing (SequenceService).
    - hash = H(entity_type, entity_id, action, payload_hash, prev_hash) where
      prev_hash is the hash of the previous entry for the same entity.

Failure modes:
    - ImmutabilityViolationError on any attempted UPDATE/DELETE.
    - IntegrityError on duplicate seq.

Audit relevance:
    This IS the audit trail.  Ordering by seq within (entity_type, entity_id)
    reconstructs an invoice's full history.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payables_kernel.db.base import Base, UUIDString
from payables_kernel.domain.documents import AuditEntryRecord


class AuditAction(str, Enum):
    """Audit action tags.

    Lifecycle transitions use ``manual_<status>`` tags derived from the
    transition table (``Transition.audit_action``).
    """

    INVOICE_UPLOADED = "invoice_uploaded"
    MANUAL_UNDER_REVIEW = "manual_under_review"
    MANUAL_APPROVED = "manual_approved"
    MANUAL_REJECTED = "manual_rejected"
    MANUAL_PAID = "manual_paid"
    RISK_ASSESSED = "risk_assessed"
    RISK_ASSESSMENT_SKIPPED = "risk_assessment_skipped"


class AuditEntry(Base):
    """Immutable audit log row."""

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("ix_audit_entries_entity_seq", "entity_type", "entity_id", "seq"),
        Index("ix_audit_entries_performed_at", "performed_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(nullable=False)
    detail: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def to_dto(self) -> AuditEntryRecord:
        return AuditEntryRecord(
            id=self.id,
            seq=self.seq,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=self.action,
            actor_id=self.actor_id,
            performed_at=self.performed_at,
            detail=dict(self.detail or {}),
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )
