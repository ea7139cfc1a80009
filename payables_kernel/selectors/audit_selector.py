"""
Audit log selector.

Responsibility:
    Trail reconstruction (per entity, insertion order) and the recent-activity
    listing (newest first) over the append-only audit log.

Architecture position:
    Kernel > Selectors -- read-only.
"""

from uuid import UUID

from sqlalchemy import select

from payables_kernel.domain.documents import AuditEntryRecord
from payables_kernel.models.audit_entry import AuditEntry
from payables_kernel.selectors.base import BaseSelector

DEFAULT_RECENT_LIMIT = 200


class AuditSelector(BaseSelector):
    def trail(self, entity_type: str, entity_id: UUID) -> list[AuditEntryRecord]:
        """All entries for one entity in the order they were written."""
        rows = self.session.execute(
            select(AuditEntry)
            .where(AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id)
            .order_by(AuditEntry.seq)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[AuditEntryRecord]:
        rows = self.session.execute(
            select(AuditEntry).order_by(AuditEntry.seq.desc()).limit(limit)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def count_for(self, entity_type: str, entity_id: UUID, action: str | None = None) -> int:
        stmt = select(AuditEntry.id).where(
            AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id
        )
        if action is not None:
            stmt = stmt.where(AuditEntry.action == action)
        return len(self.session.execute(stmt).all())
