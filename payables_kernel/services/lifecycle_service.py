"""
InvoiceLifecycleService -- guarded, audited invoice status transitions.

Responsibility:
    Moves an invoice along one edge of ``INVOICE_WORKFLOW``: checks the
    edge and the actor's capability, applies the status change with a
    compare-and-swap on the expected "from" status, stamps the review
    fields, and appends exactly one audit entry in the same transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Uses domain/workflow.py for the
    transition table and AuditLogWriter for the audit entry.  Flushes,
    never commits; ``InvoiceWorkflow`` owns the transaction.

Invariants enforced:
    - Only edges in the transition table are applied; everything else is
      InvalidTransitionError before any write.
    - Capability guard: reviewer for approve/reject/start_review, admin for
      mark_paid; PermissionDeniedError before any write.
    - Compare-and-swap: ``UPDATE ... WHERE id = :id AND status = :expected``.
      Zero rows means another writer won -> ConcurrentModificationError.
    - One audit entry per applied transition, same transaction.
    - Timestamps: every transition sets reviewer_id/reviewer_notes/
      reviewed_at; approved also sets approved_by/approved_at; paid sets
      paid_at.

Failure modes:
    - InvalidTransitionError, PermissionDeniedError: nothing written.
    - ConcurrentModificationError: nothing written by this call.
    - InvoiceNotFoundError: the invoice id does not exist.
    - AuditWriteError: status row was updated in the session; the caller's
      rollback discards it.

Audit relevance:
    Each call yields one ``manual_<status>`` entry whose detail carries
    reviewer_notes, old_status and new_status.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payables_kernel.domain.clock import Clock, SystemClock
from payables_kernel.domain.documents import Actor, AuditRecord, Invoice
from payables_kernel.domain.workflow import INVOICE_WORKFLOW, InvoiceStatus, Workflow
from payables_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    PermissionDeniedError,
)
from payables_kernel.logging_config import get_logger
from payables_kernel.models.invoice import InvoiceModel
from payables_kernel.services.audit_log import AuditLogWriter

logger = get_logger("services.lifecycle")

INVOICE_ENTITY_TYPE = "invoice"


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    stripped = notes.strip()
    return stripped or None


class InvoiceLifecycleService:
    """
    Applies invoice status transitions.

    Contract:
        ``transition(invoice, target_status, actor, notes)`` returns the
        refreshed invoice snapshot or raises a typed WorkflowError /
        ConcurrencyError.  The snapshot's ``status`` is the expected
        "from" state.

    Non-goals:
        - Does NOT commit or retry.  Re-fetch-and-retry-once lives in
          ``InvoiceWorkflow.transition_latest``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogWriter | None = None,
        workflow: Workflow = INVOICE_WORKFLOW,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogWriter(session, self._clock)
        self._workflow = workflow

    def transition(
        self,
        invoice: Invoice,
        target_status: InvoiceStatus | str,
        actor: Actor,
        notes: str | None = None,
    ) -> Invoice:
        """
        Move ``invoice`` from its snapshot status to ``target_status``.

        Raises:
            InvalidTransitionError: unknown target status, or edge not in the
                transition table.
            PermissionDeniedError: actor lacks the edge's capability.
            ConcurrentModificationError: status changed since the snapshot.
            InvoiceNotFoundError: the invoice no longer exists.
            AuditWriteError: audit entry could not be written.
        """
        from_status = invoice.status
        try:
            target = InvoiceStatus(target_status)
        except ValueError as exc:
            logger.warning(
                "invoice_transition_rejected",
                extra={
                    "invoice_id": str(invoice.id),
                    "from_status": from_status.value,
                    "to_status": str(target_status),
                    "reason": "unknown_status",
                },
            )
            raise InvalidTransitionError(
                str(invoice.id), from_status.value, str(target_status)
            ) from exc

        edge = self._workflow.find(from_status, target)
        if edge is None:
            logger.warning(
                "invoice_transition_rejected",
                extra={
                    "invoice_id": str(invoice.id),
                    "from_status": from_status.value,
                    "to_status": target.value,
                    "reason": "invalid_transition",
                },
            )
            raise InvalidTransitionError(str(invoice.id), from_status.value, target.value)

        if not actor.has(edge.required_capability):
            logger.warning(
                "invoice_transition_rejected",
                extra={
                    "invoice_id": str(invoice.id),
                    "from_status": from_status.value,
                    "to_status": target.value,
                    "actor_id": str(actor.actor_id),
                    "reason": "permission_denied",
                    "required_capability": edge.required_capability.value,
                },
            )
            raise PermissionDeniedError(
                invoice_id=str(invoice.id),
                actor_id=str(actor.actor_id),
                required_capability=edge.required_capability.value,
                to_status=target.value,
            )

        now = self._clock.now()
        notes = _clean_notes(notes)
        values: dict = {
            "status": target.value,
            "reviewer_id": actor.actor_id,
            "reviewer_notes": notes,
            "reviewed_at": now,
            "updated_at": now,
            "updated_by_id": actor.actor_id,
        }
        if target == InvoiceStatus.APPROVED:
            values["approved_by"] = actor.actor_id
            values["approved_at"] = now
        elif target == InvoiceStatus.PAID:
            values["paid_at"] = now

        result = self._session.execute(
            update(InvoiceModel)
            .where(
                InvoiceModel.id == invoice.id,
                InvoiceModel.status == from_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if not self._exists(invoice.id):
                raise InvoiceNotFoundError(str(invoice.id))
            logger.warning(
                "invoice_transition_conflict",
                extra={
                    "invoice_id": str(invoice.id),
                    "expected_status": from_status.value,
                    "to_status": target.value,
                    "actor_id": str(actor.actor_id),
                },
            )
            raise ConcurrentModificationError(str(invoice.id), from_status.value)

        self._audit_log.record(
            AuditRecord(
                entity_type=INVOICE_ENTITY_TYPE,
                entity_id=invoice.id,
                action=edge.audit_action,
                actor_id=actor.actor_id,
                detail={
                    "reviewer_notes": notes,
                    "old_status": from_status.value,
                    "new_status": target.value,
                },
            )
        )

        refreshed = self._load(invoice.id)
        logger.info(
            "invoice_transitioned",
            extra={
                "invoice_id": str(invoice.id),
                "action": edge.action,
                "from_status": from_status.value,
                "to_status": target.value,
                "actor_id": str(actor.actor_id),
            },
        )
        return refreshed.to_dto()

    def _exists(self, invoice_id: UUID) -> bool:
        return self._session.execute(
            select(InvoiceModel.id).where(InvoiceModel.id == invoice_id)
        ).first() is not None

    def _load(self, invoice_id: UUID) -> InvoiceModel:
        model = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model
