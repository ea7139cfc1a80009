"""
RiskAssessmentService -- one-shot risk scoring of a newly uploaded invoice.

Responsibility:
    Ask the risk oracle for a verdict on one invoice and store it: the
    three risk fields together on success, or the failure kind in
    ``risk_assessment_status`` with the risk fields left unset.

Architecture position:
    Services -- imperative shell over RiskAssessmentGateway and the kernel
    models.  Flushes, never commits; ``InvoiceWorkflow`` runs it on its
    executor inside ``session_scope``.

Invariants enforced:
    - Write-once: the UPDATE is conditioned on
      ``risk_assessment_status = 'pending'``; a second call is a no-op.
    - Tier, score and reason are written in the same statement or not at
      all (also a DB check constraint).
    - A degraded verdict is never stored as a real tier.
    - Gateway failures never propagate: they become a status value.

Failure modes:
    - InvoiceNotFoundError if the invoice id does not exist.
    - AuditWriteError / SQLAlchemyError from the persistence layer are
      propagated; the caller's session_scope rolls back.

Audit relevance:
    Exactly one entry per applied outcome: ``risk_assessed`` with the
    verdict, or ``risk_assessment_skipped`` with the failure kind.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from payables_kernel.domain.clock import Clock, SystemClock
from payables_kernel.domain.documents import AuditRecord, RiskAssessment, RiskAssessmentStatus
from payables_kernel.exceptions import (
    GatewayDegradedError,
    GatewayError,
    GatewayQuotaExhaustedError,
    GatewayRateLimitedError,
)
from payables_kernel.logging_config import get_logger
from payables_kernel.models.audit_entry import AuditAction
from payables_kernel.models.invoice import InvoiceModel
from payables_kernel.selectors.document_selector import InvoiceSelector
from payables_kernel.services.audit_log import AuditLogWriter
from payables_kernel.services.lifecycle_service import INVOICE_ENTITY_TYPE
from payables_services.risk_gateway import RiskAssessmentGateway, RiskAssessmentRequest

logger = get_logger("services.risk_assessment")

# Audit actor for entries written on behalf of the risk oracle.
RISK_ORACLE_ACTOR_ID = UUID(int=0)


def failure_status(exc: GatewayError) -> RiskAssessmentStatus:
    """Map a gateway exception onto the status recorded on the invoice."""
    if isinstance(exc, GatewayRateLimitedError):
        return RiskAssessmentStatus.RATE_LIMITED
    if isinstance(exc, GatewayQuotaExhaustedError):
        return RiskAssessmentStatus.QUOTA_EXHAUSTED
    if isinstance(exc, GatewayDegradedError):
        return RiskAssessmentStatus.DEGRADED
    return RiskAssessmentStatus.UNAVAILABLE


class RiskAssessmentService:
    """
    Scores an invoice once and records the outcome.

    Contract:
        ``assess_invoice(invoice_id)`` returns the invoice's resulting
        ``RiskAssessmentStatus``.  It never raises GatewayError.
    """

    def __init__(
        self,
        session: Session,
        gateway: RiskAssessmentGateway,
        clock: Clock | None = None,
        audit_log: AuditLogWriter | None = None,
    ):
        self._session = session
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogWriter(session, self._clock)
        self._invoices = InvoiceSelector(session)

    def assess_invoice(self, invoice_id: UUID) -> RiskAssessmentStatus:
        invoice = self._invoices.get(invoice_id)
        if invoice.risk_assessment_status != RiskAssessmentStatus.PENDING:
            logger.info(
                "risk_assessment_already_recorded",
                extra={
                    "invoice_id": str(invoice_id),
                    "risk_assessment_status": invoice.risk_assessment_status.value,
                },
            )
            return invoice.risk_assessment_status

        request = RiskAssessmentRequest.from_invoice(invoice)
        try:
            assessment = self._gateway.assess(request)
        except GatewayError as exc:
            status = failure_status(exc)
            logger.warning(
                "risk_assessment_failed",
                extra={
                    "invoice_id": str(invoice_id),
                    "error_code": exc.code,
                    "risk_assessment_status": status.value,
                    "reason": str(exc),
                },
            )
            return self._record_skip(invoice_id, status, str(exc))

        if assessment.is_degraded:
            logger.warning(
                "risk_assessment_degraded",
                extra={"invoice_id": str(invoice_id), "reason": assessment.reason},
            )
            return self._record_skip(
                invoice_id, RiskAssessmentStatus.DEGRADED, assessment.reason
            )

        return self._record_verdict(invoice_id, assessment)

    def _claim(self, invoice_id: UUID, values: dict) -> bool:
        now = self._clock.now()
        result = self._session.execute(
            update(InvoiceModel)
            .where(
                InvoiceModel.id == invoice_id,
                InvoiceModel.risk_assessment_status == RiskAssessmentStatus.PENDING.value,
            )
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "risk_assessment_already_recorded",
                extra={"invoice_id": str(invoice_id)},
            )
            return False
        return True

    def _record_verdict(self, invoice_id: UUID, assessment: RiskAssessment) -> RiskAssessmentStatus:
        claimed = self._claim(invoice_id, {
            "risk_level": assessment.tier.value,
            "risk_score": assessment.score,
            "risk_reason": assessment.reason,
            "risk_assessment_status": RiskAssessmentStatus.ASSESSED.value,
        })
        if not claimed:
            return self._invoices.get(invoice_id).risk_assessment_status

        self._audit_log.record(
            AuditRecord(
                entity_type=INVOICE_ENTITY_TYPE,
                entity_id=invoice_id,
                action=AuditAction.RISK_ASSESSED.value,
                actor_id=RISK_ORACLE_ACTOR_ID,
                detail={
                    "risk_level": assessment.tier.value,
                    "risk_score": assessment.score,
                    "reason": assessment.reason,
                },
            )
        )
        logger.info(
            "risk_assessed",
            extra={
                "invoice_id": str(invoice_id),
                "risk_level": assessment.tier.value,
                "risk_score": assessment.score,
            },
        )
        return RiskAssessmentStatus.ASSESSED

    def _record_skip(
        self,
        invoice_id: UUID,
        status: RiskAssessmentStatus,
        reason: str,
    ) -> RiskAssessmentStatus:
        if not self._claim(invoice_id, {"risk_assessment_status": status.value}):
            return self._invoices.get(invoice_id).risk_assessment_status

        self._audit_log.record(
            AuditRecord(
                entity_type=INVOICE_ENTITY_TYPE,
                entity_id=invoice_id,
                action=AuditAction.RISK_ASSESSMENT_SKIPPED.value,
                actor_id=RISK_ORACLE_ACTOR_ID,
                detail={"outcome": status.value, "reason": reason},
            )
        )
        return status
