"""
InvoiceWorkflow -- transactional facade over intake, lifecycle, matching
and risk scoring.

Responsibility:
    The command/query surface callers (UI handlers, scripts) use.  Each
    command runs in its own ``session_scope`` so the state change and its
    audit entry commit together, publishes its ``InvoiceEvent`` only after
    the commit, and binds invoice/actor ids into ``LogContext``.

Architecture position:
    Services -- outermost coordinator.  Owns transactions (kernel services
    only flush) and the risk-scoring executor.

Invariants enforced:
    - Events are published after commit, never for rolled-back work.
    - Risk scoring is dispatched after the upload commits, runs on the
      executor in its own session, and can never fail the upload.
    - ConcurrentModificationError is retried at most once, from a
      re-fetched snapshot, by ``transition_latest`` only.

Failure modes:
    - WorkflowError / ConcurrencyError from transitions surface unchanged.
    - InvalidInvoiceUploadError / InvalidCurrencyError from upload validation.
    - Errors inside a risk-scoring task are logged and carried by its
      Future; they never reach the uploader.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from payables_engines.match_types import MatchResult
from payables_engines.matching import MatchPolicy
from payables_engines.recommendation import RecommendationThresholds
from payables_kernel.db.engine import session_scope
from payables_kernel.domain.clock import Clock, SystemClock
from payables_kernel.domain.documents import (
    Actor,
    AuditEntryRecord,
    Invoice,
    RiskAssessmentStatus,
)
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.exceptions import ConcurrentModificationError
from payables_kernel.logging_config import LogContext, get_logger
from payables_kernel.selectors.audit_selector import DEFAULT_RECENT_LIMIT, AuditSelector
from payables_kernel.selectors.document_selector import InvoiceSelector
from payables_kernel.services.intake_service import InvoiceIntakeService, InvoiceUpload
from payables_kernel.services.lifecycle_service import (
    INVOICE_ENTITY_TYPE,
    InvoiceLifecycleService,
)
from payables_services.matching_service import MatchingService
from payables_services.notifications import InvoiceEvent, InvoiceEventType, NotificationBus
from payables_services.risk_assessment import RiskAssessmentService
from payables_services.risk_gateway import RiskAssessmentGateway

logger = get_logger("services.invoice_workflow")


@dataclass(frozen=True)
class UploadResult:
    """The committed invoice and, when scoring is enabled, its pending score."""

    invoice: Invoice
    risk_assessment: Future[RiskAssessmentStatus] | None = None


class InvoiceWorkflow:
    """
    Facade used by the presentation layer.

    Contract:
        Every command commits or raises; every query is read-only.

    Non-goals:
        - Does NOT cache snapshots.  Callers pass back the ``Invoice`` they
          displayed so its status is the compare-and-swap precondition.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        gateway: RiskAssessmentGateway | None = None,
        bus: NotificationBus | None = None,
        executor: Executor | None = None,
        policy: MatchPolicy | None = None,
        thresholds: RecommendationThresholds | None = None,
        max_workers: int = 4,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._gateway = gateway
        self._bus = bus or NotificationBus()
        self._policy = policy
        self._thresholds = thresholds
        self._owns_executor = executor is None and gateway is not None
        if self._owns_executor:
            executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="risk-scoring"
            )
        self._executor = executor

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    def close(self, wait: bool = True) -> None:
        """Shut down the executor this workflow created, if any."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> InvoiceWorkflow:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def upload(self, upload: InvoiceUpload, actor: Actor) -> UploadResult:
        """Record a new invoice and schedule its risk assessment."""
        with LogContext.bind(actor_id=actor.actor_id):
            with session_scope(self._session_factory) as session:
                invoice = InvoiceIntakeService(session, self._clock).upload(upload, actor)

            self._publish(
                InvoiceEventType.INVOICE_UPLOADED,
                invoice.id,
                actor.actor_id,
                {
                    "invoice_number": invoice.invoice_number,
                    "amount": str(invoice.total.amount),
                    "currency": invoice.currency,
                },
            )

            future = None
            if self._gateway is not None and self._executor is not None:
                future = self._executor.submit(self._score, invoice.id)
                logger.info(
                    "risk_assessment_scheduled",
                    extra={"invoice_id": str(invoice.id)},
                )
            return UploadResult(invoice=invoice, risk_assessment=future)

    def assess_risk(self, invoice_id: UUID) -> RiskAssessmentStatus:
        """Run risk scoring synchronously (used by the executor task)."""
        if self._gateway is None:
            raise RuntimeError("No risk assessment gateway configured")
        return self._score(invoice_id)

    def transition(
        self,
        invoice: Invoice,
        target_status: InvoiceStatus | str,
        actor: Actor,
        notes: str | None = None,
    ) -> Invoice:
        """Move ``invoice`` from its snapshot status to ``target_status``."""
        with LogContext.bind(actor_id=actor.actor_id, invoice_id=invoice.id):
            with session_scope(self._session_factory) as session:
                updated = InvoiceLifecycleService(session, self._clock).transition(
                    invoice, target_status, actor, notes
                )

            self._publish(
                InvoiceEventType.INVOICE_TRANSITIONED,
                updated.id,
                actor.actor_id,
                {
                    "from_status": invoice.status.value,
                    "to_status": updated.status.value,
                    "reviewer_notes": updated.reviewer_notes,
                },
            )
            return updated

    def transition_latest(
        self,
        invoice_id: UUID,
        target_status: InvoiceStatus | str,
        actor: Actor,
        notes: str | None = None,
    ) -> Invoice:
        """Transition from the current stored status, retrying once on conflict."""
        snapshot = self.get_invoice(invoice_id)
        try:
            return self.transition(snapshot, target_status, actor, notes)
        except ConcurrentModificationError:
            logger.info(
                "invoice_transition_retry",
                extra={
                    "invoice_id": str(invoice_id),
                    "stale_status": snapshot.status.value,
                },
            )
        return self.transition(self.get_invoice(invoice_id), target_status, actor, notes)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).get(invoice_id)

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).list_invoices(status=status, limit=limit)

    def review_queue(self) -> list[Invoice]:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).review_queue()

    def match(self, invoice_id: UUID) -> MatchResult:
        """Three-way match of a stored invoice, with its stored risk verdict."""
        with LogContext.bind(invoice_id=invoice_id):
            with session_scope(self._session_factory) as session:
                service = MatchingService(session, self._policy, self._thresholds)
                return service.match_invoice(invoice_id)

    def audit_trail(self, invoice_id: UUID) -> list[AuditEntryRecord]:
        with session_scope(self._session_factory) as session:
            return AuditSelector(session).trail(INVOICE_ENTITY_TYPE, invoice_id)

    def recent_activity(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[AuditEntryRecord]:
        with session_scope(self._session_factory) as session:
            return AuditSelector(session).recent(limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _score(self, invoice_id: UUID) -> RiskAssessmentStatus:
        with LogContext.bind(invoice_id=invoice_id):
            try:
                with session_scope(self._session_factory) as session:
                    status = RiskAssessmentService(
                        session, self._gateway, self._clock
                    ).assess_invoice(invoice_id)
            except Exception:
                logger.exception(
                    "risk_assessment_task_failed",
                    extra={"invoice_id": str(invoice_id)},
                )
                raise

            self._publish(
                InvoiceEventType.RISK_ASSESSED,
                invoice_id,
                None,
                {"risk_assessment_status": status.value},
            )
            return status

    def _publish(
        self,
        event_type: InvoiceEventType,
        invoice_id: UUID,
        actor_id: UUID | None,
        payload: dict[str, Any],
    ) -> None:
        self._bus.publish(
            InvoiceEvent(
                event_type=event_type,
                invoice_id=invoice_id,
                occurred_at=self._clock.now(),
                actor_id=actor_id,
                payload=payload,
            )
        )
