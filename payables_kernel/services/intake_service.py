"""
InvoiceIntakeService -- records newly uploaded invoices.

Responsibility:
    Persists an invoice in ``uploaded`` status from the details the upload
    form collected and the resolved storage reference, with its line items,
    and appends the ``invoice_uploaded`` audit entry.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes, never commits.

Invariants enforced:
    - New invoices always start in ``INVOICE_WORKFLOW.initial_state`` with
      risk fields unset and ``risk_assessment_status = pending``.
    - Amount, quantities and unit prices are non-negative Decimals.

Failure modes:
    - InvalidInvoiceUploadError on negative amounts or blank title.
    - InvalidCurrencyError on a malformed currency code.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from payables_kernel.domain.clock import Clock, SystemClock
from payables_kernel.domain.documents import (
    Actor,
    AuditRecord,
    FileReference,
    Invoice,
    InvoiceLine,
    RiskAssessmentStatus,
)
from payables_kernel.domain.values import Money
from payables_kernel.domain.workflow import INVOICE_WORKFLOW
from payables_kernel.exceptions import InvalidInvoiceUploadError
from payables_kernel.logging_config import get_logger
from payables_kernel.models.audit_entry import AuditAction
from payables_kernel.models.invoice import InvoiceLineModel, InvoiceModel
from payables_kernel.services.audit_log import AuditLogWriter
from payables_kernel.services.lifecycle_service import INVOICE_ENTITY_TYPE

logger = get_logger("services.intake")


@dataclass(frozen=True)
class InvoiceUpload:
    """Details captured at upload time."""

    title: str
    total: Money
    invoice_number: str | None = None
    description: str | None = None
    vendor_id: UUID | None = None
    po_number: str | None = None
    due_date: date | None = None
    lines: tuple[InvoiceLine, ...] = ()
    file: FileReference | None = None


class InvoiceIntakeService:
    """Creates invoice records in ``uploaded`` status."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogWriter | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogWriter(session, self._clock)

    def upload(self, upload: InvoiceUpload, actor: Actor) -> Invoice:
        if not upload.title or not upload.title.strip():
            raise InvalidInvoiceUploadError("title", "title is required")
        if upload.total.is_negative():
            raise InvalidInvoiceUploadError("total", f"amount must not be negative: {upload.total}")
        for line in upload.lines:
            if line.quantity < 0 or line.unit_price < 0:
                raise InvalidInvoiceUploadError(
                    "lines", f"line {line.description!r} has a negative value"
                )

        now = self._clock.now()
        model = InvoiceModel(
            title=upload.title.strip(),
            invoice_number=upload.invoice_number,
            description=upload.description,
            vendor_id=upload.vendor_id,
            po_number=upload.po_number,
            amount=upload.total.amount,
            currency=upload.total.currency.code,
            due_date=upload.due_date,
            status=INVOICE_WORKFLOW.initial_state.value,
            risk_assessment_status=RiskAssessmentStatus.PENDING.value,
            file_url=upload.file.url if upload.file else None,
            file_name=upload.file.name if upload.file else None,
            file_type=upload.file.mime_type if upload.file else None,
            created_at=now,
            updated_at=now,
            created_by_id=actor.actor_id,
        )
        model.lines = [
            InvoiceLineModel(
                line_number=line.line_number or index,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for index, line in enumerate(upload.lines, start=1)
        ]
        self._session.add(model)
        self._session.flush()

        self._audit_log.record(
            AuditRecord(
                entity_type=INVOICE_ENTITY_TYPE,
                entity_id=model.id,
                action=AuditAction.INVOICE_UPLOADED.value,
                actor_id=actor.actor_id,
                detail={
                    "invoice_number": upload.invoice_number,
                    "amount": upload.total.amount,
                    "currency": upload.total.currency.code,
                    "po_number": upload.po_number,
                    "file_name": upload.file.name if upload.file else None,
                },
            )
        )

        logger.info(
            "invoice_uploaded",
            extra={
                "invoice_id": str(model.id),
                "invoice_number": upload.invoice_number,
                "amount": str(upload.total.amount),
                "currency": upload.total.currency.code,
                "line_count": len(upload.lines),
            },
        )
        self._session.refresh(model)
        return model.to_dto()
