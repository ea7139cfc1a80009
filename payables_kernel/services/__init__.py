"""Kernel services: flush-only writers that never commit."""

from payables_kernel.services.audit_log import AuditLogWriter
from payables_kernel.services.intake_service import InvoiceIntakeService, InvoiceUpload
from payables_kernel.services.lifecycle_service import InvoiceLifecycleService
from payables_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditLogWriter",
    "InvoiceIntakeService",
    "InvoiceLifecycleService",
    "InvoiceUpload",
    "SequenceService",
]
