"""Read-only query selectors returning frozen DTOs."""

from payables_kernel.selectors.audit_selector import AuditSelector
from payables_kernel.selectors.document_selector import DocumentSelector, InvoiceSelector

__all__ = ["AuditSelector", "DocumentSelector", "InvoiceSelector"]
