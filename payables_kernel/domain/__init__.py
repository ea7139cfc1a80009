"""
Pure domain layer.

Frozen value objects, document snapshots and the invoice lifecycle
transition table, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from payables_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payables_kernel.domain.documents import (
    Actor,
    AuditEntryRecord,
    AuditRecord,
    FileReference,
    GoodsReceipt,
    GoodsReceiptLine,
    Invoice,
    InvoiceLine,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLineStatus,
    RiskAssessment,
    RiskAssessmentStatus,
    RiskTier,
)
from payables_kernel.domain.values import Currency, Money
from payables_kernel.domain.workflow import (
    INVOICE_WORKFLOW,
    Capability,
    TERMINAL_INVOICE_STATUSES,
    InvoiceStatus,
    Transition,
    Workflow,
)

__all__ = [
    "Actor",
    "AuditEntryRecord",
    "AuditRecord",
    "Capability",
    "Clock",
    "Currency",
    "DeterministicClock",
    "FileReference",
    "GoodsReceipt",
    "GoodsReceiptLine",
    "INVOICE_WORKFLOW",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "Money",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "ReceiptLineStatus",
    "RiskAssessment",
    "RiskAssessmentStatus",
    "RiskTier",
    "SystemClock",
    "TERMINAL_INVOICE_STATUSES",
    "Transition",
    "Workflow",
]
