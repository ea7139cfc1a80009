"""ORM models for the payables kernel."""

from payables_kernel.models.audit_entry import AuditAction, AuditEntry
from payables_kernel.models.invoice import InvoiceLineModel, InvoiceModel
from payables_kernel.models.purchasing import (
    GoodsReceiptLineModel,
    GoodsReceiptModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
)
from payables_kernel.models.vendor import VendorModel

__all__ = [
    "AuditAction",
    "AuditEntry",
    "GoodsReceiptLineModel",
    "GoodsReceiptModel",
    "InvoiceLineModel",
    "InvoiceModel",
    "PurchaseOrderLineModel",
    "PurchaseOrderModel",
    "VendorModel",
]
