"""
Document and invoice selectors.

Responsibility:
    Read paths for the documents the matching engine consumes and for the
    review queue.  Everything returned is a frozen DTO from
    ``payables_kernel.domain.documents``.

Architecture position:
    Kernel > Selectors -- read-only.
"""

from uuid import UUID

from sqlalchemy import select

from payables_kernel.domain.documents import GoodsReceipt, Invoice, PurchaseOrder
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.exceptions import InvoiceNotFoundError
from payables_kernel.models.invoice import InvoiceModel
from payables_kernel.models.purchasing import GoodsReceiptModel, PurchaseOrderModel
from payables_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector):
    """Invoice lookups and the review queue."""

    def get(self, invoice_id: UUID) -> Invoice:
        """Fresh snapshot of one invoice.

        Raises:
            InvoiceNotFoundError: if the id does not exist.
        """
        model = self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model.to_dto()

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        """Invoices newest first, optionally filtered by status."""
        stmt = select(InvoiceModel).order_by(
            InvoiceModel.created_at.desc(), InvoiceModel.id
        )
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == InvoiceStatus(status).value)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def review_queue(self) -> list[Invoice]:
        """Invoices a reviewer can still act on (uploaded or under review)."""
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.status.in_((
                InvoiceStatus.UPLOADED.value,
                InvoiceStatus.UNDER_REVIEW.value,
            )))
            .order_by(InvoiceModel.created_at.desc(), InvoiceModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]


class DocumentSelector(BaseSelector):
    """Purchase order and goods receipt lookups for matching."""

    def purchase_order(self, po_number: str | None) -> PurchaseOrder | None:
        if not po_number:
            return None
        model = self.session.execute(
            select(PurchaseOrderModel).where(PurchaseOrderModel.po_number == po_number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def goods_receipts(self, po_number: str | None) -> list[GoodsReceipt]:
        """All receipts posted against a PO, oldest first."""
        if not po_number:
            return []
        models = self.session.execute(
            select(GoodsReceiptModel)
            .where(GoodsReceiptModel.po_number == po_number)
            .order_by(GoodsReceiptModel.receipt_date, GoodsReceiptModel.gr_number)
        ).scalars().all()
        return [m.to_dto() for m in models]
