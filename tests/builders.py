"""Document builders shared by the engine and service tests."""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from payables_kernel.domain.documents import (
    GoodsReceipt,
    GoodsReceiptLine,
    Invoice,
    InvoiceLine,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLineStatus,
    RiskTier,
)
from payables_kernel.domain.values import Money
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.services.intake_service import InvoiceUpload

TEST_ACTOR_ID = uuid4()

ACME_LINES = (
    ("Steel bearings - Type A", "500", "45.50"),
    ("Hydraulic seals - Kit B", "250", "90.00"),
)


def make_upload(
    lines=ACME_LINES,
    total: str | None = None,
    po_number: str | None = "PO-2026-001",
    vendor_id: UUID | None = None,
    currency: str = "USD",
    title: str = "Acme bearings and seals",
    invoice_number: str | None = "INV-8834",
) -> InvoiceUpload:
    """Upload form contents; the total defaults to the sum of the lines."""
    invoice_lines = tuple(InvoiceLine(d, Decimal(q), Decimal(p)) for d, q, p in lines)
    amount = Decimal(total) if total is not None else sum(
        (l.extended for l in invoice_lines), Decimal("0")
    )
    return InvoiceUpload(
        title=title,
        total=Money.of(amount, currency),
        invoice_number=invoice_number,
        vendor_id=vendor_id,
        po_number=po_number,
        due_date=date(2026, 3, 4),
        lines=invoice_lines,
    )


def build_invoice(
    lines,
    total: str | None = None,
    currency: str = "USD",
    po_number: str | None = "PO-TEST",
    invoice_id: UUID | None = None,
    risk_tier: RiskTier | None = None,
    risk_score: int | None = None,
) -> Invoice:
    invoice_lines = tuple(
        InvoiceLine(d, Decimal(q), Decimal(p), line_number=i)
        for i, (d, q, p) in enumerate(lines, start=1)
    )
    amount = Decimal(total) if total is not None else sum(
        (l.extended for l in invoice_lines), Decimal("0")
    )
    return Invoice(
        id=invoice_id or UUID("11111111-1111-1111-1111-111111111111"),
        title="Test invoice",
        total=Money.of(amount, currency),
        status=InvoiceStatus.UPLOADED,
        created_by_id=TEST_ACTOR_ID,
        po_number=po_number,
        lines=invoice_lines,
        risk_tier=risk_tier,
        risk_score=risk_score,
        risk_reason="test verdict" if risk_tier is not None else None,
    )


def build_po(lines, po_number: str = "PO-TEST", currency: str = "USD") -> PurchaseOrder:
    return PurchaseOrder(
        id=UUID("22222222-2222-2222-2222-222222222222"),
        po_number=po_number,
        currency=currency,
        lines=tuple(PurchaseOrderLine(d, Decimal(q), Decimal(p)) for d, q, p in lines),
    )


def build_gr(
    lines,
    po_number: str = "PO-TEST",
    gr_number: str = "GR-TEST",
    currency: str | None = None,
    receipt_date: date | None = None,
) -> GoodsReceipt:
    """Receipt from (description, ordered, received) triples."""
    built = []
    for d, ordered, received in lines:
        o, r = Decimal(ordered), Decimal(received)
        if r >= o:
            status = ReceiptLineStatus.COMPLETE
        elif r > 0:
            status = ReceiptLineStatus.PARTIAL
        else:
            status = ReceiptLineStatus.SHORT
        built.append(GoodsReceiptLine(d, o, r, status))
    return GoodsReceipt(
        id=uuid4(),
        gr_number=gr_number,
        po_number=po_number,
        lines=tuple(built),
        receipt_date=receipt_date,
        currency=currency,
    )
