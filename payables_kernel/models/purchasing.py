"""
Module: payables_kernel.models.purchasing
Responsibility: ORM persistence for purchase orders and goods receipts as
    mirrored from the ERP collaborator.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for to_dto only).

These tables are populated by the ERP sync (or the demo seed script) and
are read-only to the core.  The core only ever reads them through
DocumentSelector, which hands frozen snapshots to the matching engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables_kernel.db.base import Base, UUIDString
from payables_kernel.domain.documents import (
    GoodsReceipt,
    GoodsReceiptLine,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLineStatus,
)


class PurchaseOrderModel(Base):
    """Persistent purchase order header."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'partial', 'received')",
            name="ck_purchase_orders_valid_status",
        ),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    vendor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("vendors.id"), nullable=True,
    )
    order_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    lines: Mapped[list[PurchaseOrderLineModel]] = relationship(
        order_by="PurchaseOrderLineModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> PurchaseOrder:
        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            currency=self.currency,
            lines=tuple(line.to_dto() for line in self.lines),
            vendor_id=self.vendor_id,
            order_date=self.order_date,
            status=self.status,
        )


class PurchaseOrderLineModel(Base):
    __tablename__ = "purchase_order_lines"

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False, index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> PurchaseOrderLine:
        return PurchaseOrderLine(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class GoodsReceiptModel(Base):
    """Persistent goods receipt header."""

    __tablename__ = "goods_receipts"

    gr_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    po_number: Mapped[str] = mapped_column(
        String(50), ForeignKey("purchase_orders.po_number"), nullable=False, index=True,
    )
    receipt_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    lines: Mapped[list[GoodsReceiptLineModel]] = relationship(
        order_by="GoodsReceiptLineModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> GoodsReceipt:
        return GoodsReceipt(
            id=self.id,
            gr_number=self.gr_number,
            po_number=self.po_number,
            lines=tuple(line.to_dto() for line in self.lines),
            receipt_date=self.receipt_date,
            received_by=self.received_by,
            currency=self.currency,
        )


class GoodsReceiptLineModel(Base):
    __tablename__ = "goods_receipt_lines"

    __table_args__ = (
        CheckConstraint(
            "status IN ('complete', 'partial', 'short')",
            name="ck_goods_receipt_lines_valid_status",
        ),
    )

    goods_receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods_receipts.id"), nullable=False, index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="complete")

    def to_dto(self) -> GoodsReceiptLine:
        return GoodsReceiptLine(
            description=self.description,
            quantity_ordered=self.quantity_ordered,
            quantity_received=self.quantity_received,
            status=ReceiptLineStatus(self.status),
        )
