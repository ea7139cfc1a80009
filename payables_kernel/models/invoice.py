"""
Module: payables_kernel.models.invoice
Responsibility: ORM persistence for vendor invoices and their line items.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for to_dto only).

Invariants enforced (DB check constraints):
    - status is one of the InvoiceStatus values.
    - risk_level and risk_score are both NULL or both set; risk_score is
      within [0, 100].
    - approved_at/approved_by are set iff status is approved or paid.
    - paid_at is set iff status is paid.
    Transition legality itself is enforced by InvoiceLifecycleService; the
    rows are never deleted (db/immutability.py).

Failure modes:
    - IntegrityError if a write would leave the row partially populated
      (e.g. risk tier without score, paid without paid_at).

Audit relevance:
    reviewer_id/reviewer_notes/reviewed_at, approved_by/approved_at and
    paid_at record who moved the invoice and when.  Every status change
    has a matching ``manual_<status>`` audit entry.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payables_kernel.db.base import Base, TrackedBase, UUIDString
from payables_kernel.domain.documents import (
    FileReference,
    Invoice,
    InvoiceLine,
    RiskAssessmentStatus,
    RiskTier,
)
from payables_kernel.domain.values import Money
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.models.vendor import VendorModel


class InvoiceModel(TrackedBase):
    """Persistent vendor invoice."""

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded', 'under_review', 'approved', 'rejected', 'paid')",
            name="ck_invoices_valid_status",
        ),
        CheckConstraint(
            "(risk_level IS NULL AND risk_score IS NULL) OR "
            "(risk_level IS NOT NULL AND risk_score IS NOT NULL)",
            name="ck_invoices_risk_fields_together",
        ),
        CheckConstraint(
            "risk_level IS NULL OR risk_level IN ('low', 'medium', 'high')",
            name="ck_invoices_valid_risk_level",
        ),
        CheckConstraint(
            "risk_score IS NULL OR (risk_score >= 0 AND risk_score <= 100)",
            name="ck_invoices_risk_score_range",
        ),
        CheckConstraint(
            "(status IN ('approved', 'paid') AND approved_at IS NOT NULL "
            "AND approved_by IS NOT NULL) OR "
            "(status NOT IN ('approved', 'paid') AND approved_at IS NULL "
            "AND approved_by IS NULL)",
            name="ck_invoices_approved_fields",
        ),
        CheckConstraint(
            "(status = 'paid' AND paid_at IS NOT NULL) OR "
            "(status <> 'paid' AND paid_at IS NULL)",
            name="ck_invoices_paid_fields",
        ),
        Index("ix_invoices_status_created", "status", "created_at"),
        Index("ix_invoices_po_number", "po_number"),
    )

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("vendors.id"), nullable=True,
    )
    po_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.UPLOADED.value,
    )

    # Risk assessment -- written at most once
    risk_level: Mapped[str | None] = mapped_column(String(10), nullable=True)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_assessment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RiskAssessmentStatus.PENDING.value,
    )

    # Review trail
    reviewer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Storage collaborator reference
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    vendor: Mapped[VendorModel | None] = relationship(lazy="joined")
    lines: Mapped[list[InvoiceLineModel]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLineModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> Invoice:
        """Convert ORM model to frozen domain DTO."""
        file_ref = None
        if self.file_url is not None:
            file_ref = FileReference(
                url=self.file_url,
                name=self.file_name or "",
                mime_type=self.file_type,
            )
        return Invoice(
            id=self.id,
            title=self.title,
            total=Money.of(self.amount, self.currency),
            status=InvoiceStatus(self.status),
            created_by_id=self.created_by_id,
            invoice_number=self.invoice_number,
            description=self.description,
            vendor_id=self.vendor_id,
            vendor_name=self.vendor.name if self.vendor is not None else None,
            po_number=self.po_number,
            due_date=self.due_date,
            lines=tuple(line.to_dto() for line in self.lines),
            file=file_ref,
            risk_tier=RiskTier(self.risk_level) if self.risk_level else None,
            risk_score=self.risk_score,
            risk_reason=self.risk_reason,
            risk_assessment_status=RiskAssessmentStatus(self.risk_assessment_status),
            reviewer_id=self.reviewer_id,
            reviewer_notes=self.reviewer_notes,
            reviewed_at=self.reviewed_at,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            paid_at=self.paid_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class InvoiceLineModel(Base):
    """One billed line of an invoice."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_invoice_lines_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_lines_unit_price"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False, index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="lines")

    def to_dto(self) -> InvoiceLine:
        return InvoiceLine(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            line_number=self.line_number,
        )
