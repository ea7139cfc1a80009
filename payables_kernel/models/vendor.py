"""
Module: payables_kernel.models.vendor
Responsibility: ORM persistence for vendors.

Architecture position: Kernel > Models.  May import from db/base.py only.

Vendors are reference data maintained by reviewers.  The core reads the
vendor name for the risk assessment request and for notification payloads;
it never mutates vendor rows.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payables_kernel.db.base import TrackedBase


class VendorModel(TrackedBase):
    """Persistent vendor."""

    __tablename__ = "vendors"

    __table_args__ = (
        CheckConstraint(
            "risk_status IN ('low', 'medium', 'high')",
            name="ck_vendors_valid_risk_status",
        ),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    risk_status: Mapped[str] = mapped_column(String(10), nullable=False, default="low")
    total_spend: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
