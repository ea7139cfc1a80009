"""
Document snapshots and collaborator value objects.

Responsibility:
    Frozen views of the documents the core reasons about (invoice,
    purchase order, goods receipt), the acting user, and the risk
    oracle's verdict.  Services convert ORM rows into these DTOs; engines
    consume only these.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Quantities and prices are ``Decimal``.
    - A ``RiskAssessment`` always carries tier, score and reason together;
      score is within [0, 100].
    - ``Actor.has(REVIEWER)`` is true for admins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from payables_kernel.domain.values import Money
from payables_kernel.domain.workflow import Capability, InvoiceStatus


class RiskTier(str, Enum):
    """Coarse fraud-risk classification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskAssessmentStatus(str, Enum):
    """Outcome of the one-shot risk scoring call.

    Only ``ASSESSED`` means the risk fields hold a genuine verdict; every
    other value means they are unset and why.
    """

    PENDING = "pending"
    ASSESSED = "assessed"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UNAVAILABLE = "unavailable"


class ReceiptLineStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    SHORT = "short"


@dataclass(frozen=True)
class Actor:
    """Authenticated actor and its capability set."""

    actor_id: UUID
    capabilities: frozenset[Capability] = frozenset()
    display_name: str = ""

    @classmethod
    def from_role(cls, actor_id: UUID, role: str, display_name: str = "") -> Actor:
        """Map an app role (``admin``, ``reviewer``, ``user``) to capabilities."""
        caps: frozenset[Capability]
        if role == "admin":
            caps = frozenset({Capability.ADMIN, Capability.REVIEWER})
        elif role == "reviewer":
            caps = frozenset({Capability.REVIEWER})
        else:
            caps = frozenset()
        return cls(actor_id=actor_id, capabilities=caps, display_name=display_name)

    def has(self, capability: Capability) -> bool:
        if capability in self.capabilities:
            return True
        return capability == Capability.REVIEWER and Capability.ADMIN in self.capabilities


@dataclass(frozen=True)
class FileReference:
    """Resolved storage reference for an uploaded invoice file."""

    url: str
    name: str
    mime_type: str | None = None


@dataclass(frozen=True)
class RiskAssessment:
    """Verdict returned by the risk assessment oracle."""

    tier: RiskTier
    score: int
    reason: str
    is_degraded: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError(f"Risk score out of range: {self.score}")


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_number: int = 0

    @property
    def extended(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class Invoice:
    """Read snapshot of a persisted invoice.

    The ``status`` captured here is the expected "from" state when the
    snapshot is handed to ``InvoiceLifecycleService.transition``.
    """

    id: UUID
    title: str
    total: Money
    status: InvoiceStatus
    created_by_id: UUID
    invoice_number: str | None = None
    description: str | None = None
    vendor_id: UUID | None = None
    vendor_name: str | None = None
    po_number: str | None = None
    due_date: date | None = None
    lines: tuple[InvoiceLine, ...] = ()
    file: FileReference | None = None
    risk_tier: RiskTier | None = None
    risk_score: int | None = None
    risk_reason: str | None = None
    risk_assessment_status: RiskAssessmentStatus = RiskAssessmentStatus.PENDING
    reviewer_id: UUID | None = None
    reviewer_notes: str | None = None
    reviewed_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def currency(self) -> str:
        return self.total.currency.code

    @property
    def risk_assessment(self) -> RiskAssessment | None:
        """The stored verdict, or None when risk fields are unset."""
        if self.risk_tier is None or self.risk_score is None:
            return None
        return RiskAssessment(
            tier=self.risk_tier,
            score=self.risk_score,
            reason=self.risk_reason or "",
        )


@dataclass(frozen=True)
class PurchaseOrderLine:
    description: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def extended(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class PurchaseOrder:
    id: UUID
    po_number: str
    currency: str
    lines: tuple[PurchaseOrderLine, ...]
    vendor_id: UUID | None = None
    order_date: date | None = None
    status: str = "pending"

    @property
    def total(self) -> Decimal:
        return sum((line.extended for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class GoodsReceiptLine:
    description: str
    quantity_ordered: Decimal
    quantity_received: Decimal
    status: ReceiptLineStatus = ReceiptLineStatus.COMPLETE


@dataclass(frozen=True)
class GoodsReceipt:
    id: UUID
    gr_number: str
    po_number: str
    lines: tuple[GoodsReceiptLine, ...]
    receipt_date: date | None = None
    received_by: str | None = None
    currency: str | None = None


@dataclass(frozen=True)
class AuditRecord:
    """An audit entry to be appended by ``AuditLogWriter.record``."""

    entity_type: str
    entity_id: UUID
    action: str
    actor_id: UUID
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEntryRecord:
    """Read view of a persisted audit entry."""

    id: UUID
    seq: int
    entity_type: str
    entity_id: UUID
    action: str
    actor_id: UUID
    performed_at: datetime
    detail: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str
