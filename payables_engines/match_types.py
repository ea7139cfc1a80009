"""
Match result types shared by the matching engine and the recommendation policy.

Pure frozen value objects, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class Recommendation(str, Enum):
    """Recommended reviewer action."""

    APPROVE = "approve"
    APPROVE_WITH_NOTE = "approve_with_note"
    REVIEW = "review"
    ESCALATE = "escalate"


class DiscrepancyKind(str, Enum):
    NO_PO_REFERENCE = "no_po_reference"
    CURRENCY_MISMATCH = "currency_mismatch"
    NO_GOODS_RECEIPT = "no_goods_receipt"
    QUANTITY_SHORT = "quantity_short"
    QUANTITY_OVER = "quantity_over"
    PRICE_VARIANCE = "price_variance"
    MISSING_LINE = "missing_line"
    PARTIAL_SHIPMENT = "partial_shipment"


class MissingLineScope(str, Enum):
    NOT_INVOICED = "not_invoiced"
    NOT_ON_PO = "not_on_po"


# Tie-break order when two discrepancies have equal monetary impact.
KIND_ORDER: dict[DiscrepancyKind, int] = {
    kind: index for index, kind in enumerate(DiscrepancyKind)
}


@dataclass(frozen=True)
class Discrepancy:
    """One finding of the three-way match.

    ``penalty`` is the number of score points this finding removed.
    ``PARTIAL_SHIPMENT`` findings are informational notes.
    """

    kind: DiscrepancyKind
    description: str
    message: str
    expected: Decimal | None = None
    actual: Decimal | None = None
    monetary_impact: Decimal = Decimal("0")
    penalty: Decimal = Decimal("0")
    overcharge: Decimal = Decimal("0")
    variance_percent: Decimal | None = None
    scope: MissingLineScope | None = None

    @property
    def is_informational(self) -> bool:
        return self.kind == DiscrepancyKind.PARTIAL_SHIPMENT


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one invoice against its PO and goods receipt.

    Recomputed from inputs, never persisted.  ``fingerprint`` identifies
    the exact inputs and policy that produced it.
    """

    invoice_id: UUID
    score: Decimal
    discrepancies: tuple[Discrepancy, ...]
    recommendation: Recommendation
    fingerprint: str
    po_number: str | None = None
    gr_number: str | None = None
    currency: str | None = None

    @property
    def kinds(self) -> frozenset[DiscrepancyKind]:
        return frozenset(d.kind for d in self.discrepancies)

    @property
    def is_clean(self) -> bool:
        return not self.discrepancies

    @property
    def only_partial_shipment(self) -> bool:
        """True when there are findings and every one is a partial-shipment note."""
        return bool(self.discrepancies) and all(d.is_informational for d in self.discrepancies)

    @property
    def awaiting_receipt(self) -> bool:
        """True when nothing has been received against the purchase order yet."""
        return DiscrepancyKind.NO_GOODS_RECEIPT in self.kinds

    @property
    def total_overcharge(self) -> Decimal:
        return sum(
            (d.overcharge for d in self.discrepancies if d.kind == DiscrepancyKind.PRICE_VARIANCE),
            Decimal("0"),
        )
