"""
MatchingService -- three-way match of a stored invoice.

Responsibility:
    Load an invoice, the purchase order it references and every goods
    receipt posted against that PO; merge the receipts; run the matching
    engine; then apply the recommendation policy with the invoice's stored
    risk verdict.

Architecture position:
    Services -- read-only coordinator.  Reads through kernel selectors,
    computes through payables_engines.  Writes nothing; the result is
    recomputed on demand and never persisted.

Failure modes:
    - InvoiceNotFoundError for an unknown invoice id.
    - MatchValidationError for malformed documents.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy.orm import Session

from payables_engines.match_types import MatchResult
from payables_engines.matching import MatchPolicy, ThreeWayMatchEngine, combine_receipts
from payables_engines.recommendation import RecommendationThresholds, recommend
from payables_kernel.domain.documents import Invoice
from payables_kernel.logging_config import get_logger
from payables_kernel.selectors.document_selector import DocumentSelector, InvoiceSelector

logger = get_logger("services.matching")


class MatchingService:
    """Matches persisted invoices against their PO and receipts."""

    def __init__(
        self,
        session: Session,
        policy: MatchPolicy | None = None,
        thresholds: RecommendationThresholds | None = None,
    ):
        self._invoices = InvoiceSelector(session)
        self._documents = DocumentSelector(session)
        self._engine = ThreeWayMatchEngine(policy, thresholds)
        self._thresholds = thresholds

    def match_invoice(self, invoice_id: UUID) -> MatchResult:
        return self.match(self._invoices.get(invoice_id))

    def match(self, invoice: Invoice) -> MatchResult:
        purchase_order = self._documents.purchase_order(invoice.po_number)
        receipts = self._documents.goods_receipts(invoice.po_number) if purchase_order else []
        goods_receipt = combine_receipts(receipts)

        result = self._engine.match(invoice, purchase_order, goods_receipt)
        risk = invoice.risk_assessment
        if risk is None:
            return result

        recommendation = recommend(result, risk, self._thresholds)
        if recommendation != result.recommendation:
            logger.info(
                "match_recommendation_adjusted_for_risk",
                extra={
                    "invoice_id": str(invoice.id),
                    "risk_tier": risk.tier.value,
                    "match_recommendation": result.recommendation.value,
                    "recommendation": recommendation.value,
                },
            )
        return replace(result, recommendation=recommendation)
