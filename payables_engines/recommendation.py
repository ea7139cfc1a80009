"""
Recommendation policy -- maps a match result and optional risk verdict to an action.

Responsibility:
    Turn a ``MatchResult`` (plus the oracle's ``RiskAssessment`` when one
    exists) into Approve / ApproveWithNote / Review / Escalate using
    configurable thresholds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Deterministic: same inputs and thresholds, same recommendation.
    - Risk overrides score: a high risk tier always escalates.
    - A degraded risk verdict counts as no verdict.

Rules, first match wins:
    1. risk tier high                                  -> ESCALATE
    2. price overcharge above both thresholds          -> ESCALATE
    3. nothing received against the PO yet             -> REVIEW
    4. findings are all partial-shipment notes         -> APPROVE_WITH_NOTE
    5. score >= approve_score, risk medium             -> APPROVE_WITH_NOTE
    6. score >= approve_score, risk low or unset       -> APPROVE
    7. otherwise                                       -> REVIEW
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payables_engines.match_types import DiscrepancyKind, MatchResult, Recommendation
from payables_engines.tracer import traced_engine
from payables_kernel.domain.documents import RiskAssessment, RiskTier
from payables_kernel.logging_config import get_logger

logger = get_logger("engines.recommendation")


@dataclass(frozen=True)
class RecommendationThresholds:
    """Policy constants for ``recommend``.

    Attributes:
        approve_score: Minimum score for an unconditional approval.
        material_price_variance_percent: Unit-price variance above which an
            overcharge is material.
        escalation_overcharge_amount: Overcharge (currency units) above which
            a material variance escalates.
    """

    approve_score: Decimal = Decimal("95")
    material_price_variance_percent: Decimal = Decimal("2")
    escalation_overcharge_amount: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.approve_score <= Decimal("100"):
            raise ValueError(f"approve_score must be within [0, 100]: {self.approve_score}")
        if self.material_price_variance_percent < 0:
            raise ValueError("material_price_variance_percent cannot be negative")
        if self.escalation_overcharge_amount < 0:
            raise ValueError("escalation_overcharge_amount cannot be negative")


DEFAULT_THRESHOLDS = RecommendationThresholds()


def _effective_tier(risk: RiskAssessment | None) -> RiskTier | None:
    if risk is None or risk.is_degraded:
        return None
    return risk.tier


def _has_material_overcharge(result: MatchResult, thresholds: RecommendationThresholds) -> bool:
    for d in result.discrepancies:
        if d.kind != DiscrepancyKind.PRICE_VARIANCE or d.overcharge <= 0:
            continue
        if d.overcharge <= thresholds.escalation_overcharge_amount:
            continue
        # No PO price to compare against: any overcharge is material.
        if d.variance_percent is None or d.variance_percent > thresholds.material_price_variance_percent:
            return True
    return False


def decide(
    match_result: MatchResult,
    risk_assessment: RiskAssessment | None = None,
    thresholds: RecommendationThresholds | None = None,
) -> tuple[Recommendation, str]:
    """Return the recommendation and the name of the rule that produced it."""
    t = thresholds or DEFAULT_THRESHOLDS
    tier = _effective_tier(risk_assessment)

    if tier == RiskTier.HIGH:
        return Recommendation.ESCALATE, "high_risk"
    if _has_material_overcharge(match_result, t):
        return Recommendation.ESCALATE, "material_overcharge"
    if match_result.awaiting_receipt:
        return Recommendation.REVIEW, "no_goods_receipt"
    if match_result.only_partial_shipment:
        return Recommendation.APPROVE_WITH_NOTE, "partial_shipment"
    if match_result.score >= t.approve_score:
        if tier == RiskTier.MEDIUM:
            return Recommendation.APPROVE_WITH_NOTE, "medium_risk"
        return Recommendation.APPROVE, "score_above_threshold"
    return Recommendation.REVIEW, "score_below_threshold"


@traced_engine(
    "recommendation", "1.0",
    fingerprint_fields=("match_result", "risk_assessment", "thresholds"),
)
def recommend(
    match_result: MatchResult,
    risk_assessment: RiskAssessment | None = None,
    thresholds: RecommendationThresholds | None = None,
) -> Recommendation:
    """Recommend a reviewer action for a matched invoice."""
    recommendation, rule = decide(match_result, risk_assessment, thresholds)
    logger.debug(
        "recommendation_decided",
        extra={
            "invoice_id": str(match_result.invoice_id),
            "score": str(match_result.score),
            "risk_tier": _effective_tier(risk_assessment),
            "rule": rule,
            "recommendation": recommendation.value,
        },
    )
    return recommendation
