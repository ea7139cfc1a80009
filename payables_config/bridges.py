"""
Config -> engine and service bridges.

Functions that convert a ``PayablesConfig`` into the objects engines and
services consume.  They live here (the producer) because neither the
kernel nor the engines import payables_config.

Usage:
    from payables_config import get_active_config
    from payables_config.bridges import build_risk_gateway, to_match_policy, to_thresholds

    config = get_active_config()
    engine = ThreeWayMatchEngine(to_match_policy(config), to_thresholds(config))
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal

from payables_config.schema import PayablesConfig
from payables_engines.matching import MatchPolicy
from payables_engines.recommendation import RecommendationThresholds
from payables_services.risk_gateway import HttpRiskAssessmentGateway


def to_match_policy(config: PayablesConfig) -> MatchPolicy:
    m = config.matching
    return MatchPolicy(
        price_tolerance_percent=Decimal(m.price_tolerance_percent),
        quantity_weight=Decimal(m.quantity_weight),
        price_weight=Decimal(m.price_weight),
        missing_line_weight=Decimal(m.missing_line_weight),
        partial_shipment_weight=Decimal(m.partial_shipment_weight),
        missing_receipt_weight=Decimal(m.missing_receipt_weight),
        score_precision=Decimal(m.score_precision),
    )


def to_thresholds(config: PayablesConfig) -> RecommendationThresholds:
    r = config.recommendation
    return RecommendationThresholds(
        approve_score=Decimal(r.approve_score),
        material_price_variance_percent=Decimal(r.material_price_variance_percent),
        escalation_overcharge_amount=Decimal(r.escalation_overcharge_amount),
    )


def resolve_api_key(
    config: PayablesConfig,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Read the gateway key from the environment variable named in config."""
    env = os.environ if environ is None else environ
    return env.get(config.risk_gateway.api_key_env) or None


def build_risk_gateway(
    config: PayablesConfig,
    environ: Mapping[str, str] | None = None,
) -> HttpRiskAssessmentGateway | None:
    """HTTP gateway for the configured endpoint, or None when disabled."""
    gateway = config.risk_gateway
    if not gateway.enabled or not gateway.endpoint:
        return None
    return HttpRiskAssessmentGateway(
        endpoint=gateway.endpoint,
        api_key=resolve_api_key(config, environ),
        timeout=float(gateway.timeout_seconds),
    )
