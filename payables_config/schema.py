"""
Payables configuration schema.

Frozen dataclasses for the human-authored YAML configuration set.  The
loader parses YAML into these types; bridges turn them into engine
inputs.  Decimal-valued settings are carried as strings so the YAML stays
free of float rounding.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Matching and recommendation policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchingConfig:
    """Three-way match tolerances and penalty weights."""

    price_tolerance_percent: str = "0"
    quantity_weight: str = "0.7"
    price_weight: str = "6"
    missing_line_weight: str = "0.1"
    partial_shipment_weight: str = "0"
    missing_receipt_weight: str = "0"
    score_precision: str = "0.01"


@dataclass(frozen=True)
class RecommendationConfig:
    """Thresholds mapping a match score and risk verdict to an action."""

    approve_score: str = "95"
    material_price_variance_percent: str = "2"
    escalation_overcharge_amount: str = "0"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskGatewayConfig:
    """Risk oracle endpoint.

    ``api_key_env`` names the environment variable holding the bearer key;
    the key itself never appears in configuration files.
    """

    endpoint: str | None = None
    api_key_env: str = "PAYABLES_RISK_API_KEY"
    timeout_seconds: float = 30.0
    max_workers: int = 4
    enabled: bool = False


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///payables.db"
    echo: bool = False


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayablesConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    risk_gateway: RiskGatewayConfig = field(default_factory=RiskGatewayConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    checksum: str = ""
