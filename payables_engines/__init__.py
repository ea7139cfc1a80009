"""
Module: payables_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: the three-way matching engine and the
    recommendation policy.  This is the canonical import surface for
    payables_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payables_kernel domain types, exceptions and utils.
    MUST NOT import payables_services.

Invariants enforced:
    - Purity: engines never read the clock or the database; every input is
      an explicit parameter.
    - Decimal-only arithmetic: quantities, prices, penalties and scores are
      ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - MatchValidationError on malformed documents.
    - ValueError from policy/threshold dataclasses on invalid configuration.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``payables_engines.tracer``), emitting PAYABLES_ENGINE_TRACE records.

Usage:
    from payables_engines import ThreeWayMatchEngine, recommend
"""

from payables_kernel.logging_config import get_logger

logger = get_logger("engines")

from payables_engines.match_types import (
    Discrepancy,
    DiscrepancyKind,
    MatchResult,
    MissingLineScope,
    Recommendation,
)
from payables_engines.matching import (
    DEFAULT_POLICY,
    MatchPolicy,
    ThreeWayMatchEngine,
    combine_receipts,
    match_three_way,
    normalize_description,
)
from payables_engines.recommendation import (
    DEFAULT_THRESHOLDS,
    RecommendationThresholds,
    decide,
    recommend,
)
from payables_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DEFAULT_POLICY",
    "DEFAULT_THRESHOLDS",
    "Discrepancy",
    "DiscrepancyKind",
    "MatchPolicy",
    "MatchResult",
    "MissingLineScope",
    "Recommendation",
    "RecommendationThresholds",
    "ThreeWayMatchEngine",
    "combine_receipts",
    "compute_input_fingerprint",
    "decide",
    "match_three_way",
    "normalize_description",
    "recommend",
    "traced_engine",
]
