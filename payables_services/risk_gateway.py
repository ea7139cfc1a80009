"""
Risk assessment gateway -- HTTP adapter for the external fraud-risk oracle.

Responsibility:
    Build the PII-minimized request for one invoice, call the scoring
    endpoint, and translate its answer into a ``RiskAssessment`` or a
    typed ``GatewayError``.

Architecture position:
    Services -- the only module that performs network I/O.  Engines never
    import it; ``RiskAssessmentService`` is its sole caller.

Invariants enforced:
    - The request never carries file contents, only the file name.
    - A verdict always carries tier, score and reason together.
    - The oracle's "unable to assess" default is reported as degraded,
      never as a genuine low-risk verdict.
    - One HTTP call per ``assess``; no retries.

Failure modes:
    - 429 -> GatewayRateLimitedError
    - 402 -> GatewayQuotaExhaustedError
    - other non-2xx, connection error, timeout -> GatewayUnavailableError
    - unparseable or incomplete body -> GatewayDegradedError
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Protocol

import requests

from payables_kernel.domain.documents import Invoice, RiskAssessment, RiskTier
from payables_kernel.exceptions import (
    GatewayDegradedError,
    GatewayQuotaExhaustedError,
    GatewayRateLimitedError,
    GatewayUnavailableError,
)
from payables_kernel.logging_config import get_logger

logger = get_logger("services.risk_gateway")

# Prefix of the reason the oracle returns when its model produced no verdict.
DEGRADED_REASON_PREFIX = "unable to assess"


@dataclass(frozen=True)
class RiskAssessmentRequest:
    """Reduced invoice view sent to the oracle."""

    title: str
    invoice_number: str | None
    amount: str
    currency: str
    vendor_name: str | None
    description: str | None
    file_name: str | None

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> RiskAssessmentRequest:
        return cls(
            title=invoice.title,
            invoice_number=invoice.invoice_number,
            amount=str(invoice.total.amount),
            currency=invoice.currency,
            vendor_name=invoice.vendor_name,
            description=invoice.description,
            file_name=invoice.file.name if invoice.file else None,
        )

    def to_payload(self) -> dict[str, Any]:
        return {"invoice": asdict(self)}


class RiskAssessmentGateway(Protocol):
    """Anything that can score an invoice summary."""

    def assess(self, request: RiskAssessmentRequest) -> RiskAssessment:
        ...


def parse_assessment(body: Any) -> RiskAssessment:
    """Translate a response body into a ``RiskAssessment``.

    Raises:
        GatewayDegradedError: missing fields, unknown tier, score outside
            [0, 100], or a body that is not a JSON object.
    """
    if not isinstance(body, dict):
        raise GatewayDegradedError("response body is not a JSON object")

    missing = [k for k in ("risk_level", "risk_score", "reason") if body.get(k) is None]
    if missing:
        raise GatewayDegradedError(f"response missing fields: {', '.join(missing)}")

    try:
        tier = RiskTier(str(body["risk_level"]).strip().lower())
    except ValueError as exc:
        raise GatewayDegradedError(f"unknown risk level {body['risk_level']!r}") from exc

    raw_score = body["risk_score"]
    if isinstance(raw_score, bool):
        raise GatewayDegradedError(f"risk score is not numeric: {raw_score!r}")
    try:
        score = int(Decimal(str(raw_score)).to_integral_value())
    except ArithmeticError as exc:
        raise GatewayDegradedError(f"risk score is not numeric: {raw_score!r}") from exc
    if not 0 <= score <= 100:
        raise GatewayDegradedError(f"risk score out of range: {raw_score}")

    reason = str(body["reason"])
    is_degraded = bool(body.get("degraded")) or reason.strip().lower().startswith(
        DEGRADED_REASON_PREFIX
    )
    return RiskAssessment(tier=tier, score=score, reason=reason, is_degraded=is_degraded)


class HttpRiskAssessmentGateway:
    """Calls the risk-scoring endpoint over HTTPS with ``requests``."""

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.session.headers.update(headers)

    def assess(self, request: RiskAssessmentRequest) -> RiskAssessment:
        """Score one invoice summary.

        Raises:
            GatewayRateLimitedError, GatewayQuotaExhaustedError,
            GatewayUnavailableError, GatewayDegradedError
        """
        try:
            response = self.session.post(
                self.endpoint,
                json=request.to_payload(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise GatewayUnavailableError(
                f"request timed out after {self.timeout}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise GatewayUnavailableError(f"request failed: {exc}") from exc

        if response.status_code == 429:
            raise GatewayRateLimitedError()
        if response.status_code == 402:
            raise GatewayQuotaExhaustedError()
        if not 200 <= response.status_code < 300:
            raise GatewayUnavailableError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayDegradedError("response body is not valid JSON") from exc

        assessment = parse_assessment(body)
        logger.debug(
            "risk_gateway_response",
            extra={
                "status_code": response.status_code,
                "risk_level": assessment.tier.value,
                "risk_score": assessment.score,
                "degraded": assessment.is_degraded,
            },
        )
        return assessment
