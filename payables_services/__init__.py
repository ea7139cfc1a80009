"""
payables_services -- coordinators above the kernel and engines.

Responsibility:
    Risk oracle gateway and scoring service, the notification bus, the
    matching service, and the ``InvoiceWorkflow`` facade that owns
    transactions for callers.

Architecture position:
    Services layer.  May import payables_engines and payables_kernel.
    Neither of those imports payables_services.
"""

from payables_services.risk_gateway import (
    HttpRiskAssessmentGateway,
    RiskAssessmentGateway,
    RiskAssessmentRequest,
    parse_assessment,
)
from payables_services.notifications import (
    InvoiceEvent,
    InvoiceEventType,
    NotificationBus,
)
from payables_services.risk_assessment import RiskAssessmentService
from payables_services.matching_service import MatchingService
from payables_services.invoice_workflow import InvoiceWorkflow, UploadResult

__all__ = [
    "HttpRiskAssessmentGateway",
    "InvoiceEvent",
    "InvoiceEventType",
    "InvoiceWorkflow",
    "MatchingService",
    "NotificationBus",
    "RiskAssessmentGateway",
    "RiskAssessmentRequest",
    "RiskAssessmentService",
    "UploadResult",
    "parse_assessment",
]
