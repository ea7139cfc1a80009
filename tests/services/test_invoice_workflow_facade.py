"""
Tests for the InvoiceWorkflow facade.

Covers:
- Upload commits before its event is published and before scoring starts
- Risk scoring on the executor: verdicts, failures, crashes
- Transition events and subscriber isolation
- Matching stored invoices against the seeded purchasing documents
- Read queries (lists, review queue, audit trail, recent activity)
"""

import threading
from decimal import Decimal

import pytest

from payables_engines.match_types import DiscrepancyKind, Recommendation
from payables_kernel.db.engine import session_scope
from payables_kernel.domain.documents import RiskAssessment, RiskAssessmentStatus, RiskTier
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.exceptions import (
    AuditWriteError,
    GatewayRateLimitedError,
    InvalidInvoiceUploadError,
    InvalidTransitionError,
)
from payables_kernel.selectors.document_selector import InvoiceSelector
from payables_kernel.services.audit_log import AuditLogWriter
from payables_services.invoice_workflow import InvoiceWorkflow
from payables_services.notifications import InvoiceEventType, NotificationBus
from tests.builders import make_upload


class StubGateway:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    def assess(self, request):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSubscriber:
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def events():
    return RecordingSubscriber()


@pytest.fixture
def make_workflow(session_factory, clock, events):
    created = []

    def _make(gateway=None, **kwargs):
        bus = NotificationBus()
        bus.subscribe(events)
        wf = InvoiceWorkflow(session_factory, clock=clock, gateway=gateway, bus=bus, **kwargs)
        created.append(wf)
        return wf

    yield _make
    for wf in created:
        wf.close()


@pytest.fixture
def workflow(make_workflow):
    return make_workflow()


class TestUpload:
    def test_upload_returns_committed_invoice(self, workflow, session_factory, clerk):
        result = workflow.upload(make_upload(), clerk)

        assert result.invoice.status == InvoiceStatus.UPLOADED
        assert result.invoice.created_by_id == clerk.actor_id
        assert result.risk_assessment is None
        with session_scope(session_factory) as s:
            assert InvoiceSelector(s).get(result.invoice.id).total.amount == Decimal("45250")

    def test_event_published_after_commit(self, workflow, session_factory, clerk):
        seen_in_db = []

        def check_committed(event):
            with session_scope(session_factory) as s:
                seen_in_db.append(InvoiceSelector(s).get(event.invoice_id).id)

        workflow.bus.subscribe(check_committed, [InvoiceEventType.INVOICE_UPLOADED])
        result = workflow.upload(make_upload(), clerk)

        assert seen_in_db == [result.invoice.id]

    def test_upload_event_payload(self, workflow, events, clerk, clock):
        result = workflow.upload(make_upload(), clerk)

        (event,) = events.of_type(InvoiceEventType.INVOICE_UPLOADED)
        assert event.invoice_id == result.invoice.id
        assert event.actor_id == clerk.actor_id
        assert event.occurred_at == clock.now()
        assert event.payload["invoice_number"] == "INV-8834"
        assert event.payload["currency"] == "USD"

    def test_rejected_upload_publishes_nothing(self, workflow, events, clerk):
        with pytest.raises(InvalidInvoiceUploadError) as exc_info:
            workflow.upload(make_upload(total="-1"), clerk)

        assert exc_info.value.code == "INVALID_UPLOAD"
        assert exc_info.value.field == "total"

        assert events.events == []
        assert workflow.list_invoices() == []

    @pytest.mark.parametrize("upload, field", [
        (make_upload(title="   "), "title"),
        (make_upload(lines=[("Steel bearings - Type A", "-5", "45.50")], total="0"), "lines"),
    ])
    def test_invalid_upload_is_typed(self, workflow, clerk, upload, field):
        with pytest.raises(InvalidInvoiceUploadError) as exc_info:
            workflow.upload(upload, clerk)

        assert exc_info.value.field == field
        assert workflow.list_invoices() == []

    def test_no_gateway_leaves_assessment_pending(self, workflow, clerk):
        result = workflow.upload(make_upload(), clerk)

        assert workflow.get_invoice(result.invoice.id).risk_assessment_status == RiskAssessmentStatus.PENDING
        with pytest.raises(RuntimeError):
            workflow.assess_risk(result.invoice.id)


class TestRiskScoring:
    def test_verdict_recorded_in_background(self, make_workflow, events, clerk):
        gateway = StubGateway(result=RiskAssessment(RiskTier.LOW, 7, "Long-standing vendor"))
        workflow = make_workflow(gateway)

        result = workflow.upload(make_upload(), clerk)

        assert result.risk_assessment.result(timeout=30) == RiskAssessmentStatus.ASSESSED
        stored = workflow.get_invoice(result.invoice.id)
        assert stored.risk_tier == RiskTier.LOW
        assert stored.risk_score == 7
        (event,) = events.of_type(InvoiceEventType.RISK_ASSESSED)
        assert event.payload == {"risk_assessment_status": "assessed"}
        assert event.actor_id is None

    def test_gateway_failure_does_not_fail_upload(self, make_workflow, clerk):
        workflow = make_workflow(StubGateway(error=GatewayRateLimitedError()))

        result = workflow.upload(make_upload(), clerk)

        assert result.invoice.status == InvoiceStatus.UPLOADED
        assert result.risk_assessment.result(timeout=30) == RiskAssessmentStatus.RATE_LIMITED
        stored = workflow.get_invoice(result.invoice.id)
        assert stored.risk_tier is None
        assert stored.risk_assessment_status == RiskAssessmentStatus.RATE_LIMITED

    def test_unexpected_crash_stays_in_the_future(self, make_workflow, clerk, captured_logs):
        workflow = make_workflow(StubGateway(error=RuntimeError("gateway bug")))

        result = workflow.upload(make_upload(), clerk)

        assert isinstance(result.risk_assessment.exception(timeout=30), RuntimeError)
        assert workflow.get_invoice(result.invoice.id).status == InvoiceStatus.UPLOADED
        assert any(r["message"] == "risk_assessment_task_failed" for r in captured_logs())

    def test_synchronous_assessment(self, make_workflow, clerk):
        gateway = StubGateway(result=RiskAssessment(RiskTier.MEDIUM, 40, "Amount above vendor average"))
        workflow = make_workflow(gateway)
        result = workflow.upload(make_upload(), clerk)
        result.risk_assessment.result(timeout=30)

        assert workflow.assess_risk(result.invoice.id) == RiskAssessmentStatus.ASSESSED
        assert gateway.calls == 1


class TestTransitions:
    def test_transition_event(self, workflow, events, clerk, reviewer):
        invoice = workflow.upload(make_upload(), clerk).invoice

        approved = workflow.transition(invoice, InvoiceStatus.APPROVED, reviewer, "Matched")

        (event,) = events.of_type(InvoiceEventType.INVOICE_TRANSITIONED)
        assert event.invoice_id == invoice.id
        assert event.actor_id == reviewer.actor_id
        assert event.payload == {
            "from_status": "uploaded",
            "to_status": "approved",
            "reviewer_notes": "Matched",
        }
        assert approved.status == InvoiceStatus.APPROVED

    def test_failed_transition_publishes_nothing(self, workflow, events, clerk, admin):
        invoice = workflow.upload(make_upload(), clerk).invoice

        with pytest.raises(InvalidTransitionError):
            workflow.transition(invoice, InvoiceStatus.PAID, admin)

        assert events.of_type(InvoiceEventType.INVOICE_TRANSITIONED) == []

    def test_audit_failure_rolls_back_transition(self, workflow, events, clerk, reviewer, monkeypatch):
        invoice = workflow.upload(make_upload(), clerk).invoice

        def failing_record(self, record):
            raise AuditWriteError(record.entity_type, str(record.entity_id), record.action, "disk full")

        monkeypatch.setattr(AuditLogWriter, "record", failing_record)

        with pytest.raises(AuditWriteError):
            workflow.transition(invoice, InvoiceStatus.APPROVED, reviewer)

        stored = workflow.get_invoice(invoice.id)
        assert stored.status == InvoiceStatus.UPLOADED
        assert stored.approved_at is None
        assert [e.action for e in workflow.audit_trail(invoice.id)] == ["invoice_uploaded"]
        assert events.of_type(InvoiceEventType.INVOICE_TRANSITIONED) == []

    def test_failing_subscriber_is_isolated(self, workflow, events, clerk, reviewer, captured_logs):
        def broken(event):
            raise RuntimeError("push service down")

        workflow.bus.subscribe(broken)
        invoice = workflow.upload(make_upload(), clerk).invoice

        approved = workflow.transition(invoice, InvoiceStatus.APPROVED, reviewer)

        assert approved.status == InvoiceStatus.APPROVED
        assert len(events.of_type(InvoiceEventType.INVOICE_TRANSITIONED)) == 1
        assert any(r["message"] == "notification_subscriber_failed" for r in captured_logs())


class TestMatching:
    """Sample invoices against the seeded purchase orders and receipts."""

    def _upload(self, workflow, clerk, seeded_documents, lines, po_number, **kwargs):
        upload = make_upload(lines=lines, po_number=po_number,
                             vendor_id=seeded_documents["vendor_id"], **kwargs)
        return workflow.upload(upload, clerk).invoice

    def test_clean_match(self, workflow, clerk, seeded_documents):
        invoice = self._upload(workflow, clerk, seeded_documents, [
            ("Steel bearings - Type A", "500", "45.50"),
            ("Hydraulic seals - Kit B", "250", "90.00"),
        ], "PO-2026-001")

        result = workflow.match(invoice.id)

        assert result.score == Decimal("100.00")
        assert result.recommendation == Recommendation.APPROVE
        assert result.gr_number == "GR-2026-001"

    def test_short_receipt(self, workflow, clerk, seeded_documents):
        invoice = self._upload(workflow, clerk, seeded_documents, [
            ("PCB boards - Model X7", "1000", "78.40"),
            ("LED modules - RGB", "2000", "25.00"),
        ], "PO-2026-002", invoice_number="INV-8835")

        result = workflow.match(invoice.id)

        assert result.score == Decimal("72.74")
        assert result.kinds == {DiscrepancyKind.QUANTITY_SHORT}
        assert result.recommendation == Recommendation.REVIEW

    def test_partial_shipment(self, workflow, clerk, seeded_documents):
        invoice = self._upload(workflow, clerk, seeded_documents, [
            ("CNC machined gears", "200", "226.00"),
        ], "PO-2026-003", invoice_number="INV-8836")

        result = workflow.match(invoice.id)

        assert result.score == Decimal("100.00")
        assert result.recommendation == Recommendation.APPROVE_WITH_NOTE

    def test_price_overcharge(self, workflow, clerk, seeded_documents):
        invoice = self._upload(workflow, clerk, seeded_documents, [
            ("Industrial adhesive - 50L drums", "20", "399.00"),
            ("Cleaning solvent - 25L", "40", "190.00"),
        ], "PO-2026-005", invoice_number="INV-8838")

        result = workflow.match(invoice.id)

        assert result.score == Decimal("85.37")
        assert result.recommendation == Recommendation.ESCALATE

    def test_unknown_po(self, workflow, clerk, seeded_documents):
        invoice = self._upload(workflow, clerk, seeded_documents, [
            ("Aluminum extrusions - Profile C", "100", "175.00"),
        ], "PO-2026-004")

        result = workflow.match(invoice.id)

        assert result.score == Decimal("0.00")
        assert result.kinds == {DiscrepancyKind.NO_PO_REFERENCE}
        assert "PO-2026-004" in result.discrepancies[0].message

    def test_stored_high_risk_escalates_clean_match(self, make_workflow, clerk, seeded_documents):
        workflow = make_workflow(StubGateway(result=RiskAssessment(RiskTier.HIGH, 91, "Duplicate bank account")))
        upload = make_upload(vendor_id=seeded_documents["vendor_id"])
        result = workflow.upload(upload, clerk)
        result.risk_assessment.result(timeout=30)

        match = workflow.match(result.invoice.id)

        assert match.score == Decimal("100.00")
        assert match.recommendation == Recommendation.ESCALATE

    def test_stored_medium_risk_adds_note(self, make_workflow, clerk, seeded_documents, captured_logs):
        workflow = make_workflow(StubGateway(result=RiskAssessment(RiskTier.MEDIUM, 50, "New vendor")))
        result = workflow.upload(make_upload(vendor_id=seeded_documents["vendor_id"]), clerk)
        result.risk_assessment.result(timeout=30)

        match = workflow.match(result.invoice.id)

        assert match.recommendation == Recommendation.APPROVE_WITH_NOTE
        assert any(
            r["message"] == "match_recommendation_adjusted_for_risk" for r in captured_logs()
        )


class TestQueries:
    def test_list_and_review_queue(self, workflow, clock, clerk, reviewer):
        first = workflow.upload(make_upload(invoice_number="INV-1"), clerk).invoice
        clock.advance(10)
        second = workflow.upload(make_upload(invoice_number="INV-2"), clerk).invoice
        workflow.transition(first, InvoiceStatus.APPROVED, reviewer)

        assert [i.id for i in workflow.list_invoices()] == [second.id, first.id]
        assert [i.id for i in workflow.list_invoices(status=InvoiceStatus.APPROVED)] == [first.id]
        assert [i.id for i in workflow.list_invoices(limit=1)] == [second.id]
        assert [i.id for i in workflow.review_queue()] == [second.id]

    def test_audit_trail_and_recent_activity(self, workflow, clerk, reviewer):
        invoice = workflow.upload(make_upload(), clerk).invoice
        workflow.transition(invoice, InvoiceStatus.UNDER_REVIEW, reviewer)

        trail = workflow.audit_trail(invoice.id)
        assert [e.action for e in trail] == ["invoice_uploaded", "manual_under_review"]
        assert workflow.recent_activity(limit=1)[0].action == "manual_under_review"
