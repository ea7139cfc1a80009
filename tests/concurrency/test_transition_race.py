"""
Concurrent transitions of one invoice.

Threads share a Barrier so their compare-and-swap UPDATEs are issued at
the same moment against a file-backed SQLite database.  Exactly one
writer may win; every loser gets ConcurrentModificationError and writes
nothing.
"""

import threading
from threading import Barrier

import pytest

from payables_kernel.db.engine import session_scope
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.exceptions import ConcurrentModificationError, InvalidTransitionError
from payables_kernel.selectors.audit_selector import AuditSelector
from payables_kernel.services.lifecycle_service import (
    INVOICE_ENTITY_TYPE,
    InvoiceLifecycleService,
)
from payables_services.invoice_workflow import InvoiceWorkflow


def _race(session_factory, clock, invoice, attempts):
    """Run ``(target, actor)`` attempts in parallel from one snapshot."""
    barrier = Barrier(len(attempts))
    lock = threading.Lock()
    outcomes: list = []

    def worker(target, actor):
        barrier.wait()
        try:
            with session_scope(session_factory) as s:
                result = InvoiceLifecycleService(s, clock).transition(invoice, target, actor)
        except Exception as exc:
            with lock:
                outcomes.append(exc)
            return
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=a) for a in attempts]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


class TestTransitionRace:
    def test_approve_and_reject_race_one_winner(self, session_factory, clock, upload_invoice, reviewer):
        invoice = upload_invoice()

        outcomes = _race(session_factory, clock, invoice, [
            (InvoiceStatus.APPROVED, reviewer),
            (InvoiceStatus.REJECTED, reviewer),
        ])

        assert len(outcomes) == 2
        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConcurrentModificationError)

        with session_scope(session_factory) as s:
            trail = AuditSelector(s).trail(INVOICE_ENTITY_TYPE, invoice.id)
        assert len(trail) == 2
        assert trail[-1].detail["new_status"] == winners[0].status.value

    def test_many_reviewers_same_snapshot(self, session_factory, clock, upload_invoice, reviewer, admin):
        invoice = upload_invoice()

        outcomes = _race(
            session_factory, clock, invoice,
            [(InvoiceStatus.APPROVED, reviewer), (InvoiceStatus.APPROVED, admin)] * 3,
        )

        assert len(outcomes) == 6
        assert sum(1 for o in outcomes if not isinstance(o, Exception)) == 1
        assert all(
            isinstance(o, ConcurrentModificationError)
            for o in outcomes if isinstance(o, Exception)
        )
        with session_scope(session_factory) as s:
            assert AuditSelector(s).count_for(
                INVOICE_ENTITY_TYPE, invoice.id, "manual_approved"
            ) == 1


class TestTransitionLatest:
    @pytest.fixture
    def workflow(self, session_factory, clock):
        with InvoiceWorkflow(session_factory, clock=clock) as wf:
            yield wf

    def test_retries_once_from_fresh_snapshot(
        self, workflow, upload_invoice, reviewer, monkeypatch, captured_logs,
    ):
        stale = upload_invoice()
        workflow.transition(stale, InvoiceStatus.UNDER_REVIEW, reviewer)

        fresh_reads = iter([stale])
        real_get = workflow.get_invoice
        monkeypatch.setattr(
            workflow, "get_invoice",
            lambda invoice_id: next(fresh_reads, None) or real_get(invoice_id),
        )

        approved = workflow.transition_latest(stale.id, InvoiceStatus.APPROVED, reviewer)

        assert approved.status == InvoiceStatus.APPROVED
        assert any(r["message"] == "invoice_transition_retry" for r in captured_logs())

    def test_retry_still_validates_the_edge(self, workflow, upload_invoice, reviewer, monkeypatch):
        stale = upload_invoice()
        workflow.transition(stale, InvoiceStatus.REJECTED, reviewer)

        fresh_reads = iter([stale])
        real_get = workflow.get_invoice
        monkeypatch.setattr(
            workflow, "get_invoice",
            lambda invoice_id: next(fresh_reads, None) or real_get(invoice_id),
        )

        with pytest.raises(InvalidTransitionError):
            workflow.transition_latest(stale.id, InvoiceStatus.APPROVED, reviewer)

    def test_no_conflict_no_retry(self, workflow, upload_invoice, reviewer, captured_logs):
        invoice = upload_invoice()

        approved = workflow.transition_latest(invoice.id, InvoiceStatus.APPROVED, reviewer)

        assert approved.status == InvoiceStatus.APPROVED
        assert not any(r["message"] == "invoice_transition_retry" for r in captured_logs())
