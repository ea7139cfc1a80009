"""
ORM-level protection of invoice rows.

Invoices are never deleted, their lines are fixed at upload, and the risk
verdict is write-once.  The table check constraints backstop the
lifecycle invariants for writes that bypass the services.
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from payables_kernel.db.engine import session_scope
from payables_kernel.exceptions import ImmutabilityViolationError
from payables_kernel.models.invoice import InvoiceLineModel, InvoiceModel


def _model(session, invoice_id) -> InvoiceModel:
    return session.execute(
        select(InvoiceModel).where(InvoiceModel.id == invoice_id)
    ).scalar_one()


class TestInvoiceRows:
    def test_invoice_cannot_be_deleted(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as s:
                s.delete(_model(s, invoice.id))
                s.flush()

    def test_line_cannot_be_modified(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as s:
                line = s.execute(
                    select(InvoiceLineModel).where(InvoiceLineModel.invoice_id == invoice.id)
                ).scalars().first()
                line.quantity = line.quantity + 1
                s.flush()

    def test_new_invoice_has_no_risk_verdict(self, upload_invoice):
        invoice = upload_invoice()

        assert invoice.risk_tier is None
        assert invoice.risk_score is None
        assert invoice.risk_reason is None
        assert invoice.risk_assessment is None
        assert invoice.risk_assessment_status.value == "pending"


class TestRiskFieldsWriteOnce:
    def test_first_write_allowed(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with session_scope(session_factory) as s:
            model = _model(s, invoice.id)
            model.risk_level = "low"
            model.risk_score = 12
            model.risk_reason = "routine vendor"

        with session_scope(session_factory) as s:
            assert _model(s, invoice.id).to_dto().risk_assessment.score == 12

    def test_overwrite_blocked(self, session_factory, upload_invoice):
        invoice = upload_invoice()
        with session_scope(session_factory) as s:
            model = _model(s, invoice.id)
            model.risk_level = "low"
            model.risk_score = 12
            model.risk_reason = "routine vendor"

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as s:
                model = _model(s, invoice.id)
                model.risk_level = "high"
                model.risk_score = 95
                s.flush()


class TestCheckConstraints:
    """Raw UPDATEs skip the ORM listeners; the table still refuses bad rows."""

    def test_tier_without_score_rejected(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as s:
                s.execute(
                    update(InvoiceModel)
                    .where(InvoiceModel.id == invoice.id)
                    .values(risk_level="high")
                )

    def test_score_out_of_range_rejected(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as s:
                s.execute(
                    update(InvoiceModel)
                    .where(InvoiceModel.id == invoice.id)
                    .values(risk_level="high", risk_score=101)
                )

    def test_paid_without_paid_at_rejected(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as s:
                s.execute(
                    update(InvoiceModel)
                    .where(InvoiceModel.id == invoice.id)
                    .values(status="paid")
                )

    def test_unknown_status_rejected(self, session_factory, upload_invoice):
        invoice = upload_invoice()

        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as s:
                s.execute(
                    update(InvoiceModel)
                    .where(InvoiceModel.id == invoice.id)
                    .values(status="archived")
                )
