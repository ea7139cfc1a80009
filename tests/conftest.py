"""
Pytest fixtures for the payables test suite.

Provides:
- A file-backed SQLite database per test (real transactions and locking,
  so the concurrency tests exercise genuine write contention)
- Deterministic clock and reviewer/admin/clerk actors
- Seeded purchase orders and goods receipts
- An ``upload_invoice`` helper persisting invoices through intake
- Captured structured logs
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from payables_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from payables_kernel.db.immutability import register_immutability_listeners
from payables_kernel.domain.clock import DeterministicClock
from payables_kernel.domain.documents import Actor, Invoice
from payables_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payables_kernel.models.purchasing import (
    GoodsReceiptLineModel,
    GoodsReceiptModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
)
from payables_kernel.models.vendor import VendorModel
from payables_kernel.services.intake_service import InvoiceIntakeService, InvoiceUpload
from tests.builders import TEST_ACTOR_ID, make_upload


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payables_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "match_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payables_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database file with all tables and immutability listeners."""
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'payables.db'}")
    create_tables()
    register_immutability_listeners()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A session for direct reads; rolled back at teardown."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def reviewer():
    return Actor.from_role(uuid4(), "reviewer", "Riley Reviewer")


@pytest.fixture
def admin():
    return Actor.from_role(uuid4(), "admin", "Avery Admin")


@pytest.fixture
def clerk():
    """An authenticated user without reviewer capability."""
    return Actor.from_role(uuid4(), "user", "Casey Clerk")


# =============================================================================
# Seeded reference documents
# =============================================================================

SEED_PURCHASE_ORDERS = {
    "PO-2026-001": [
        ("Steel bearings - Type A", "500", "45.50"),
        ("Hydraulic seals - Kit B", "250", "90.00"),
    ],
    "PO-2026-002": [
        ("PCB boards - Model X7", "1000", "78.40"),
        ("LED modules - RGB", "2000", "25.00"),
    ],
    "PO-2026-003": [
        ("CNC machined gears", "300", "226.00"),
    ],
    "PO-2026-005": [
        ("Industrial adhesive - 50L drums", "20", "380.00"),
        ("Cleaning solvent - 25L", "40", "190.00"),
    ],
}

SEED_GOODS_RECEIPTS = {
    "GR-2026-001": ("PO-2026-001", date(2026, 1, 28), [
        ("Steel bearings - Type A", "500", "500", "complete"),
        ("Hydraulic seals - Kit B", "250", "250", "complete"),
    ]),
    "GR-2026-002": ("PO-2026-002", date(2026, 2, 1), [
        ("PCB boards - Model X7", "1000", "1000", "complete"),
        ("LED modules - RGB", "2000", "1950", "short"),
    ]),
    "GR-2026-003": ("PO-2026-003", date(2026, 2, 3), [
        ("CNC machined gears", "300", "200", "partial"),
    ]),
    "GR-2026-005": ("PO-2026-005", date(2026, 2, 8), [
        ("Industrial adhesive - 50L drums", "20", "20", "complete"),
        ("Cleaning solvent - 25L", "40", "40", "complete"),
    ]),
}


@pytest.fixture
def vendor_id(session_factory) -> UUID:
    with session_scope(session_factory) as s:
        vendor = VendorModel(
            name="Acme Industrial Supply",
            email="billing@acme-industrial.com",
            created_by_id=TEST_ACTOR_ID,
        )
        s.add(vendor)
        s.flush()
        return vendor.id


@pytest.fixture
def seeded_documents(session_factory, vendor_id):
    """Purchase orders and goods receipts from the sample data set."""
    with session_scope(session_factory) as s:
        for number, lines in SEED_PURCHASE_ORDERS.items():
            po = PurchaseOrderModel(
                po_number=number, vendor_id=vendor_id, currency="USD", status="received",
            )
            po.lines = [
                PurchaseOrderLineModel(
                    line_number=i, description=d, quantity=Decimal(q), unit_price=Decimal(p),
                )
                for i, (d, q, p) in enumerate(lines, start=1)
            ]
            s.add(po)
        s.flush()
        for number, (po_number, received_on, lines) in SEED_GOODS_RECEIPTS.items():
            gr = GoodsReceiptModel(
                gr_number=number, po_number=po_number, receipt_date=received_on,
                received_by="Warehouse A",
            )
            gr.lines = [
                GoodsReceiptLineModel(
                    line_number=i,
                    description=d,
                    quantity_ordered=Decimal(o),
                    quantity_received=Decimal(r),
                    status=st,
                )
                for i, (d, o, r, st) in enumerate(lines, start=1)
            ]
            s.add(gr)
    return {"vendor_id": vendor_id}




@pytest.fixture
def upload_invoice(session_factory, clock, clerk):
    """Persist an invoice in ``uploaded`` status and return its snapshot."""

    def _upload(upload: InvoiceUpload | None = None, actor: Actor | None = None) -> Invoice:
        with session_scope(session_factory) as s:
            return InvoiceIntakeService(s, clock).upload(upload or make_upload(), actor or clerk)

    return _upload
