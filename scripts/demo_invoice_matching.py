#!/usr/bin/env python3
"""
Three-way match demo over the sample vendors, purchase orders, goods
receipts and invoices.

Recreates the tables (SQLite only, unless --reset is given), seeds the
reference documents, uploads each sample invoice through ``InvoiceWorkflow``,
prints its match score, findings and recommendation, and optionally walks
approved invoices through to paid.

Usage:
    python3 scripts/demo_invoice_matching.py
    python3 scripts/demo_invoice_matching.py --db-url sqlite:///demo.db --walk-lifecycle
    python3 scripts/demo_invoice_matching.py --invoice INV-8838 --verbose
    python3 scripts/demo_invoice_matching.py --db-url postgresql://localhost/ap_demo --reset
"""

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.engine import make_url

from payables_config import get_active_config
from payables_config.bridges import build_risk_gateway, to_match_policy, to_thresholds
from payables_engines.match_types import Recommendation
from payables_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from payables_kernel.db.immutability import register_immutability_listeners
from payables_kernel.domain.documents import Actor, InvoiceLine
from payables_kernel.domain.values import Money
from payables_kernel.domain.workflow import InvoiceStatus
from payables_kernel.logging_config import configure_logging
from payables_kernel.models.purchasing import (
    GoodsReceiptLineModel,
    GoodsReceiptModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
)
from payables_kernel.models.vendor import VendorModel
from payables_kernel.services.intake_service import InvoiceUpload
from payables_services.invoice_workflow import InvoiceWorkflow

SEED_ACTOR_ID = UUID("5eed0000-0000-0000-0000-000000000001")

VENDORS = [
    ("v1", "Acme Industrial Supply", "billing@acme-industrial.com", "low"),
    ("v2", "GlobalTech Components", "ap@globaltech.io", "low"),
    ("v3", "PrecisionParts Inc.", "invoices@precisionparts.com", "medium"),
    ("v4", "MetalWorks Corp", "finance@metalworks.com", "low"),
    ("v5", "ChemSolutions Ltd", "accounts@chemsolutions.co.uk", "medium"),
    ("v6", "LogiPack Systems", "billing@logipack.com", "high"),
]

# (number, vendor key, order date, status, [(description, quantity, unit price)])
PURCHASE_ORDERS = [
    ("PO-2026-001", "v1", date(2026, 1, 15), "received", [
        ("Steel bearings - Type A", "500", "45.50"),
        ("Hydraulic seals - Kit B", "250", "90.00"),
    ]),
    ("PO-2026-002", "v2", date(2026, 1, 18), "received", [
        ("PCB boards - Model X7", "1000", "78.40"),
        ("LED modules - RGB", "2000", "25.00"),
    ]),
    ("PO-2026-003", "v3", date(2026, 1, 22), "partial", [
        ("CNC machined gears", "300", "226.00"),
    ]),
    ("PO-2026-004", "v4", date(2026, 1, 25), "received", [
        ("Aluminum extrusions - Profile C", "100", "175.00"),
        ("Stainless steel plates", "50", "320.00"),
    ]),
    ("PO-2026-005", "v5", date(2026, 2, 1), "received", [
        ("Industrial adhesive - 50L drums", "20", "380.00"),
        ("Cleaning solvent - 25L", "40", "190.00"),
    ]),
    ("PO-2026-006", "v6", date(2026, 2, 5), "pending", [
        ("Automated packing units", "5", "17800.00"),
    ]),
]

# (number, PO number, date, received by, [(description, ordered, received, status)])
GOODS_RECEIPTS = [
    ("GR-2026-001", "PO-2026-001", date(2026, 1, 28), "Warehouse A", [
        ("Steel bearings - Type A", "500", "500", "complete"),
        ("Hydraulic seals - Kit B", "250", "250", "complete"),
    ]),
    ("GR-2026-002", "PO-2026-002", date(2026, 2, 1), "Warehouse B", [
        ("PCB boards - Model X7", "1000", "1000", "complete"),
        ("LED modules - RGB", "2000", "1950", "short"),
    ]),
    ("GR-2026-003", "PO-2026-003", date(2026, 2, 3), "Warehouse A", [
        ("CNC machined gears", "300", "200", "partial"),
    ]),
    ("GR-2026-004", "PO-2026-004", date(2026, 2, 2), "Warehouse C", [
        ("Aluminum extrusions - Profile C", "100", "100", "complete"),
        ("Stainless steel plates", "50", "50", "complete"),
    ]),
    ("GR-2026-005", "PO-2026-005", date(2026, 2, 8), "Warehouse A", [
        ("Industrial adhesive - 50L drums", "20", "20", "complete"),
        ("Cleaning solvent - 25L", "40", "40", "complete"),
    ]),
]

# (number, vendor key, PO number, due date, total, [(description, quantity, unit price)])
INVOICES = [
    ("INV-8834", "v1", "PO-2026-001", date(2026, 3, 4), "45250.00", [
        ("Steel bearings - Type A", "500", "45.50"),
        ("Hydraulic seals - Kit B", "250", "90.00"),
    ]),
    ("INV-8835", "v2", "PO-2026-002", date(2026, 3, 7), "128400.00", [
        ("PCB boards - Model X7", "1000", "78.40"),
        ("LED modules - RGB", "2000", "25.00"),
    ]),
    ("INV-8836", "v3", "PO-2026-003", date(2026, 3, 8), "45200.00", [
        ("CNC machined gears", "200", "226.00"),
    ]),
    ("INV-8837", "v4", "PO-2026-004", date(2026, 3, 10), "33500.00", [
        ("Aluminum extrusions - Profile C", "100", "175.00"),
        ("Stainless steel plates", "50", "320.00"),
    ]),
    ("INV-8838", "v5", "PO-2026-005", date(2026, 3, 12), "15580.00", [
        ("Industrial adhesive - 50L drums", "20", "399.00"),
        ("Cleaning solvent - 25L", "40", "190.00"),
    ]),
    ("INV-8839", "v1", "PO-2026-001", date(2026, 3, 14), "12300.00", [
        ("Replacement parts - Kit C", "100", "123.00"),
    ]),
    ("INV-8840", "v6", "PO-2026-006", date(2026, 3, 16), "89000.00", [
        ("Automated packing units", "5", "17800.00"),
    ]),
]


def seed_reference_documents(factory) -> dict[str, UUID]:
    """Insert vendors, purchase orders and goods receipts; returns vendor ids by key."""
    vendor_ids: dict[str, UUID] = {}
    with session_scope(factory) as session:
        for key, name, email, risk in VENDORS:
            vendor = VendorModel(
                name=name, email=email, risk_status=risk, created_by_id=SEED_ACTOR_ID,
            )
            session.add(vendor)
            session.flush()
            vendor_ids[key] = vendor.id

        for number, vendor_key, order_date, status, lines in PURCHASE_ORDERS:
            po = PurchaseOrderModel(
                po_number=number,
                vendor_id=vendor_ids[vendor_key],
                order_date=order_date,
                currency="USD",
                status=status,
            )
            po.lines = [
                PurchaseOrderLineModel(
                    line_number=i, description=d, quantity=Decimal(q), unit_price=Decimal(p),
                )
                for i, (d, q, p) in enumerate(lines, start=1)
            ]
            session.add(po)
        session.flush()

        for number, po_number, receipt_date, received_by, lines in GOODS_RECEIPTS:
            gr = GoodsReceiptModel(
                gr_number=number,
                po_number=po_number,
                receipt_date=receipt_date,
                received_by=received_by,
            )
            gr.lines = [
                GoodsReceiptLineModel(
                    line_number=i,
                    description=d,
                    quantity_ordered=Decimal(o),
                    quantity_received=Decimal(r),
                    status=s,
                )
                for i, (d, o, r, s) in enumerate(lines, start=1)
            ]
            session.add(gr)
    return vendor_ids


def _print_result(invoice_number: str, result) -> None:
    print(f"\n{invoice_number}  PO {result.po_number or '-'}  GR {result.gr_number or '-'}")
    print(f"  score:          {result.score}")
    print(f"  recommendation: {result.recommendation.value}")
    for d in result.discrepancies:
        impact = f"{d.monetary_impact:,.2f}" if d.monetary_impact else "-"
        print(f"  - [{d.kind.value}] {d.message} (impact {impact}, -{d.penalty:.2f} pts)")


def should_drop_tables(url: str, reset: bool) -> bool:
    """SQLite demo databases are always recreated; anything else needs --reset."""
    return reset or make_url(url).get_backend_name() == "sqlite"


def main() -> int:
    parser = argparse.ArgumentParser(description="Three-way match demo")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--db-url", help="Database URL (defaults to the configured one)")
    parser.add_argument("--invoice", help="Only show this invoice number")
    parser.add_argument(
        "--walk-lifecycle", action="store_true",
        help="Approve invoices recommended for approval, then mark them paid",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Drop and recreate all tables (required for non-SQLite databases)",
    )
    parser.add_argument("--verbose", action="store_true", help="Emit JSON logs to stderr")
    args = parser.parse_args()

    if args.verbose:
        configure_logging(level=logging.INFO, stream=sys.stderr)
    else:
        logging.disable(logging.CRITICAL)

    config = get_active_config(args.config)
    db_url = args.db_url or config.database.url
    if not should_drop_tables(db_url, args.reset):
        print(
            f"Refusing to drop tables on {make_url(db_url).get_backend_name()} database; "
            "pass --reset to recreate it",
            file=sys.stderr,
        )
        return 2

    init_engine_from_url(db_url, echo=config.database.echo)
    drop_tables()
    create_tables()
    register_immutability_listeners()
    factory = get_session_factory()

    vendor_ids = seed_reference_documents(factory)
    clerk = Actor.from_role(uuid4(), "user", "AP clerk")
    reviewer = Actor.from_role(uuid4(), "reviewer", "AP reviewer")
    admin = Actor.from_role(uuid4(), "admin", "Controller")

    with InvoiceWorkflow(
        factory,
        gateway=build_risk_gateway(config),
        policy=to_match_policy(config),
        thresholds=to_thresholds(config),
        max_workers=config.risk_gateway.max_workers,
    ) as workflow:
        for number, vendor_key, po_number, due, total, lines in INVOICES:
            if args.invoice and args.invoice != number:
                continue
            uploaded = workflow.upload(
                InvoiceUpload(
                    title=f"{number} {po_number}",
                    total=Money.of(total, "USD"),
                    invoice_number=number,
                    vendor_id=vendor_ids[vendor_key],
                    po_number=po_number,
                    due_date=due,
                    lines=tuple(
                        InvoiceLine(d, Decimal(q), Decimal(p)) for d, q, p in lines
                    ),
                ),
                clerk,
            )
            if uploaded.risk_assessment is not None:
                uploaded.risk_assessment.result()

            result = workflow.match(uploaded.invoice.id)
            _print_result(number, result)

            if args.walk_lifecycle and result.recommendation in (
                Recommendation.APPROVE, Recommendation.APPROVE_WITH_NOTE,
            ):
                note = "; ".join(d.message for d in result.discrepancies) or None
                approved = workflow.transition(
                    uploaded.invoice, InvoiceStatus.APPROVED, reviewer, note,
                )
                paid = workflow.transition(approved, InvoiceStatus.PAID, admin)
                print(f"  lifecycle:      {uploaded.invoice.status.value} -> "
                      f"{approved.status.value} -> {paid.status.value}")

        if args.walk_lifecycle:
            print(f"\nAudit entries written: {len(workflow.recent_activity())}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
