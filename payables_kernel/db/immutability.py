"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Invoices are financial records and the audit log is the evidence of what
happened to them.  SQLAlchemy fires mapper events before UPDATE/DELETE
statements reach the database; the listeners below intercept those events
and raise ImmutabilityViolationError, aborting the flush.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                 ^
         v                                                 |
    [before_delete] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()`` statements issued through ``Session.execute`` do not fire
mapper events; the lifecycle and risk services that use them enforce their
own preconditions in the WHERE clause, and the table check constraints
backstop both paths.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | Rule
-----------------|----------------------------------------------------------
AuditEntry       | ALWAYS immutable; never deleted
InvoiceModel     | Never deleted; risk fields write-once once set
InvoiceLineModel | Immutable after insert; never deleted

===============================================================================
USAGE
===============================================================================

    from payables_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

For testing:
    unregister_immutability_listeners()
    # ... test raw operations ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from payables_kernel.exceptions import ImmutabilityViolationError
from payables_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_RISK_FIELDS = ("risk_level", "risk_score", "risk_reason")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_entry_immutability(mapper, connection, target):
    """Audit entries cannot be modified after creation."""
    _blocked("AuditEntry", target.id, "UPDATE", "Audit entries are immutable")


def _check_audit_entry_delete(mapper, connection, target):
    """Audit entries cannot be deleted."""
    _blocked("AuditEntry", target.id, "DELETE", "Audit entries cannot be deleted")


def _check_invoice_delete(mapper, connection, target):
    """Invoices are never hard-deleted."""
    _blocked("Invoice", target.id, "DELETE", "Invoices are financial records and cannot be deleted")


def _check_invoice_risk_immutability(mapper, connection, target):
    """Risk fields may go from unset to set once, never change afterwards."""
    insp = inspect(target)
    for name in _RISK_FIELDS:
        hist = insp.attrs[name].history
        if hist.deleted and hist.deleted[0] is not None:
            _blocked(
                "Invoice",
                target.id,
                "UPDATE",
                f"Risk field '{name}' is write-once",
                field=name,
            )


def _check_invoice_line_immutability(mapper, connection, target):
    """Invoice lines are fixed at upload."""
    _blocked("InvoiceLine", target.id, "UPDATE", "Invoice lines cannot be modified")


def _check_invoice_line_delete(mapper, connection, target):
    _blocked("InvoiceLine", target.id, "DELETE", "Invoice lines cannot be deleted")


def _listeners():
    from payables_kernel.models.audit_entry import AuditEntry
    from payables_kernel.models.invoice import InvoiceLineModel, InvoiceModel

    return (
        (AuditEntry, "before_update", _check_audit_entry_immutability),
        (AuditEntry, "before_delete", _check_audit_entry_delete),
        (InvoiceModel, "before_delete", _check_invoice_delete),
        (InvoiceModel, "before_update", _check_invoice_risk_immutability),
        (InvoiceLineModel, "before_update", _check_invoice_line_immutability),
        (InvoiceLineModel, "before_delete", _check_invoice_line_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability enforcement listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
