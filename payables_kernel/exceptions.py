"""
Typed Exception Hierarchy for the Payables Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers route on error type and machine-readable code, never on message text:

    try:
        workflow.transition(invoice, InvoiceStatus.APPROVED, actor)
    except PermissionDeniedError as e:
        api_response(code=e.code, required=e.required_capability)
    except InvalidTransitionError as e:
        api_response(code=e.code, from_status=e.from_status)

Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayablesKernelError (base)
    |
    +-- ValidationError
    |   +-- MatchValidationError
    |   +-- InvalidInvoiceUploadError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- PermissionDeniedError
    |   +-- InvoiceNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- GatewayError
    |   +-- GatewayUnavailableError
    |   |   +-- GatewayRateLimitedError
    |   |   +-- GatewayQuotaExhaustedError
    |   +-- GatewayDegradedError
    |
    +-- AuditError
    |   +-- AuditWriteError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | MATCH_VALIDATION_FAILED     | Negative quantity/price, blank line
                | INVALID_UPLOAD              | Blank title or negative amount at intake
----------------|-----------------------------|-----------------------------------------
Currency        | INVALID_CURRENCY            | Not a 3-letter ISO 4217 code
                | CURRENCY_MISMATCH           | Documents in different currencies
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_TRANSITION          | Edge not in the transition table
                | PERMISSION_DENIED           | Actor lacks capability for the edge
                | INVOICE_NOT_FOUND           | Invoice id doesn't exist
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Status changed since snapshot was read
----------------|-----------------------------|-----------------------------------------
Gateway         | GATEWAY_UNAVAILABLE         | Timeout, connection error, non-2xx
                | GATEWAY_RATE_LIMITED        | Oracle answered 429
                | GATEWAY_QUOTA_EXHAUSTED     | Oracle answered 402
                | GATEWAY_DEGRADED            | Malformed or low-confidence answer
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_WRITE_FAILED          | Audit entry could not be persisted
                | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_INVALID       | Config set failed validation

===============================================================================
PROPAGATION
===============================================================================

- ValidationError / CurrencyError: local and recoverable; shown as discrepancy.
- WorkflowError / ConcurrencyError: surfaced as a rejected user action.
  ConcurrentModificationError may be retried once after a re-fetch.
- GatewayError: never escapes RiskAssessmentService; it only fails the
  risk-scoring side effect.
- AuditError: propagates so the enclosing transaction rolls back.
"""


class PayablesKernelError(Exception):
    """
    Base exception for all payables kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYABLES_KERNEL_ERROR"


# Validation exceptions


class ValidationError(PayablesKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"


class MatchValidationError(ValidationError):
    """Matching input rejected before any computation."""

    code: str = "MATCH_VALIDATION_FAILED"

    def __init__(self, document: str, field: str, reason: str):
        self.document = document
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {document} input ({field}): {reason}")


class InvalidInvoiceUploadError(ValidationError):
    """Invoice upload rejected before anything is written."""

    code: str = "INVALID_UPLOAD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid invoice upload ({field}): {reason}")


# Currency exceptions


class CurrencyError(PayablesKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency!r}")


class CurrencyMismatchError(CurrencyError):
    """Two documents that must share a currency do not."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str, document: str = ""):
        self.expected = expected
        self.actual = actual
        self.document = document
        super().__init__(
            f"Currency mismatch{f' on {document}' if document else ''}: "
            f"expected {expected}, got {actual}"
        )


# Workflow exceptions


class WorkflowError(PayablesKernelError):
    """Base exception for invoice lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The requested status change is not an edge of the transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id}: transition {from_status} -> {to_status} "
            "is not permitted"
        )


class PermissionDeniedError(WorkflowError):
    """The actor lacks the capability the transition requires."""

    code: str = "PERMISSION_DENIED"

    def __init__(
        self,
        invoice_id: str,
        actor_id: str,
        required_capability: str,
        to_status: str,
    ):
        self.invoice_id = invoice_id
        self.actor_id = actor_id
        self.required_capability = required_capability
        self.to_status = to_status
        super().__init__(
            f"Actor {actor_id} needs '{required_capability}' capability to move "
            f"invoice {invoice_id} to {to_status}"
        )


class InvoiceNotFoundError(WorkflowError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


# Concurrency exceptions


class ConcurrencyError(PayablesKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Compare-and-swap on invoice status found a different status."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, invoice_id: str, expected_status: str):
        self.invoice_id = invoice_id
        self.expected_status = expected_status
        super().__init__(
            f"Invoice {invoice_id} is no longer in status {expected_status}: "
            "it was modified by another transaction"
        )


# Risk gateway exceptions


class GatewayError(PayablesKernelError):
    """Base exception for risk assessment gateway failures."""

    code: str = "GATEWAY_ERROR"


class GatewayUnavailableError(GatewayError):
    """The oracle could not be reached or answered with a failure status."""

    code: str = "GATEWAY_UNAVAILABLE"

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            f"Risk assessment gateway unavailable"
            f"{f' (HTTP {status_code})' if status_code else ''}: {reason}"
        )


class GatewayRateLimitedError(GatewayUnavailableError):
    """The oracle rejected the call with a rate limit."""

    code: str = "GATEWAY_RATE_LIMITED"

    def __init__(self, reason: str = "rate limit exceeded"):
        super().__init__(reason, status_code=429)


class GatewayQuotaExhaustedError(GatewayUnavailableError):
    """The oracle's usage credits are exhausted."""

    code: str = "GATEWAY_QUOTA_EXHAUSTED"

    def __init__(self, reason: str = "usage quota exhausted"):
        super().__init__(reason, status_code=402)


class GatewayDegradedError(GatewayError):
    """The oracle answered but the answer cannot be trusted."""

    code: str = "GATEWAY_DEGRADED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Risk assessment degraded: {reason}")


# Audit exceptions


class AuditError(PayablesKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditWriteError(AuditError):
    """An audit entry could not be written."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, entity_type: str, entity_id: str, action: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.reason = reason
        super().__init__(
            f"Failed to record audit entry {action} for {entity_type} "
            f"{entity_id}: {reason}"
        )


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityError(PayablesKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit entries are immutable from creation; invoices are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(PayablesKernelError):
    """Configuration set failed schema validation."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, errors: list[str], source: str = ""):
        self.errors = errors
        self.source = source
        super().__init__(
            f"Invalid configuration{f' in {source}' if source else ''}: "
            + "; ".join(errors)
        )
