"""
Invoice lifecycle state machine (``payables_kernel.domain.workflow``).

Responsibility
--------------
The single, explicit transition table for invoice status.  Every legal
edge is a ``Transition`` row naming the action and the capability the
actor must hold; anything not in the table is illegal.  No caller
re-derives transition legality with ad hoc status comparisons.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Consumed by
``payables_kernel.services.lifecycle_service``.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* Terminal states have no outgoing transitions.
* ``(from_state, to_state)`` pairs are unique, so ``find`` is unambiguous.

    uploaded --start_review--> under_review
    uploaded / under_review --approve--> approved     (reviewer)
    uploaded / under_review --reject---> rejected     (reviewer)
    approved --mark_paid--> paid                      (admin)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    UPLOADED = "uploaded"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class Capability(str, Enum):
    """Capability flags supplied by the auth collaborator.

    ``ADMIN`` implies ``REVIEWER`` (see ``Actor.has``).
    """

    REVIEWER = "reviewer"
    ADMIN = "admin"


TERMINAL_INVOICE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.REJECTED,
    InvoiceStatus.PAID,
})


@dataclass(frozen=True)
class Transition:
    """A legal edge of the invoice state machine.

    Contract: frozen.  ``required_capability`` is checked against the
    acting ``Actor`` before any write.
    """
    from_state: InvoiceStatus
    to_state: InvoiceStatus
    action: str
    required_capability: Capability

    @property
    def audit_action(self) -> str:
        """Audit action tag recorded for this edge (``manual_<status>``)."""
        return f"manual_{self.to_state.value}"


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Guarantees: ``initial_state`` is a member of ``states``; every
    transition references only declared states; terminal states have no
    outgoing transitions.
    """
    name: str
    description: str
    initial_state: InvoiceStatus
    states: tuple[InvoiceStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: frozenset[InvoiceStatus] = frozenset()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"initial_state {self.initial_state} not in states")
        seen: set[tuple[InvoiceStatus, InvoiceStatus]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"Transition {t.action} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Terminal state {t.from_state.value} has outgoing transition {t.action}"
                )
            if (t.from_state, t.to_state) in seen:
                raise ValueError(
                    f"Duplicate transition {t.from_state.value} -> {t.to_state.value}"
                )
            seen.add((t.from_state, t.to_state))

    def find(
        self,
        from_state: InvoiceStatus,
        to_state: InvoiceStatus,
    ) -> Transition | None:
        """Return the edge ``from_state -> to_state``, or None if illegal."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def allowed_targets(self, from_state: InvoiceStatus) -> tuple[InvoiceStatus, ...]:
        """States reachable in one step from ``from_state``."""
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)


INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Vendor invoice review, approval and payment lifecycle",
    initial_state=InvoiceStatus.UPLOADED,
    states=tuple(InvoiceStatus),
    transitions=(
        Transition(InvoiceStatus.UPLOADED, InvoiceStatus.UNDER_REVIEW, "start_review", Capability.REVIEWER),
        Transition(InvoiceStatus.UPLOADED, InvoiceStatus.APPROVED, "approve", Capability.REVIEWER),
        Transition(InvoiceStatus.UPLOADED, InvoiceStatus.REJECTED, "reject", Capability.REVIEWER),
        Transition(InvoiceStatus.UNDER_REVIEW, InvoiceStatus.APPROVED, "approve", Capability.REVIEWER),
        Transition(InvoiceStatus.UNDER_REVIEW, InvoiceStatus.REJECTED, "reject", Capability.REVIEWER),
        Transition(InvoiceStatus.APPROVED, InvoiceStatus.PAID, "mark_paid", Capability.ADMIN),
    ),
    terminal_states=TERMINAL_INVOICE_STATUSES,
)
