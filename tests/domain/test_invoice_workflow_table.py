"""
Tests for the invoice transition table and actor capabilities.

The table is the only authority on which status changes are legal.
"""

from itertools import product
from uuid import uuid4

import pytest

from payables_kernel.domain.documents import Actor
from payables_kernel.domain.workflow import (
    INVOICE_WORKFLOW,
    TERMINAL_INVOICE_STATUSES,
    Capability,
    InvoiceStatus,
    Transition,
    Workflow,
)

S = InvoiceStatus

LEGAL_EDGES = {
    (S.UPLOADED, S.UNDER_REVIEW): Capability.REVIEWER,
    (S.UPLOADED, S.APPROVED): Capability.REVIEWER,
    (S.UPLOADED, S.REJECTED): Capability.REVIEWER,
    (S.UNDER_REVIEW, S.APPROVED): Capability.REVIEWER,
    (S.UNDER_REVIEW, S.REJECTED): Capability.REVIEWER,
    (S.APPROVED, S.PAID): Capability.ADMIN,
}


class TestTransitionTable:
    def test_initial_state_is_uploaded(self):
        assert INVOICE_WORKFLOW.initial_state == S.UPLOADED

    @pytest.mark.parametrize("edge, capability", sorted(LEGAL_EDGES.items()))
    def test_legal_edges(self, edge, capability):
        transition = INVOICE_WORKFLOW.find(*edge)
        assert transition is not None
        assert transition.required_capability == capability

    @pytest.mark.parametrize(
        "edge",
        [e for e in product(S, S) if e not in LEGAL_EDGES],
    )
    def test_every_other_pair_is_illegal(self, edge):
        assert INVOICE_WORKFLOW.find(*edge) is None

    def test_terminal_states_have_no_outgoing_edges(self):
        assert TERMINAL_INVOICE_STATUSES == {S.REJECTED, S.PAID}
        for state in TERMINAL_INVOICE_STATUSES:
            assert INVOICE_WORKFLOW.allowed_targets(state) == ()

    def test_allowed_targets_from_uploaded(self):
        assert set(INVOICE_WORKFLOW.allowed_targets(S.UPLOADED)) == {
            S.UNDER_REVIEW, S.APPROVED, S.REJECTED,
        }

    def test_audit_action_names_the_target(self):
        assert INVOICE_WORKFLOW.find(S.UPLOADED, S.APPROVED).audit_action == "manual_approved"
        assert INVOICE_WORKFLOW.find(S.APPROVED, S.PAID).audit_action == "manual_paid"


class TestWorkflowDefinitionGuards:
    def test_terminal_state_with_outgoing_edge_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state=S.UPLOADED,
                states=tuple(S),
                transitions=(Transition(S.PAID, S.APPROVED, "unpay", Capability.ADMIN),),
                terminal_states=frozenset({S.PAID}),
            )

    def test_duplicate_edge_rejected(self):
        edge = Transition(S.UPLOADED, S.APPROVED, "approve", Capability.REVIEWER)
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state=S.UPLOADED,
                states=tuple(S),
                transitions=(edge, edge),
            )

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state=S.PAID,
                states=(S.UPLOADED, S.APPROVED),
                transitions=(),
            )


class TestActorCapabilities:
    def test_admin_implies_reviewer(self):
        admin = Actor.from_role(uuid4(), "admin")
        assert admin.has(Capability.ADMIN)
        assert admin.has(Capability.REVIEWER)

    def test_reviewer_is_not_admin(self):
        reviewer = Actor.from_role(uuid4(), "reviewer")
        assert reviewer.has(Capability.REVIEWER)
        assert not reviewer.has(Capability.ADMIN)

    def test_plain_user_has_no_capabilities(self):
        user = Actor.from_role(uuid4(), "user")
        assert not user.has(Capability.REVIEWER)
        assert not user.has(Capability.ADMIN)

    def test_admin_flag_alone_grants_review(self):
        actor = Actor(actor_id=uuid4(), capabilities=frozenset({Capability.ADMIN}))
        assert actor.has(Capability.REVIEWER)
