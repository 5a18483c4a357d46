"""Tests for approval status definitions and transition rules."""

import pytest

from procureflow.core.approval.states import (
    PENDING_RANK,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    Guard,
    Transition,
    can_transition,
    get_transition_rule,
    is_pending,
    is_terminal,
    pending_status_for,
    required_role_for,
)
from procureflow.core.documents import DocumentType, InvoiceStatus, LogAction, POStatus
from procureflow.core.rbac import Role

PO = DocumentType.PO
INVOICE = DocumentType.INVOICE


class TestStatuses:
    """Test status definitions."""

    def test_po_statuses(self):
        expected = [
            "DRAFT", "PENDING_PM_APPROVAL", "PENDING_MD_APPROVAL",
            "PENDING_CEO_APPROVAL", "APPROVED", "REJECTED", "CANCELLED",
        ]
        assert [s.value for s in POStatus] == expected

    def test_invoice_statuses(self):
        expected = ["UPLOADED", "MATCHED", "PENDING_MD_APPROVAL", "APPROVED_FOR_PAYMENT", "PAID", "REJECTED"]
        assert [s.value for s in InvoiceStatus] == expected

    def test_terminal_statuses(self):
        assert is_terminal(PO, POStatus.APPROVED)
        assert is_terminal(PO, "CANCELLED")
        assert is_terminal(INVOICE, InvoiceStatus.PAID)
        assert not is_terminal(PO, POStatus.PENDING_MD_APPROVAL)
        assert not is_terminal(INVOICE, InvoiceStatus.APPROVED_FOR_PAYMENT)
        assert POStatus.REJECTED in TERMINAL_STATUSES[PO]

    def test_pending_ranks_move_forward(self):
        assert (
            PENDING_RANK["PENDING_PM_APPROVAL"]
            < PENDING_RANK["PENDING_MD_APPROVAL"]
            < PENDING_RANK["PENDING_CEO_APPROVAL"]
        )


class TestTransitions:
    """Test the transition tables."""

    def test_draft(self):
        assert can_transition(PO, POStatus.DRAFT, Transition.SUBMIT)
        assert can_transition(PO, POStatus.DRAFT, Transition.CANCEL)
        assert not can_transition(PO, POStatus.DRAFT, Transition.APPROVE)

    @pytest.mark.parametrize("status", [
        POStatus.PENDING_PM_APPROVAL, POStatus.PENDING_MD_APPROVAL, POStatus.PENDING_CEO_APPROVAL,
    ])
    def test_pending_can_be_approved_or_rejected(self, status):
        assert VALID_TRANSITIONS[(PO, status.value)] == {Transition.APPROVE, Transition.REJECT}

    def test_cancel_only_from_draft_or_rejected(self):
        cancellable = {status for (doc_type, status), ts in VALID_TRANSITIONS.items()
                       if doc_type == PO and Transition.CANCEL in ts}
        assert cancellable == {"DRAFT", "REJECTED"}

    def test_terminal_statuses_only_resubmit_or_cancel(self):
        assert not can_transition(PO, POStatus.APPROVED, Transition.APPROVE)
        assert not can_transition(PO, POStatus.CANCELLED, Transition.RESUBMIT)
        assert VALID_TRANSITIONS[(PO, "REJECTED")] == {Transition.RESUBMIT, Transition.CANCEL}
        assert (PO, "APPROVED") not in VALID_TRANSITIONS
        assert (INVOICE, "PAID") not in VALID_TRANSITIONS

    def test_invoice_chain(self):
        assert can_transition(INVOICE, InvoiceStatus.UPLOADED, Transition.MATCH)
        assert can_transition(INVOICE, InvoiceStatus.MATCHED, Transition.SEND_FOR_APPROVAL)
        assert can_transition(INVOICE, InvoiceStatus.PENDING_MD_APPROVAL, Transition.APPROVE)
        assert can_transition(INVOICE, InvoiceStatus.PENDING_MD_APPROVAL, Transition.REJECT)
        assert can_transition(INVOICE, InvoiceStatus.APPROVED_FOR_PAYMENT, Transition.MARK_PAID)
        assert not can_transition(INVOICE, InvoiceStatus.UPLOADED, Transition.APPROVE)

    def test_reject_requires_comment(self):
        rule = get_transition_rule(PO, POStatus.PENDING_MD_APPROVAL, Transition.REJECT)
        assert rule.requires_comment
        assert rule.to_status == POStatus.REJECTED
        assert rule.log_action == LogAction.REJECTED

    def test_approve_never_requires_comment(self):
        for (doc_type, status), transitions in VALID_TRANSITIONS.items():
            if Transition.APPROVE in transitions:
                assert not get_transition_rule(doc_type, status, Transition.APPROVE).requires_comment

    def test_approve_is_routed(self):
        rule = get_transition_rule(PO, "PENDING_MD_APPROVAL", Transition.APPROVE)
        assert rule.to_status is None
        assert rule.guard == Guard.APPROVER

    def test_guards(self):
        assert get_transition_rule(PO, "DRAFT", Transition.SUBMIT).guard == Guard.OWNER
        assert get_transition_rule(INVOICE, "UPLOADED", Transition.MATCH).guard == Guard.FINANCE
        assert get_transition_rule(INVOICE, "APPROVED_FOR_PAYMENT", Transition.MARK_PAID).guard == Guard.FINANCE

    def test_unknown_combination(self):
        assert get_transition_rule(PO, "DRAFT", Transition.MARK_PAID) is None


class TestRoleMapping:
    """Test pending status to approver role mapping."""

    def test_required_roles(self):
        assert required_role_for(PO, "PENDING_PM_APPROVAL") == Role.PROPERTY_MANAGER
        assert required_role_for(PO, "PENDING_MD_APPROVAL") == Role.MD
        assert required_role_for(PO, "PENDING_CEO_APPROVAL") == Role.CEO
        assert required_role_for(INVOICE, "PENDING_MD_APPROVAL") == Role.MD
        assert required_role_for(PO, "DRAFT") is None

    def test_pending_status_for(self):
        assert pending_status_for(PO, Role.CEO) == "PENDING_CEO_APPROVAL"
        assert pending_status_for(INVOICE, Role.MD) == "PENDING_MD_APPROVAL"
        assert pending_status_for(INVOICE, Role.CEO) is None
        assert pending_status_for(PO, Role.ACCOUNTS) is None

    def test_is_pending(self):
        assert is_pending(PO, POStatus.PENDING_CEO_APPROVAL)
        assert not is_pending(PO, POStatus.APPROVED)
