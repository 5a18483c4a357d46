"""Tests for ApprovalStateMachine transition evaluation."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from procureflow.core.approval import ApprovalStateMachine, Transition
from procureflow.core.approval.machine import (
    AUTO_APPROVED_COMMENT,
    ESCALATION_COMMENT,
    RESUBMITTED_COMMENT,
)
from procureflow.core.delegation import DelegationAuthority
from procureflow.core.documents import DocumentType, LogAction
from procureflow.core.errors import (
    ConfigurationError,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from procureflow.core.rbac import Role
from procureflow.core.workflow import WorkflowStep


@pytest.fixture
def people(repo, org_id):
    return {
        role: repo.add_principal(role, org_id)
        for role in (Role.PROPERTY_MANAGER, Role.MD, Role.CEO, Role.ACCOUNTS, Role.ADMIN)
    }


@pytest.fixture
def machine(repo, clock):
    return ApprovalStateMachine(
        repo,
        delegations=DelegationAuthority(repo, clock=clock),
        ceo_threshold=Decimal("15000"),
        clock=clock,
    )


class TestSubmit:
    """Test chain entry on submission."""

    def test_submit_routes_to_first_tier(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "DRAFT")
        plan = machine.evaluate(po, Transition.SUBMIT, people[Role.PROPERTY_MANAGER])
        assert plan.to_status == "PENDING_MD_APPROVAL"
        assert plan.log_action == LogAction.SENT_FOR_APPROVAL
        assert plan.next_role == Role.MD
        assert not plan.auto_approved

    def test_submit_below_auto_approval_finalizes(self, repo, machine, people, org_id, now):
        """Test a 1500 PO with auto-approval at 2000 is approved on submission."""
        repo.set_settings(org_id, auto_approve_below_amount=Decimal("2000"))
        owner = people[Role.PROPERTY_MANAGER]
        po = repo.add_document(owner, 1500, "DRAFT")

        plan = machine.evaluate(po, Transition.SUBMIT, owner)

        assert plan.to_status == "APPROVED"
        assert plan.auto_approved
        assert plan.log_action == LogAction.APPROVED
        assert plan.comment == AUTO_APPROVED_COMMENT
        assert plan.next_role is None
        assert plan.fields["approved_by_user_id"] == owner.id
        assert plan.fields["approval_date"] == now

    def test_custom_chain_starts_with_pm(self, repo, machine, people, org_id):
        repo.set_settings(org_id, use_custom_workflows=True)
        repo.set_workflow(org_id, [
            WorkflowStep(step_order=1, approver_role=Role.PROPERTY_MANAGER),
            WorkflowStep(step_order=2, approver_role=Role.MD),
        ])
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 800, "DRAFT")
        plan = machine.evaluate(po, Transition.SUBMIT, people[Role.PROPERTY_MANAGER])
        assert plan.to_status == "PENDING_PM_APPROVAL"

    def test_unroutable_chain(self, repo, machine, people, org_id):
        """Test a chain holding only roles with no PO tier is a configuration error."""
        repo.set_settings(org_id, use_custom_workflows=True)
        repo.set_workflow(org_id, [WorkflowStep(step_order=1, approver_role=Role.ACCOUNTS)])
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 800, "DRAFT")
        with pytest.raises(ConfigurationError) as exc_info:
            machine.evaluate(po, Transition.SUBMIT, people[Role.PROPERTY_MANAGER])
        assert exc_info.value.code == "unroutable_chain"

    def test_required_step_behind_higher_tier(self, repo, machine, people, org_id):
        """Test a required MD step ordered after the CEO step is never skipped."""
        repo.set_settings(org_id, use_custom_workflows=True)
        repo.set_workflow(org_id, [
            WorkflowStep(step_order=1, approver_role=Role.CEO),
            WorkflowStep(step_order=2, approver_role=Role.MD, is_required=True),
        ])
        draft = repo.add_document(people[Role.PROPERTY_MANAGER], 8000, "DRAFT")
        waiting = repo.add_document(people[Role.PROPERTY_MANAGER], 8000, "PENDING_CEO_APPROVAL")

        with pytest.raises(ConfigurationError) as exc_info:
            machine.evaluate(draft, Transition.SUBMIT, people[Role.PROPERTY_MANAGER])
        assert exc_info.value.code == "unreachable_step"
        with pytest.raises(ConfigurationError):
            machine.evaluate(waiting, Transition.APPROVE, people[Role.CEO])

    def test_optional_step_behind_higher_tier_skipped(self, repo, machine, people, org_id):
        repo.set_settings(org_id, use_custom_workflows=True)
        repo.set_workflow(org_id, [
            WorkflowStep(step_order=1, approver_role=Role.MD),
            WorkflowStep(step_order=2, approver_role=Role.PROPERTY_MANAGER, is_required=False),
        ])
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 8000, "DRAFT")
        plan = machine.evaluate(po, Transition.SUBMIT, people[Role.PROPERTY_MANAGER])
        assert plan.to_status == "PENDING_MD_APPROVAL"

    def test_only_owner_submits(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "DRAFT")
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(po, Transition.SUBMIT, people[Role.MD])


class TestApprove:
    """Test approval routing."""

    def test_md_approves_to_success(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "PENDING_MD_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.MD])
        assert plan.to_status == "APPROVED"
        assert plan.is_final_approval
        assert plan.comment is None

    def test_pm_tier_moves_to_md(self, repo, machine, people, org_id):
        repo.set_settings(org_id, use_custom_workflows=True)
        repo.set_workflow(org_id, [
            WorkflowStep(step_order=1, approver_role=Role.PROPERTY_MANAGER),
            WorkflowStep(step_order=2, approver_role=Role.MD),
        ])
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 800, "PENDING_PM_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.PROPERTY_MANAGER])
        assert plan.to_status == "PENDING_MD_APPROVAL"
        assert "approved_by_user_id" not in plan.fields

    def test_threshold_policy_ceo_tier(self, repo, machine, people, org_id):
        repo.set_settings(org_id, require_ceo_above_amount=Decimal("15000"))
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 15000, "PENDING_MD_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.MD])
        assert plan.to_status == "PENDING_CEO_APPROVAL"
        assert not plan.routed_to_ceo

    def test_escalation_routes_to_ceo(self, repo, machine, people, org_id):
        """Test an MD approving 20000 with custom workflows on reroutes to the CEO."""
        repo.set_settings(org_id, use_custom_workflows=True, require_ceo_above_amount=Decimal("15000"))
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_MD_APPROVAL")

        plan = machine.evaluate(po, Transition.APPROVE, people[Role.MD])

        assert plan.to_status == "PENDING_CEO_APPROVAL"
        assert plan.routed_to_ceo
        assert plan.log_action == LogAction.APPROVED
        assert plan.comment == ESCALATION_COMMENT
        assert "routed to CEO" in plan.comment
        assert not plan.is_final_approval
        assert plan.fields == {}

    def test_escalation_keeps_approver_comment(self, repo, machine, people, org_id):
        repo.set_settings(org_id, use_custom_workflows=True)
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_MD_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.MD], comment="Quote checked")
        assert plan.comment == f"{ESCALATION_COMMENT}: Quote checked"

    def test_escalation_default_threshold(self, repo, machine, people, org_id):
        """Test 15000 applies when the organisation sets no CEO threshold."""
        repo.set_settings(org_id, use_custom_workflows=True)
        at_threshold = repo.add_document(people[Role.PROPERTY_MANAGER], 15000, "PENDING_MD_APPROVAL")
        above = repo.add_document(people[Role.PROPERTY_MANAGER], "15000.01", "PENDING_MD_APPROVAL")
        assert machine.evaluate(at_threshold, Transition.APPROVE, people[Role.MD]).to_status == "APPROVED"
        assert machine.evaluate(above, Transition.APPROVE, people[Role.MD]).routed_to_ceo

    def test_escalation_with_ceo_step_in_workflow(self, repo, machine, people, org_id):
        """Test escalation still fires when the custom chain ends with a CEO step."""
        repo.set_settings(org_id, use_custom_workflows=True, require_ceo_above_amount=Decimal("15000"))
        repo.set_workflow(org_id, [
            WorkflowStep(step_order=1, approver_role=Role.MD),
            WorkflowStep(step_order=2, approver_role=Role.CEO, min_amount=Decimal("15000")),
        ])
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_MD_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.MD])
        assert plan.to_status == "PENDING_CEO_APPROVAL"
        assert plan.routed_to_ceo

    def test_no_escalation_without_custom_workflows(self, repo, machine, people, org_id):
        repo.set_settings(org_id, require_ceo_above_amount=Decimal("50000"))
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_MD_APPROVAL")
        assert machine.evaluate(po, Transition.APPROVE, people[Role.MD]).to_status == "APPROVED"

    def test_ceo_final_approval(self, repo, machine, people, org_id):
        repo.set_settings(org_id, use_custom_workflows=True)
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_CEO_APPROVAL")
        plan = machine.evaluate(po, Transition.APPROVE, people[Role.CEO])
        assert plan.to_status == "APPROVED"
        assert plan.fields["approved_by_user_id"] == people[Role.CEO].id

    @pytest.mark.parametrize("amount", [1, 5000, 20000, 1000000])
    def test_ceo_never_acts_on_md_tier(self, repo, machine, people, amount):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], amount, "PENDING_MD_APPROVAL")
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(po, Transition.APPROVE, people[Role.CEO])

    def test_admin_cannot_approve_ceo_tier(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 20000, "PENDING_CEO_APPROVAL")
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(po, Transition.APPROVE, people[Role.ADMIN])

    def test_delegate_approves_on_behalf(self, repo, machine, people, now):
        md, pm = people[Role.MD], people[Role.PROPERTY_MANAGER]
        repo.add_delegation(md, pm, starts_at=now - timedelta(days=2))
        po = repo.add_document(people[Role.ADMIN], 5000, "PENDING_MD_APPROVAL")

        plan = machine.evaluate(po, Transition.APPROVE, pm)

        assert plan.on_behalf_of == md.id
        assert plan.log_entry(now).on_behalf_of_user_id == md.id

    def test_other_organisation_refused(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "PENDING_MD_APPROVAL")
        outsider = repo.add_principal(Role.MD, uuid4())
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(po, Transition.APPROVE, outsider)

    def test_approve_from_draft_is_invalid(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "DRAFT")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.evaluate(po, Transition.APPROVE, people[Role.MD])
        assert exc_info.value.from_status == "DRAFT"
        assert exc_info.value.transition == "approve"

    def test_invalid_amount(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 0, "PENDING_MD_APPROVAL")
        with pytest.raises(ValidationError):
            machine.evaluate(po, Transition.APPROVE, people[Role.MD])


class TestRejectAndResubmit:
    """Test rejection and new approval cycles."""

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reject_requires_reason(self, repo, machine, people, reason):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "PENDING_MD_APPROVAL")
        with pytest.raises(ValidationError) as exc_info:
            machine.evaluate(po, Transition.REJECT, people[Role.MD], comment=reason)
        assert exc_info.value.code == "comment_required"

    def test_reject(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "PENDING_MD_APPROVAL")
        plan = machine.evaluate(po, Transition.REJECT, people[Role.MD], comment="  Too expensive ")
        assert plan.to_status == "REJECTED"
        assert plan.comment == "Too expensive"
        assert plan.fields == {"rejection_reason": "Too expensive"}

    def test_resubmit_clears_rejection(self, repo, machine, people):
        owner = people[Role.PROPERTY_MANAGER]
        po = repo.add_document(owner, 5000, "REJECTED")
        plan = machine.evaluate(po, Transition.RESUBMIT, owner)
        assert plan.to_status == "PENDING_MD_APPROVAL"
        assert plan.comment == RESUBMITTED_COMMENT
        assert plan.fields["rejection_reason"] is None
        assert plan.fields["approved_by_user_id"] is None

    def test_cancel_only_by_owner(self, repo, machine, people):
        owner = people[Role.PROPERTY_MANAGER]
        po = repo.add_document(owner, 5000, "REJECTED")
        assert machine.evaluate(po, Transition.CANCEL, owner).to_status == "CANCELLED"
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(po, Transition.CANCEL, people[Role.ADMIN])

    def test_cancel_from_pending_is_invalid(self, repo, machine, people):
        owner = people[Role.PROPERTY_MANAGER]
        po = repo.add_document(owner, 5000, "PENDING_MD_APPROVAL")
        with pytest.raises(InvalidTransitionError):
            machine.evaluate(po, Transition.CANCEL, owner)


class TestInvoices:
    """Test invoice transitions."""

    def test_match_requires_note(self, repo, machine, people):
        invoice = repo.add_document(
            people[Role.ACCOUNTS], 5200, "UPLOADED", document_type=DocumentType.INVOICE
        )
        with pytest.raises(ValidationError):
            machine.evaluate(invoice, Transition.MATCH, people[Role.ACCOUNTS])
        plan = machine.evaluate(invoice, Transition.MATCH, people[Role.ACCOUNTS], comment="Extra materials")
        assert plan.to_status == "MATCHED"
        assert plan.fields == {"mismatch_notes": "Extra materials"}

    def test_send_for_approval_routes_to_md(self, repo, machine, people):
        invoice = repo.add_document(
            people[Role.ACCOUNTS], 5200, "MATCHED", document_type=DocumentType.INVOICE
        )
        plan = machine.evaluate(invoice, Transition.SEND_FOR_APPROVAL, people[Role.ADMIN])
        assert plan.to_status == "PENDING_MD_APPROVAL"
        assert plan.log_action == LogAction.SENT_FOR_MD_APPROVAL

    def test_ceo_step_has_no_invoice_tier(self, repo, machine, people, org_id):
        repo.set_settings(org_id, require_ceo_above_amount=Decimal("1000"))
        invoice = repo.add_document(
            people[Role.ACCOUNTS], 5200, "PENDING_MD_APPROVAL", document_type=DocumentType.INVOICE
        )
        plan = machine.evaluate(invoice, Transition.APPROVE, people[Role.MD])
        assert plan.to_status == "APPROVED_FOR_PAYMENT"

    def test_finance_only(self, repo, machine, people):
        invoice = repo.add_document(
            people[Role.ACCOUNTS], 5200, "APPROVED_FOR_PAYMENT", document_type=DocumentType.INVOICE
        )
        with pytest.raises(PermissionDeniedError):
            machine.evaluate(invoice, Transition.MARK_PAID, people[Role.MD])


class TestAvailableTransitions:
    """Test listing the actions open to a principal."""

    def test_md_on_pending_md(self, repo, machine, people):
        po = repo.add_document(people[Role.PROPERTY_MANAGER], 5000, "PENDING_MD_APPROVAL")
        assert machine.available_transitions(po, people[Role.MD]) == [Transition.APPROVE, Transition.REJECT]
        assert machine.available_transitions(po, people[Role.CEO]) == []

    def test_owner_on_draft(self, repo, machine, people):
        owner = people[Role.PROPERTY_MANAGER]
        po = repo.add_document(owner, 5000, "DRAFT")
        assert machine.available_transitions(po, owner) == [Transition.SUBMIT, Transition.CANCEL]
