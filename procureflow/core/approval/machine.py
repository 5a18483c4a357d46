"""Approval state machine implementation.

Validates a requested transition against the document's current status and
the acting principal's authority, and works out where the document goes
next. Evaluation has no side effects: the result is a TransitionPlan that
the orchestrator writes with a conditional update.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from procureflow.core.config import DEFAULT_CEO_APPROVAL_THRESHOLD, PO_APPROVAL_SCOPE
from procureflow.core.documents import (
    ApprovableDocument,
    ApprovalLogEntry,
    DocumentType,
    LogAction,
    POStatus,
)
from procureflow.core.errors import (
    ConfigurationError,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from procureflow.core.rbac import AuthorityChecker, FINANCE_ROLES, Principal, Role
from procureflow.core.workflow import ApprovalStep, WorkflowResolver, to_amount

from .states import (
    PENDING_RANK,
    SUCCESS_STATUS,
    Guard,
    Transition,
    TransitionRule,
    get_transition_rule,
    pending_status_for,
    required_role_for,
)

logger = logging.getLogger(__name__)

ESCALATION_COMMENT = "MD approved - routed to CEO for final approval"
AUTO_APPROVED_COMMENT = "Auto-approved: no approval required for this amount"
RESUBMITTED_COMMENT = "Resubmitted for approval"

COMMENT_REQUIRED_MESSAGES = {
    Transition.REJECT: "A rejection reason is required",
    Transition.MATCH: "A note explaining the amount mismatch is required",
}

# Transitions whose target is the first tier of a freshly resolved chain
CHAIN_ENTRY_TRANSITIONS = {Transition.SUBMIT, Transition.RESUBMIT, Transition.SEND_FOR_APPROVAL}


@dataclass(frozen=True)
class TransitionPlan:
    """A validated transition, ready to be written."""

    document: ApprovableDocument
    transition: Transition
    from_status: str
    to_status: str
    log_action: LogAction
    actor_id: UUID
    on_behalf_of: Optional[UUID] = None
    comment: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    routed_to_ceo: bool = False
    auto_approved: bool = False

    @property
    def document_type(self) -> DocumentType:
        return self.document.document_type

    @property
    def next_role(self) -> Optional[Role]:
        """Approver role the document waits on after this transition."""
        return required_role_for(self.document_type, self.to_status)

    @property
    def is_final_approval(self) -> bool:
        return self.to_status == SUCCESS_STATUS[self.document_type].value

    def log_entry(self, now: Optional[datetime] = None) -> ApprovalLogEntry:
        """Build the audit entry recording this transition."""
        return ApprovalLogEntry(
            document_id=self.document.id,
            document_type=self.document_type,
            org_id=self.document.org_id,
            action=self.log_action,
            action_by_user_id=self.actor_id,
            on_behalf_of_user_id=self.on_behalf_of,
            from_status=self.from_status,
            to_status=self.to_status,
            comment=self.comment,
            created_at=now or datetime.utcnow(),
            extra_data={
                "transition": self.transition.value,
                "routed_to_ceo": self.routed_to_ceo,
                "auto_approved": self.auto_approved,
            },
        )


class ApprovalStateMachine:
    """
    State machine for purchase order and invoice approval.

    Evaluates transitions with:
    - Validation against the per-document-type rule tables
    - Owner, finance and approver guards (approver authority may be delegated)
    - Routing through the resolved approval chain, including CEO escalation
    """

    def __init__(
        self,
        repository,
        *,
        resolver: Optional[WorkflowResolver] = None,
        delegations=None,
        ceo_threshold: Decimal = DEFAULT_CEO_APPROVAL_THRESHOLD,
        scope: str = PO_APPROVAL_SCOPE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the state machine.

        Args:
            repository: ApprovalRepository used for settings lookups
            resolver: Resolves approval chains; built on the repository if omitted
            delegations: DelegationAuthority granting delegated MD authority
            ceo_threshold: Escalation threshold when an organisation sets none
            scope: Delegation scope that grants MD authority
            clock: Returns the current UTC time
        """
        self.repository = repository
        self.resolver = resolver or WorkflowResolver(repository)
        self.delegations = delegations
        self.ceo_threshold = Decimal(ceo_threshold)
        self.scope = scope
        self.clock = clock or datetime.utcnow

    def available_transitions(
        self, document: ApprovableDocument, principal: Principal
    ) -> List[Transition]:
        """Get the transitions the principal may attempt on the document right now."""
        available = []
        for transition in Transition:
            rule = get_transition_rule(document.document_type, document.status, transition)
            if rule is None:
                continue
            try:
                self._authorize(rule, document, principal)
            except PermissionDeniedError:
                continue
            available.append(transition)
        return available

    def evaluate(
        self,
        document: ApprovableDocument,
        transition: Transition,
        principal: Principal,
        *,
        comment: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> TransitionPlan:
        """
        Validate a transition and work out its target.

        Args:
            document: Freshly loaded document snapshot
            transition: Requested transition
            principal: Acting principal
            comment: Reason, note or free comment
            fields: Extra columns to write with the status (e.g. payment reference)

        Returns:
            TransitionPlan describing the write and the audit entry

        Raises:
            InvalidTransitionError: If the transition is not legal from the current status
            PermissionDeniedError: If the principal may not perform it
            ValidationError: On a missing reason/note or a non-positive amount
            ConfigurationError: If a non-empty chain has no routable approver
        """
        transition = Transition(transition)
        document_type = DocumentType(document.document_type)

        rule = get_transition_rule(document_type, document.status, transition)
        if rule is None:
            raise InvalidTransitionError(
                f"Cannot {transition.value} a {document_type.value} in status {document.status}",
                document.status,
                transition.value,
            )

        on_behalf_of = self._authorize(rule, document, principal)

        comment = comment.strip() if comment and comment.strip() else None
        if rule.requires_comment and not comment:
            raise ValidationError(
                COMMENT_REQUIRED_MESSAGES.get(transition, f"{transition.value} requires a comment"),
                code="comment_required",
            )

        now = self.clock()
        log_action = rule.log_action
        routed_to_ceo = False
        auto_approved = False
        plan_fields: Dict[str, Any] = {}

        if rule.to_status is not None:
            to_status = rule.to_status.value
        elif transition == Transition.APPROVE:
            if self._escalates(document, principal):
                to_status = POStatus.PENDING_CEO_APPROVAL.value
                routed_to_ceo = True
                comment = f"{ESCALATION_COMMENT}: {comment}" if comment else ESCALATION_COMMENT
            else:
                steps = self.resolver.get_applicable_steps(document.org_id, document.amount, document_type)
                to_status = self._next_pending(document_type, steps, after=document.status)
                if to_status is None:
                    to_status = SUCCESS_STATUS[document_type].value
        elif transition in CHAIN_ENTRY_TRANSITIONS:
            steps = self.resolver.get_applicable_steps(document.org_id, document.amount, document_type)
            if not steps:
                to_status = SUCCESS_STATUS[document_type].value
                log_action = LogAction.APPROVED
                auto_approved = True
                comment = AUTO_APPROVED_COMMENT
            else:
                to_status = self._next_pending(document_type, steps)
                if to_status is None:
                    raise ConfigurationError(
                        f"No approver tier for {document_type.value} chain "
                        f"{[step.role.value for step in steps]}",
                        code="unroutable_chain",
                    )
            if transition == Transition.RESUBMIT and not auto_approved:
                comment = comment or RESUBMITTED_COMMENT
        else:
            raise ValueError(f"Transition {transition.value} has no target")

        if transition == Transition.RESUBMIT:
            plan_fields.update(rejection_reason=None, approved_by_user_id=None, approval_date=None)
        if transition == Transition.REJECT:
            plan_fields["rejection_reason"] = comment
        if transition == Transition.MATCH:
            plan_fields["mismatch_notes"] = comment
        if to_status == SUCCESS_STATUS[document_type].value:
            plan_fields.update(approved_by_user_id=principal.id, approval_date=now)
        if fields:
            plan_fields.update(fields)

        return TransitionPlan(
            document=document,
            transition=transition,
            from_status=document.status,
            to_status=to_status,
            log_action=log_action,
            actor_id=principal.id,
            on_behalf_of=on_behalf_of,
            comment=comment,
            fields=plan_fields,
            routed_to_ceo=routed_to_ceo,
            auto_approved=auto_approved,
        )

    def _authorize(
        self, rule: TransitionRule, document: ApprovableDocument, principal: Principal
    ) -> Optional[UUID]:
        """Run the rule's guard; returns the delegator id for delegated authority."""
        checker = AuthorityChecker(principal, self.delegations, scope=self.scope)
        checker.require_active()
        checker.require_organisation(document.org_id)

        if rule.guard == Guard.OWNER:
            checker.require_owner(document.owner_id, rule.transition.value)
            return None
        if rule.guard == Guard.FINANCE:
            checker.require_role(FINANCE_ROLES, rule.transition.value)
            return None
        if rule.guard == Guard.APPROVER:
            required_role = required_role_for(document.document_type, document.status)
            grant = checker.authorize_approval(required_role)
            return grant.on_behalf_of
        raise ValueError(f"Unhandled guard {rule.guard}")

    def _escalates(self, document: ApprovableDocument, principal: Principal) -> bool:
        """
        Check the CEO escalation rule for an MD-tier PO approval.

        Applies whenever custom workflows are on, whether or not the custom
        chain already ends with a CEO step.
        """
        if document.document_type != DocumentType.PO:
            return False
        if document.status != POStatus.PENDING_MD_APPROVAL.value:
            return False

        settings = self.repository.load_settings(document.org_id)
        if not settings.use_custom_workflows:
            return False

        threshold = settings.require_ceo_above_amount
        if threshold is None:
            threshold = self.ceo_threshold
        amount = to_amount(document.amount)
        escalates = amount > Decimal(threshold) and principal.role != Role.CEO
        if escalates:
            logger.debug(f"PO {document.id} ({amount}) exceeds CEO threshold {threshold}")
        return escalates

    def _next_pending(
        self,
        document_type: DocumentType,
        steps: Sequence[ApprovalStep],
        after: Optional[str] = None,
    ) -> Optional[str]:
        """First routable step's pending status, ranking after the given status."""
        for status in self._routable_statuses(document_type, steps):
            if after is None or PENDING_RANK[status] > PENDING_RANK[after]:
                return status
        return None

    def _routable_statuses(
        self, document_type: DocumentType, steps: Sequence[ApprovalStep]
    ) -> List[str]:
        """
        Map a resolved chain onto pending statuses, in routing order.

        A chain only moves forward through the tiers, so a step whose tier
        ranks below an earlier step's could never be signed.

        Raises:
            ConfigurationError: If such a step is required
        """
        statuses: List[str] = []
        for step in steps:
            status = pending_status_for(document_type, step.role)
            if status is None:
                logger.debug(f"Skipping {step.role.value} step: no {document_type.value} tier")
                continue
            if statuses and PENDING_RANK[status] <= PENDING_RANK[statuses[-1]]:
                if step.required and PENDING_RANK[status] < PENDING_RANK[statuses[-1]]:
                    raise ConfigurationError(
                        f"Required {step.role.value} step is ordered after a higher tier in the "
                        f"{document_type.value} chain {[s.role.value for s in steps]}",
                        code="unreachable_step",
                    )
                logger.debug(f"Skipping {step.role.value} step: tier already passed")
                continue
            statuses.append(status)
        return statuses
