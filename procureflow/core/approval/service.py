"""Approval service: the entry point for acting on purchase orders and invoices.

Every action runs the same pipeline:

1. Load the document fresh (configuration and delegations are read fresh
   by the state machine)
2. Evaluate the transition; errors abort before any write
3. Write the new status conditioned on the status read in step 1
4. Append the audit entry and commit both together
5. Dispatch notifications, PDF generation and e-mails without waiting
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from procureflow.core.config import Settings, get_settings
from procureflow.core.delegation import DelegationAuthority
from procureflow.core.documents import (
    ApprovalLogEntry,
    ApprovableDocument,
    DocumentType,
    InvoiceStatus,
    LogAction,
    POStatus,
)
from procureflow.core.errors import ConflictError, NotFoundError, SideEffectWarning
from procureflow.core.rbac import FINANCE_ROLES, Principal, Role
from procureflow.core.workflow import WorkflowResolver
from procureflow.workers.dispatcher import SideEffectDispatcher, SideEffectHandle, wait_all

from .machine import ApprovalStateMachine, TransitionPlan
from .states import Transition

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    """Outcome of a committed action, with handles on its side effects."""

    document_id: UUID
    document_type: DocumentType
    from_status: str
    to_status: str
    action: LogAction
    log_entry: ApprovalLogEntry
    on_behalf_of: Optional[UUID] = None
    routed_to_ceo: bool = False
    auto_approved: bool = False
    side_effects: List[SideEffectHandle] = field(default_factory=list)

    @property
    def warnings(self) -> List[SideEffectWarning]:
        """Warnings of side effects that have already failed."""
        return [h.warning for h in self.side_effects if h.warning is not None]

    def wait_for_side_effects(self, timeout: Optional[float] = None) -> List[SideEffectWarning]:
        """Block until side effects finish and return the warnings of failed ones."""
        return wait_all(self.side_effects, timeout=timeout)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": str(self.document_id),
            "document_type": self.document_type.value,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "action": self.action.value,
            "on_behalf_of": str(self.on_behalf_of) if self.on_behalf_of else None,
            "routed_to_ceo": self.routed_to_ceo,
            "auto_approved": self.auto_approved,
            "comment": self.log_entry.comment,
            "warnings": [str(w) for w in self.warnings],
        }


class ApprovalService:
    """
    High-level service for approval actions.

    Handles:
    - Purchase order submit / approve / reject / resubmit / cancel
    - Invoice match / send for approval / approve / reject / resubmit / mark paid
    - Optimistic concurrency on the status write
    - Post-commit side effects through a SideEffectDispatcher
    """

    def __init__(
        self,
        repository,
        *,
        notifier=None,
        documents=None,
        emails=None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the approval service.

        Args:
            repository: ApprovalRepository backend
            notifier: NotificationDispatcher (notify(recipient_ids, template_key, context))
            documents: DocumentGenerator (generate(document_id) -> url)
            emails: E-mail sender (send(template_key, document_id))
            dispatcher: Side-effect dispatcher; a thread-pool one is created if omitted
            settings: Application settings
            clock: Returns the current UTC time
        """
        settings = settings or get_settings()
        self.repository = repository
        self.notifier = notifier
        self.documents = documents
        self.emails = emails
        self.dispatcher = dispatcher or SideEffectDispatcher(settings.side_effect_workers)
        self.clock = clock or datetime.utcnow

        self.delegations = DelegationAuthority(
            repository, scope=settings.delegation_scope, clock=self.clock
        )
        self.resolver = WorkflowResolver(repository)
        self.machine = ApprovalStateMachine(
            repository,
            resolver=self.resolver,
            delegations=self.delegations,
            ceo_threshold=settings.default_ceo_approval_threshold,
            scope=settings.delegation_scope,
            clock=self.clock,
        )

    # Approver actions

    def approve(
        self,
        document_id: UUID,
        principal: Principal,
        *,
        document_type: DocumentType = DocumentType.PO,
        comment: Optional[str] = None,
    ) -> ApprovalResult:
        """
        Approve a document at its current tier.

        Returns:
            ApprovalResult; to_status is the next tier, PENDING_CEO_APPROVAL
            when escalated, or the success status

        Raises:
            NotFoundError: If the document does not exist in the principal's organisation
            InvalidTransitionError: If the document is not awaiting approval
            PermissionDeniedError: If the principal lacks authority for the tier
            ConflictError: If the status changed concurrently
        """
        return self._execute(document_type, document_id, Transition.APPROVE, principal, comment=comment)

    def reject(
        self,
        document_id: UUID,
        principal: Principal,
        reason: str,
        *,
        document_type: DocumentType = DocumentType.PO,
    ) -> ApprovalResult:
        """
        Reject a document at its current tier.

        Raises:
            ValidationError: If the reason is empty
            (plus the errors of approve)
        """
        return self._execute(document_type, document_id, Transition.REJECT, principal, comment=reason)

    # Owner actions

    def submit(self, document_id: UUID, principal: Principal) -> ApprovalResult:
        """Send a draft purchase order into its approval chain (or approve it outright)."""
        return self._execute(DocumentType.PO, document_id, Transition.SUBMIT, principal)

    def resubmit(
        self,
        document_id: UUID,
        principal: Principal,
        comment: Optional[str] = None,
        *,
        document_type: DocumentType = DocumentType.PO,
    ) -> ApprovalResult:
        """Start a new approval cycle for a rejected document."""
        return self._execute(document_type, document_id, Transition.RESUBMIT, principal, comment=comment)

    def cancel(self, document_id: UUID, principal: Principal, reason: Optional[str] = None) -> ApprovalResult:
        """Cancel a draft or rejected purchase order."""
        return self._execute(DocumentType.PO, document_id, Transition.CANCEL, principal, comment=reason)

    # Finance actions

    def match_invoice(self, invoice_id: UUID, principal: Principal, note: str) -> ApprovalResult:
        """Accept an invoice whose amount differs from its PO, recording why."""
        return self._execute(DocumentType.INVOICE, invoice_id, Transition.MATCH, principal, comment=note)

    def send_invoice_for_approval(self, invoice_id: UUID, principal: Principal) -> ApprovalResult:
        """Route a matched invoice to MD approval."""
        return self._execute(DocumentType.INVOICE, invoice_id, Transition.SEND_FOR_APPROVAL, principal)

    def mark_invoice_paid(
        self,
        invoice_id: UUID,
        principal: Principal,
        payment_reference: Optional[str] = None,
        payment_date: Optional[date] = None,
    ) -> ApprovalResult:
        """Record payment of an invoice approved for payment."""
        fields = {
            "payment_reference": payment_reference,
            "payment_date": payment_date or self.clock().date(),
        }
        return self._execute(
            DocumentType.INVOICE, invoice_id, Transition.MARK_PAID, principal, fields=fields
        )

    # Queries

    def history(
        self,
        document_id: UUID,
        principal: Principal,
        *,
        document_type: DocumentType = DocumentType.PO,
    ) -> List[ApprovalLogEntry]:
        """Get a document's audit trail, oldest first."""
        self._load(DocumentType(document_type), document_id, principal)
        return self.repository.list_logs(DocumentType(document_type), document_id)

    def available_transitions(
        self,
        document_id: UUID,
        principal: Principal,
        *,
        document_type: DocumentType = DocumentType.PO,
    ) -> List[Transition]:
        document = self._load(DocumentType(document_type), document_id, principal)
        return self.machine.available_transitions(document, principal)

    # Pipeline

    def _load(self, document_type: DocumentType, document_id: UUID, principal: Principal) -> ApprovableDocument:
        document = self.repository.load_document(document_type, document_id)
        if document is None or document.org_id != principal.org_id:
            raise NotFoundError(f"{document_type.value} {document_id} not found")
        return document

    def _execute(
        self,
        document_type: DocumentType,
        document_id: UUID,
        transition: Transition,
        principal: Principal,
        *,
        comment: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> ApprovalResult:
        document_type = DocumentType(document_type)
        document = self._load(document_type, document_id, principal)
        plan = self.machine.evaluate(document, transition, principal, comment=comment, fields=fields)

        rows = self.repository.conditional_update_status(
            document_type, document.id, plan.from_status, plan.to_status, plan.fields
        )
        if rows == 0:
            self.repository.rollback()
            logger.warning(
                f"Stale {transition.value} on {document_type.value} {document.id}: "
                f"status is no longer {plan.from_status}"
            )
            raise ConflictError(
                f"{document_type.value} {document.reference or document.id} was changed by "
                f"someone else; reload and try again",
                code="stale_status",
            )

        try:
            entry = self.repository.append_log(plan.log_entry(self.clock()))
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        on_behalf = f" on behalf of {plan.on_behalf_of}" if plan.on_behalf_of else ""
        logger.info(
            f"{document_type.value} {document.id}: {plan.from_status} -> {plan.to_status} "
            f"({transition.value} by {principal.id}{on_behalf})"
        )

        return ApprovalResult(
            document_id=document.id,
            document_type=document_type,
            from_status=plan.from_status,
            to_status=plan.to_status,
            action=plan.log_action,
            log_entry=entry,
            on_behalf_of=plan.on_behalf_of,
            routed_to_ceo=plan.routed_to_ceo,
            auto_approved=plan.auto_approved,
            side_effects=self._dispatch_side_effects(plan),
        )

    # Side effects

    def _dispatch_side_effects(self, plan: TransitionPlan) -> List[SideEffectHandle]:
        try:
            tasks = list(self._side_effect_tasks(plan))
        except Exception as e:
            logger.exception(f"Could not resolve side effects for {plan.document.id}")
            return [self.dispatcher.failed("resolve_recipients", e)]

        handles = []
        for name, fn, args in tasks:
            try:
                handles.append(self.dispatcher.dispatch(name, fn, *args))
            except Exception as e:
                handles.append(self.dispatcher.failed(name, e))
        return handles

    def _side_effect_tasks(self, plan: TransitionPlan) -> Iterable[Tuple[str, Callable, tuple]]:
        document = plan.document
        context = self._context(plan)

        if plan.document_type == DocumentType.PO:
            if plan.to_status == POStatus.PENDING_CEO_APPROVAL.value:
                ceos = self._approvers_for(document.org_id, Role.CEO)
                yield from self._notify(ceos, "po_pending_ceo_approval", context)
                yield from self._email("po_ceo_approval_request", document.id)
            elif plan.next_role is not None:
                approvers = self._approvers_for(document.org_id, plan.next_role)
                yield from self._notify(approvers, "po_approval_request", context)
                yield from self._email("po_approval_request", document.id)
            elif plan.to_status == POStatus.APPROVED.value:
                if self.documents is not None:
                    yield "generate_pdf", self.documents.generate, (document.id,)
                for template in ("po_approved_contractor", "po_approved_accounts", "po_approved_pm"):
                    yield from self._email(template, document.id)
                if document.owner_id != plan.actor_id:
                    yield from self._notify([document.owner_id], "po_approved", context)
                finance = self._finance_users(document.org_id, exclude=[plan.actor_id])
                yield from self._notify(finance, "po_approved_for_invoice", context)
            elif plan.to_status == POStatus.REJECTED.value:
                yield from self._email("po_rejected", document.id)
                if document.owner_id != plan.actor_id:
                    yield from self._notify([document.owner_id], "po_rejected", context)
        else:
            if plan.to_status == InvoiceStatus.PENDING_MD_APPROVAL.value:
                approvers = self._approvers_for(document.org_id, Role.MD)
                yield from self._notify(approvers, "invoice_needs_approval", context)
                yield from self._email("invoice_needs_approval", document.id)
            elif plan.to_status == InvoiceStatus.APPROVED_FOR_PAYMENT.value:
                yield from self._email("invoice_approved_accounts", document.id)
                yield from self._email("invoice_approved_pm", document.id)
                finance = self._finance_users(document.org_id, exclude=[plan.actor_id])
                yield from self._notify(finance, "invoice_approved", context)
            elif plan.to_status == InvoiceStatus.REJECTED.value:
                finance = self._finance_users(document.org_id, exclude=[plan.actor_id])
                yield from self._notify(finance, "invoice_rejected", context)

    def _notify(self, recipient_ids: List[UUID], template_key: str, context: Dict[str, Any]):
        if self.notifier is not None and recipient_ids:
            yield f"notify:{template_key}", self.notifier.notify, (list(recipient_ids), template_key, context)

    def _email(self, template_key: str, document_id: UUID):
        if self.emails is not None:
            yield f"email:{template_key}", self.emails.send, (template_key, document_id)

    def _approvers_for(self, org_id: UUID, role: Role) -> List[UUID]:
        """Active holders of a role, plus their active delegates for the MD tier."""
        principals = self.repository.find_principals(org_id, [role])
        recipients = [p.id for p in principals]
        if role == Role.MD:
            for md in principals:
                delegates = sorted(self.delegations.effective_approvers(md.id), key=lambda p: str(p.id))
                for delegate in delegates:
                    if delegate.is_active and delegate.org_id == org_id and delegate.id not in recipients:
                        recipients.append(delegate.id)
        return recipients

    def _finance_users(self, org_id: UUID, exclude: List[UUID]) -> List[UUID]:
        return [p.id for p in self.repository.find_principals(org_id, FINANCE_ROLES, exclude=exclude)]

    def _context(self, plan: TransitionPlan) -> Dict[str, Any]:
        document = plan.document
        return {
            "org_id": str(document.org_id),
            "document_id": str(document.id),
            "document_type": plan.document_type.value,
            "reference": document.reference,
            "amount": f"{document.amount:,.2f}",
            "status": plan.to_status,
            "comment": plan.comment,
            "actor_id": str(plan.actor_id),
        }
