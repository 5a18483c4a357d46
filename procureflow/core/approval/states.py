"""Approval transitions for purchase orders and invoices.

Each document type has a rule table keyed by (current status, transition).
A rule whose target is None is routed: the target comes from the resolved
approval chain rather than from the table.

Guards:
- OWNER: the document's creator (PO) or uploader (invoice)
- FINANCE: ACCOUNTS or ADMIN
- APPROVER: whoever holds authority for the tier the status waits on
"""

from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set, Tuple

from procureflow.core.documents import DocumentType, InvoiceStatus, LogAction, POStatus
from procureflow.core.rbac.roles import Role


class Transition(str, Enum):
    """Actions that trigger status transitions."""

    SUBMIT = "submit"                        # DRAFT → first pending tier
    APPROVE = "approve"                      # PENDING_* → next tier or success
    REJECT = "reject"                        # PENDING_* → REJECTED
    RESUBMIT = "resubmit"                    # REJECTED → first pending tier
    CANCEL = "cancel"                        # DRAFT/REJECTED → CANCELLED
    MATCH = "match"                          # UPLOADED → MATCHED
    SEND_FOR_APPROVAL = "send_for_approval"  # MATCHED → PENDING_MD_APPROVAL
    MARK_PAID = "mark_paid"                  # APPROVED_FOR_PAYMENT → PAID


class Guard(str, Enum):
    """Who may perform a transition."""

    OWNER = "owner"
    FINANCE = "finance"
    APPROVER = "approver"


class TransitionRule(NamedTuple):
    """Defines a valid status transition."""
    from_status: str
    transition: Transition
    to_status: Optional[str]
    log_action: LogAction
    guard: Guard
    requires_comment: bool = False


PO_RULES: List[TransitionRule] = [
    TransitionRule(POStatus.DRAFT, Transition.SUBMIT, None, LogAction.SENT_FOR_APPROVAL, Guard.OWNER),
    TransitionRule(POStatus.DRAFT, Transition.CANCEL, POStatus.CANCELLED, LogAction.CANCELLED, Guard.OWNER),

    TransitionRule(POStatus.PENDING_PM_APPROVAL, Transition.APPROVE, None, LogAction.APPROVED, Guard.APPROVER),
    TransitionRule(POStatus.PENDING_MD_APPROVAL, Transition.APPROVE, None, LogAction.APPROVED, Guard.APPROVER),
    TransitionRule(POStatus.PENDING_CEO_APPROVAL, Transition.APPROVE, None, LogAction.APPROVED, Guard.APPROVER),

    TransitionRule(POStatus.PENDING_PM_APPROVAL, Transition.REJECT, POStatus.REJECTED, LogAction.REJECTED,
                   Guard.APPROVER, requires_comment=True),
    TransitionRule(POStatus.PENDING_MD_APPROVAL, Transition.REJECT, POStatus.REJECTED, LogAction.REJECTED,
                   Guard.APPROVER, requires_comment=True),
    TransitionRule(POStatus.PENDING_CEO_APPROVAL, Transition.REJECT, POStatus.REJECTED, LogAction.REJECTED,
                   Guard.APPROVER, requires_comment=True),

    TransitionRule(POStatus.REJECTED, Transition.RESUBMIT, None, LogAction.SENT_FOR_APPROVAL, Guard.OWNER),
    TransitionRule(POStatus.REJECTED, Transition.CANCEL, POStatus.CANCELLED, LogAction.CANCELLED, Guard.OWNER),
]

INVOICE_RULES: List[TransitionRule] = [
    TransitionRule(InvoiceStatus.UPLOADED, Transition.MATCH, InvoiceStatus.MATCHED, LogAction.MATCHED,
                   Guard.FINANCE, requires_comment=True),
    TransitionRule(InvoiceStatus.MATCHED, Transition.SEND_FOR_APPROVAL, None, LogAction.SENT_FOR_MD_APPROVAL,
                   Guard.FINANCE),

    TransitionRule(InvoiceStatus.PENDING_MD_APPROVAL, Transition.APPROVE, None, LogAction.APPROVED,
                   Guard.APPROVER),
    TransitionRule(InvoiceStatus.PENDING_MD_APPROVAL, Transition.REJECT, InvoiceStatus.REJECTED,
                   LogAction.REJECTED, Guard.APPROVER, requires_comment=True),

    TransitionRule(InvoiceStatus.APPROVED_FOR_PAYMENT, Transition.MARK_PAID, InvoiceStatus.PAID,
                   LogAction.MARKED_PAID, Guard.FINANCE),

    TransitionRule(InvoiceStatus.REJECTED, Transition.RESUBMIT, None, LogAction.SENT_FOR_APPROVAL, Guard.OWNER),
]

TRANSITION_RULES: Dict[DocumentType, List[TransitionRule]] = {
    DocumentType.PO: PO_RULES,
    DocumentType.INVOICE: INVOICE_RULES,
}

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[Tuple[DocumentType, str], Set[Transition]] = {}
TRANSITION_TARGETS: Dict[Tuple[DocumentType, str, Transition], TransitionRule] = {}

for _document_type, _rules in TRANSITION_RULES.items():
    for rule in _rules:
        VALID_TRANSITIONS.setdefault((_document_type, rule.from_status.value), set()).add(rule.transition)
        TRANSITION_TARGETS[(_document_type, rule.from_status.value, rule.transition)] = rule


# Pending status that waits on each approver role
PENDING_STATUS_FOR_ROLE: Dict[DocumentType, Dict[Role, str]] = {
    DocumentType.PO: {
        Role.PROPERTY_MANAGER: POStatus.PENDING_PM_APPROVAL,
        Role.MD: POStatus.PENDING_MD_APPROVAL,
        Role.CEO: POStatus.PENDING_CEO_APPROVAL,
    },
    DocumentType.INVOICE: {
        Role.MD: InvoiceStatus.PENDING_MD_APPROVAL,
    },
}

REQUIRED_ROLE_FOR_STATUS: Dict[DocumentType, Dict[str, Role]] = {
    document_type: {status.value: role for role, status in mapping.items()}
    for document_type, mapping in PENDING_STATUS_FOR_ROLE.items()
}

# Position of each pending status in the chain; a chain only moves forward
PENDING_RANK: Dict[str, int] = {
    POStatus.PENDING_PM_APPROVAL.value: 1,
    POStatus.PENDING_MD_APPROVAL.value: 2,
    POStatus.PENDING_CEO_APPROVAL.value: 3,
}

SUCCESS_STATUS: Dict[DocumentType, str] = {
    DocumentType.PO: POStatus.APPROVED,
    DocumentType.INVOICE: InvoiceStatus.APPROVED_FOR_PAYMENT,
}

# Statuses with no outgoing transitions except resubmission / cancellation
TERMINAL_STATUSES: Dict[DocumentType, FrozenSet[str]] = {
    DocumentType.PO: frozenset({POStatus.APPROVED, POStatus.REJECTED, POStatus.CANCELLED}),
    DocumentType.INVOICE: frozenset({InvoiceStatus.PAID, InvoiceStatus.REJECTED}),
}


def _status_value(status) -> str:
    return getattr(status, "value", status)


def can_transition(document_type: DocumentType, status: str, transition: Transition) -> bool:
    """Check if a transition is valid from the given status."""
    valid = VALID_TRANSITIONS.get((DocumentType(document_type), _status_value(status)), set())
    return Transition(transition) in valid


def get_transition_rule(
    document_type: DocumentType, status: str, transition: Transition
) -> Optional[TransitionRule]:
    """Get the transition rule for a status/action combination."""
    return TRANSITION_TARGETS.get((DocumentType(document_type), _status_value(status), Transition(transition)))


def pending_status_for(document_type: DocumentType, role: Role) -> Optional[str]:
    """Get the pending status that waits on a role, if the document type has one."""
    status = PENDING_STATUS_FOR_ROLE[DocumentType(document_type)].get(Role(role))
    return status.value if status is not None else None


def required_role_for(document_type: DocumentType, status: str) -> Optional[Role]:
    """Get the approver role a pending status waits on."""
    return REQUIRED_ROLE_FOR_STATUS[DocumentType(document_type)].get(_status_value(status))


def is_pending(document_type: DocumentType, status: str) -> bool:
    return required_role_for(document_type, status) is not None


def is_terminal(document_type: DocumentType, status: str) -> bool:
    return _status_value(status) in {s.value for s in TERMINAL_STATUSES[DocumentType(document_type)]}
