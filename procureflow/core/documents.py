"""Approvable documents and their audit trail.

Purchase Order statuses:

    DRAFT ──► PENDING_PM_APPROVAL ──► PENDING_MD_APPROVAL ──► [PENDING_CEO_APPROVAL] ──► APPROVED
      │                 │                      │                        │
      │                 └──────────────────────┴────────────┬───────────┘
      │                                                     ▼
      └──────────────► CANCELLED ◄──────────────────── REJECTED ──► (resubmit)

Invoice statuses:

    UPLOADED ──► MATCHED ──► PENDING_MD_APPROVAL ──► APPROVED_FOR_PAYMENT ──► PAID
                                      │
                                      ▼
                                  REJECTED ──► (resubmit)
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID


class DocumentType(str, Enum):
    """Kinds of documents routed through approval chains."""

    PO = "PO"
    INVOICE = "INVOICE"


class POStatus(str, Enum):
    """Purchase order lifecycle states."""

    DRAFT = "DRAFT"
    PENDING_PM_APPROVAL = "PENDING_PM_APPROVAL"
    PENDING_MD_APPROVAL = "PENDING_MD_APPROVAL"
    PENDING_CEO_APPROVAL = "PENDING_CEO_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class InvoiceStatus(str, Enum):
    """Supplier invoice lifecycle states."""

    UPLOADED = "UPLOADED"              # Amount differs from the PO, needs matching
    MATCHED = "MATCHED"
    PENDING_MD_APPROVAL = "PENDING_MD_APPROVAL"
    APPROVED_FOR_PAYMENT = "APPROVED_FOR_PAYMENT"
    PAID = "PAID"
    REJECTED = "REJECTED"


class LogAction(str, Enum):
    """Actions recorded in the approval log."""

    SENT_FOR_APPROVAL = "SENT_FOR_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    UPLOADED = "UPLOADED"
    MATCHED = "MATCHED"
    SENT_FOR_MD_APPROVAL = "SENT_FOR_MD_APPROVAL"
    MARKED_PAID = "MARKED_PAID"


STATUS_ENUMS = {
    DocumentType.PO: POStatus,
    DocumentType.INVOICE: InvoiceStatus,
}


def parse_status(document_type: DocumentType, value: str):
    """Convert a stored status string into the enum for its document type."""
    return STATUS_ENUMS[DocumentType(document_type)](value)


@dataclass(frozen=True)
class ApprovableDocument:
    """Snapshot of a purchase order or invoice, as read for one action."""

    id: UUID
    document_type: DocumentType
    org_id: UUID
    amount: Decimal
    status: str
    owner_id: UUID
    reference: str = ""
    approver_id: Optional[UUID] = None
    rejection_reason: Optional[str] = None

    @property
    def state(self):
        return parse_status(self.document_type, self.status)


@dataclass(frozen=True)
class ApprovalLogEntry:
    """One append-only audit record of an action on a document."""

    document_id: UUID
    document_type: DocumentType
    org_id: UUID
    action: LogAction
    action_by_user_id: UUID
    from_status: str
    to_status: str
    on_behalf_of_user_id: Optional[UUID] = None
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[UUID] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)
