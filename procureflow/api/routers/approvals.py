"""Approval action API endpoints."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from procureflow.api.deps import get_approval_service, get_current_principal
from procureflow.core.approval import ApprovalService
from procureflow.core.documents import DocumentType
from procureflow.core.rbac import Principal

router = APIRouter(tags=["approvals"])


class DocumentCollection(str, Enum):
    """URL segment naming a document type."""

    PURCHASE_ORDERS = "purchase-orders"
    INVOICES = "invoices"

    @property
    def document_type(self) -> DocumentType:
        if self is DocumentCollection.PURCHASE_ORDERS:
            return DocumentType.PO
        return DocumentType.INVOICE


# Schemas
class ApprovalAction(BaseModel):
    comment: Optional[str] = None


class RejectAction(BaseModel):
    reason: str = Field(..., min_length=1)


class MatchAction(BaseModel):
    note: str = Field(..., min_length=1)


class PaymentAction(BaseModel):
    payment_reference: Optional[str] = None
    payment_date: Optional[date] = None


class ApprovalLogResponse(BaseModel):
    id: Optional[UUID]
    action: str
    from_status: str
    to_status: str
    action_by_user_id: UUID
    on_behalf_of_user_id: Optional[UUID]
    comment: Optional[str]
    created_at: datetime
    extra_data: Dict[str, Any] = {}


# Purchase order lifecycle
@router.post("/purchase-orders/{po_id}/submit")
def submit_po(
    po_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Submit a draft purchase order for approval."""
    return service.submit(po_id, principal).to_dict()


@router.post("/purchase-orders/{po_id}/cancel")
def cancel_po(
    po_id: UUID,
    action: ApprovalAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Cancel a draft or rejected purchase order."""
    return service.cancel(po_id, principal, action.comment).to_dict()


# Invoice bookkeeping
@router.post("/invoices/{invoice_id}/match")
def match_invoice(
    invoice_id: UUID,
    action: MatchAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Accept an invoice whose amount differs from its purchase order."""
    return service.match_invoice(invoice_id, principal, action.note).to_dict()


@router.post("/invoices/{invoice_id}/send-for-approval")
def send_invoice_for_approval(
    invoice_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Route a matched invoice to MD approval."""
    return service.send_invoice_for_approval(invoice_id, principal).to_dict()


@router.post("/invoices/{invoice_id}/mark-paid")
def mark_invoice_paid(
    invoice_id: UUID,
    action: PaymentAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Record payment of an approved invoice."""
    result = service.mark_invoice_paid(
        invoice_id, principal, action.payment_reference, action.payment_date
    )
    return result.to_dict()


# Shared approver actions
@router.post("/{collection}/{document_id}/approve")
def approve_document(
    collection: DocumentCollection,
    document_id: UUID,
    action: ApprovalAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Approve a document at its current tier."""
    result = service.approve(
        document_id, principal, document_type=collection.document_type, comment=action.comment
    )
    return result.to_dict()


@router.post("/{collection}/{document_id}/reject")
def reject_document(
    collection: DocumentCollection,
    document_id: UUID,
    action: RejectAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Reject a document at its current tier."""
    result = service.reject(
        document_id, principal, action.reason, document_type=collection.document_type
    )
    return result.to_dict()


@router.post("/{collection}/{document_id}/resubmit")
def resubmit_document(
    collection: DocumentCollection,
    document_id: UUID,
    action: ApprovalAction,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Start a new approval cycle for a rejected document."""
    result = service.resubmit(
        document_id, principal, action.comment, document_type=collection.document_type
    )
    return result.to_dict()


# Queries
@router.get("/{collection}/{document_id}/history", response_model=List[ApprovalLogResponse])
def get_history(
    collection: DocumentCollection,
    document_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """Get a document's approval log, oldest first."""
    entries = service.history(document_id, principal, document_type=collection.document_type)
    return [
        ApprovalLogResponse(
            id=e.id,
            action=e.action.value,
            from_status=e.from_status,
            to_status=e.to_status,
            action_by_user_id=e.action_by_user_id,
            on_behalf_of_user_id=e.on_behalf_of_user_id,
            comment=e.comment,
            created_at=e.created_at,
            extra_data=e.extra_data,
        )
        for e in entries
    ]


@router.get("/{collection}/{document_id}/transitions", response_model=List[str])
def get_available_transitions(
    collection: DocumentCollection,
    document_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ApprovalService = Depends(get_approval_service),
):
    """List the actions the caller may take on a document right now."""
    transitions = service.available_transitions(
        document_id, principal, document_type=collection.document_type
    )
    return [t.value for t in transitions]
