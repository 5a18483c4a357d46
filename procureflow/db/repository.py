"""SQLAlchemy implementation of the approval persistence boundary."""

import dataclasses
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procureflow.core.delegation.models import Delegation
from procureflow.core.documents import (
    ApprovableDocument,
    ApprovalLogEntry,
    DocumentType,
    LogAction,
)
from procureflow.core.errors import ConflictError, NotFoundError
from procureflow.core.rbac.roles import Principal, Role
from procureflow.core.repository import ApprovalRepository
from procureflow.core.workflow import models as wf
from procureflow.db import models

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = {
    DocumentType.PO: models.PurchaseOrder,
    DocumentType.INVOICE: models.Invoice,
}

# Columns the engine may write alongside a status change
WRITABLE_FIELDS = {
    "approved_by_user_id",
    "approval_date",
    "rejection_reason",
    "mismatch_notes",
    "payment_date",
    "payment_reference",
}


def principal_from_user(user: models.User) -> Principal:
    return Principal(
        id=user.id,
        role=Role(user.role),
        org_id=user.org_id,
        is_active=bool(user.is_active),
        full_name=user.full_name,
    )


def document_from_model(document_type: DocumentType, row) -> ApprovableDocument:
    if document_type == DocumentType.PO:
        owner_id = row.created_by_user_id
        reference = row.po_number
    else:
        owner_id = row.uploaded_by_user_id
        reference = row.invoice_number
    return ApprovableDocument(
        id=row.id,
        document_type=document_type,
        org_id=row.org_id,
        amount=row.amount_inc_vat,
        status=row.status,
        owner_id=owner_id,
        reference=reference or "",
        approver_id=row.approved_by_user_id,
        rejection_reason=row.rejection_reason,
    )


def delegation_from_model(row: models.ApprovalDelegation) -> Delegation:
    return Delegation(
        id=row.id,
        delegator_id=row.delegator_user_id,
        delegate_id=row.delegate_user_id,
        scope=row.scope,
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        delegator=principal_from_user(row.delegator) if row.delegator else None,
        delegate=principal_from_user(row.delegate) if row.delegate else None,
    )


def workflow_from_model(row: models.ApprovalWorkflow) -> wf.ApprovalWorkflow:
    return wf.ApprovalWorkflow(
        id=row.id,
        org_id=row.org_id,
        document_type=DocumentType(row.document_type),
        name=row.name,
        is_default=bool(row.is_default),
        is_active=bool(row.is_active),
        steps=[
            wf.WorkflowStep(
                step_order=step.step_order,
                approver_role=Role(step.approver_role),
                min_amount=step.min_amount,
                max_amount=step.max_amount,
                skip_if_below_amount=step.skip_if_below_amount,
                is_required=bool(step.is_required),
                id=step.id,
            )
            for step in row.steps
        ],
    )


def log_from_model(row: models.ApprovalLog) -> ApprovalLogEntry:
    return ApprovalLogEntry(
        id=row.id,
        document_id=row.document_id,
        document_type=DocumentType(row.document_type),
        org_id=row.org_id,
        action=LogAction(row.action),
        action_by_user_id=row.action_by_user_id,
        on_behalf_of_user_id=row.on_behalf_of_user_id,
        from_status=row.from_status,
        to_status=row.to_status,
        comment=row.comment,
        created_at=row.created_at,
        extra_data=dict(row.extra_data or {}),
    )


class SqlAlchemyApprovalRepository(ApprovalRepository):
    """
    Approval persistence on a SQLAlchemy session.

    Every read goes to the database (populate_existing refreshes objects
    already in the identity map), so decisions always see the latest
    committed configuration and status.
    """

    def __init__(self, db: Session):
        """
        Initialize the repository.

        Args:
            db: Database session; the repository commits and rolls it back
        """
        self.db = db

    # Documents

    def load_document(self, document_type: DocumentType, document_id: UUID) -> Optional[ApprovableDocument]:
        document_type = DocumentType(document_type)
        model = DOCUMENT_MODELS[document_type]
        row = self.db.query(model).populate_existing().filter(model.id == document_id).first()
        return document_from_model(document_type, row) if row else None

    def conditional_update_status(
        self,
        document_type: DocumentType,
        document_id: UUID,
        expected_status: str,
        new_status: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> int:
        model = DOCUMENT_MODELS[DocumentType(document_type)]
        expected_status = getattr(expected_status, "value", expected_status)
        values = {"status": getattr(new_status, "value", new_status), "updated_at": datetime.utcnow()}
        for key, value in (fields or {}).items():
            if key not in WRITABLE_FIELDS or not hasattr(model, key):
                raise ValueError(f"Field {key} cannot be written on {model.__tablename__}")
            values[key] = value

        rows = self.db.query(model).filter(
            and_(
                model.id == document_id,
                model.status == expected_status,
            )
        ).update(values, synchronize_session=False)
        logger.debug(
            f"Conditional update {model.__tablename__}:{document_id} "
            f"{expected_status} -> {new_status}: {rows} row(s)"
        )
        return rows

    def append_log(self, entry: ApprovalLogEntry) -> ApprovalLogEntry:
        row = models.ApprovalLog(
            org_id=entry.org_id,
            document_type=DocumentType(entry.document_type).value,
            document_id=entry.document_id,
            action=LogAction(entry.action).value,
            from_status=entry.from_status,
            to_status=entry.to_status,
            action_by_user_id=entry.action_by_user_id,
            on_behalf_of_user_id=entry.on_behalf_of_user_id,
            comment=entry.comment,
            extra_data=dict(entry.extra_data or {}),
            created_at=entry.created_at,
        )
        self.db.add(row)
        self.db.flush()
        return dataclasses.replace(entry, id=row.id, created_at=row.created_at)

    def list_logs(self, document_type: DocumentType, document_id: UUID) -> List[ApprovalLogEntry]:
        rows = self.db.query(models.ApprovalLog).filter(
            and_(
                models.ApprovalLog.document_type == DocumentType(document_type).value,
                models.ApprovalLog.document_id == document_id,
            )
        ).order_by(models.ApprovalLog.created_at.asc()).all()
        return [log_from_model(row) for row in rows]

    # Configuration

    def load_settings(self, org_id: UUID) -> wf.WorkflowSettings:
        row = self.db.query(models.WorkflowSettings).populate_existing().filter(
            models.WorkflowSettings.org_id == org_id
        ).first()
        if not row:
            return wf.WorkflowSettings(org_id=org_id)
        return wf.WorkflowSettings(
            org_id=org_id,
            use_custom_workflows=bool(row.use_custom_workflows),
            auto_approve_below_amount=row.auto_approve_below_amount,
            require_ceo_above_amount=row.require_ceo_above_amount,
        )

    def load_default_workflow(self, org_id: UUID, document_type: DocumentType) -> Optional[wf.ApprovalWorkflow]:
        row = self.db.query(models.ApprovalWorkflow).populate_existing().filter(
            and_(
                models.ApprovalWorkflow.org_id == org_id,
                models.ApprovalWorkflow.document_type == DocumentType(document_type).value,
                models.ApprovalWorkflow.is_default.is_(True),
                models.ApprovalWorkflow.is_active.is_(True),
            )
        ).order_by(models.ApprovalWorkflow.created_at.desc()).first()
        if not row:
            return None
        self.db.expire(row, ["steps"])
        return workflow_from_model(row)

    # Principals

    def load_principal(self, user_id: UUID) -> Optional[Principal]:
        user = self.db.query(models.User).populate_existing().filter(models.User.id == user_id).first()
        return principal_from_user(user) if user else None

    def find_principals(
        self,
        org_id: UUID,
        roles: Iterable[Role],
        *,
        exclude: Optional[Iterable[UUID]] = None,
    ) -> List[Principal]:
        role_values = [Role(r).value for r in roles]
        query = self.db.query(models.User).filter(
            and_(
                models.User.org_id == org_id,
                models.User.role.in_(role_values),
                models.User.is_active.is_(True),
            )
        )
        excluded = list(exclude or [])
        if excluded:
            query = query.filter(models.User.id.notin_(excluded))
        return [principal_from_user(u) for u in query.order_by(models.User.created_at.asc()).all()]

    # Delegations

    def load_delegations(self, principal_id: UUID, scope: str) -> List[Delegation]:
        rows = self.db.query(models.ApprovalDelegation).populate_existing().filter(
            and_(
                models.ApprovalDelegation.delegator_user_id == principal_id,
                models.ApprovalDelegation.scope == scope,
            )
        ).order_by(models.ApprovalDelegation.created_at.asc()).all()
        return [delegation_from_model(row) for row in rows]

    def load_delegations_for_delegate(self, delegate_id: UUID, scope: str) -> List[Delegation]:
        rows = self.db.query(models.ApprovalDelegation).populate_existing().filter(
            and_(
                models.ApprovalDelegation.delegate_user_id == delegate_id,
                models.ApprovalDelegation.scope == scope,
            )
        ).order_by(models.ApprovalDelegation.created_at.asc()).all()
        return [delegation_from_model(row) for row in rows]

    def load_delegation(self, delegation_id: UUID) -> Optional[Delegation]:
        row = self._get_delegation(delegation_id)
        return delegation_from_model(row) if row else None

    def delegation_exists(self, delegator_id: UUID, delegate_id: UUID) -> bool:
        return self.db.query(models.ApprovalDelegation.id).filter(
            and_(
                models.ApprovalDelegation.delegator_user_id == delegator_id,
                models.ApprovalDelegation.delegate_user_id == delegate_id,
            )
        ).first() is not None

    def insert_delegation(
        self,
        delegator_id: UUID,
        delegate_id: UUID,
        scope: str,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
    ) -> Delegation:
        row = models.ApprovalDelegation(
            delegator_user_id=delegator_id,
            delegate_user_id=delegate_id,
            scope=scope,
            starts_at=starts_at,
            ends_at=ends_at,
            is_active=True,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(
                "This user is already a delegate", code="duplicate_delegation"
            ) from e
        self.db.refresh(row)
        return delegation_from_model(row)

    def update_delegation(self, delegation_id: UUID, **fields: Any) -> Delegation:
        row = self._get_delegation(delegation_id)
        if not row:
            raise NotFoundError(f"Delegation {delegation_id} not found")
        for key in ("is_active", "starts_at", "ends_at"):
            if key in fields:
                setattr(row, key, fields[key])
        row.updated_at = datetime.utcnow()
        self.db.flush()
        return delegation_from_model(row)

    def delete_delegation(self, delegation_id: UUID) -> bool:
        row = self._get_delegation(delegation_id)
        if not row:
            return False
        self.db.delete(row)
        self.db.flush()
        return True

    def load_expired_delegations(self, now: datetime) -> List[Delegation]:
        rows = self.db.query(models.ApprovalDelegation).populate_existing().filter(
            and_(
                models.ApprovalDelegation.is_active.is_(True),
                models.ApprovalDelegation.ends_at.isnot(None),
                models.ApprovalDelegation.ends_at < now,
            )
        ).all()
        return [delegation_from_model(row) for row in rows]

    # Unit of work

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def _get_delegation(self, delegation_id: UUID) -> Optional[models.ApprovalDelegation]:
        return self.db.query(models.ApprovalDelegation).populate_existing().filter(
            models.ApprovalDelegation.id == delegation_id
        ).first()
