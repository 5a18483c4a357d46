"""Workflow administration service.

Provides the configuration side of approval routing: organisation settings,
custom workflows and their steps, default selection and chain previews.
Changes are flushed to the session; the caller commits.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procureflow.core.documents import DocumentType
from procureflow.core.errors import ConflictError, NotFoundError, ValidationError
from procureflow.core.rbac import AuthorityChecker, Principal, Role, WORKFLOW_ADMIN_ROLES

from .models import ApprovalStep, validate_step_bounds
from .resolver import WorkflowResolver, to_amount

logger = logging.getLogger(__name__)

_UNSET = object()


def _optional_amount(value) -> Optional[Decimal]:
    return None if value is None else to_amount(value)


class WorkflowService:
    """
    High-level service for managing approval workflow configuration.

    Handles:
    - Threshold settings per organisation
    - Workflow and step CRUD
    - Default workflow selection per document type
    - Previewing the chain an amount would get
    """

    def __init__(self, db: Session, principal: Principal):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            principal: Acting principal; its organisation scopes every query
        """
        self.db = db
        self.principal = principal
        self.org_id = principal.org_id
        self.checker = AuthorityChecker(principal)

    # Settings

    def get_settings(self) -> Dict[str, Any]:
        """Get the organisation's workflow settings (defaults when unset)."""
        row = self._settings_row()
        if not row:
            return {
                "org_id": str(self.org_id),
                "use_custom_workflows": False,
                "auto_approve_below_amount": None,
                "require_ceo_above_amount": None,
            }
        return self._settings_to_dict(row)

    def update_settings(
        self,
        *,
        use_custom_workflows: Optional[bool] = None,
        auto_approve_below_amount=_UNSET,
        require_ceo_above_amount=_UNSET,
    ) -> Dict[str, Any]:
        """
        Update workflow settings. Passing None for a threshold clears it.

        Raises:
            PermissionDeniedError: If the principal is not MD or ADMIN
            ValidationError: On non-positive thresholds, or an auto-approve
                threshold not below the CEO threshold
        """
        from procureflow.db.models import WorkflowSettings

        self._require_admin("Updating workflow settings")
        row = self._settings_row()
        if not row:
            row = WorkflowSettings(org_id=self.org_id, use_custom_workflows=False)
            self.db.add(row)

        auto = row.auto_approve_below_amount
        ceo = row.require_ceo_above_amount
        if auto_approve_below_amount is not _UNSET:
            auto = _optional_amount(auto_approve_below_amount)
        if require_ceo_above_amount is not _UNSET:
            ceo = _optional_amount(require_ceo_above_amount)
        if auto is not None and ceo is not None and auto >= ceo:
            raise ValidationError(
                "auto_approve_below_amount must be lower than require_ceo_above_amount",
                code="invalid_thresholds",
            )

        if use_custom_workflows is not None:
            row.use_custom_workflows = bool(use_custom_workflows)
        row.auto_approve_below_amount = auto
        row.require_ceo_above_amount = ceo
        self.db.flush()

        logger.info(
            f"Workflow settings for org {self.org_id} updated by {self.principal.id}: "
            f"custom={row.use_custom_workflows} auto<{auto} ceo>={ceo}"
        )
        return self._settings_to_dict(row)

    # Workflows

    def list_workflows(self, document_type: Optional[DocumentType] = None) -> List[Dict[str, Any]]:
        """List the organisation's workflows, newest first."""
        from procureflow.db.models import ApprovalWorkflow

        query = self.db.query(ApprovalWorkflow).filter(ApprovalWorkflow.org_id == self.org_id)
        if document_type:
            query = query.filter(ApprovalWorkflow.document_type == DocumentType(document_type).value)
        workflows = query.order_by(ApprovalWorkflow.created_at.desc()).all()
        return [self._workflow_to_dict(w) for w in workflows]

    def get_workflow(self, workflow_id: UUID) -> Dict[str, Any]:
        """Get a workflow with its steps."""
        return self._workflow_to_dict(self._get_workflow(workflow_id))

    def create_workflow(self, name: str, document_type: DocumentType = DocumentType.PO) -> Dict[str, Any]:
        """
        Create a workflow. The first workflow of a document type becomes its default.

        Raises:
            PermissionDeniedError: If the principal is not MD or ADMIN
            ValidationError: If the name is blank
        """
        from procureflow.db.models import ApprovalWorkflow

        self._require_admin("Creating workflows")
        if not name or not name.strip():
            raise ValidationError("Workflow name is required", code="invalid_workflow")
        document_type = DocumentType(document_type)

        existing = self.db.query(ApprovalWorkflow.id).filter(
            and_(
                ApprovalWorkflow.org_id == self.org_id,
                ApprovalWorkflow.document_type == document_type.value,
            )
        ).first()

        workflow = ApprovalWorkflow(
            org_id=self.org_id,
            name=name.strip(),
            document_type=document_type.value,
            is_active=True,
            is_default=existing is None,
        )
        self.db.add(workflow)
        self.db.flush()

        logger.info(f"Workflow {workflow.id} ({document_type.value}) created in org {self.org_id}")
        return self._workflow_to_dict(workflow)

    def update_workflow(
        self,
        workflow_id: UUID,
        *,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Rename or (de)activate a workflow."""
        self._require_admin("Updating workflows")
        workflow = self._get_workflow(workflow_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Workflow name is required", code="invalid_workflow")
            workflow.name = name.strip()
        if is_active is not None:
            workflow.is_active = bool(is_active)
        self.db.flush()
        return self._workflow_to_dict(workflow)

    def delete_workflow(self, workflow_id: UUID) -> None:
        """Delete a workflow and its steps. Audit entries are unaffected."""
        self._require_admin("Deleting workflows")
        workflow = self._get_workflow(workflow_id)
        self.db.delete(workflow)
        self.db.flush()
        logger.info(f"Workflow {workflow_id} deleted by {self.principal.id}")

    def set_default_workflow(self, workflow_id: UUID) -> Dict[str, Any]:
        """Make a workflow the default for its document type, clearing the previous default."""
        from procureflow.db.models import ApprovalWorkflow

        self._require_admin("Setting the default workflow")
        workflow = self._get_workflow(workflow_id)

        self.db.query(ApprovalWorkflow).filter(
            and_(
                ApprovalWorkflow.org_id == self.org_id,
                ApprovalWorkflow.document_type == workflow.document_type,
                ApprovalWorkflow.id != workflow.id,
            )
        ).update({"is_default": False}, synchronize_session="fetch")
        workflow.is_default = True
        self.db.flush()

        logger.info(f"Workflow {workflow_id} is now the default {workflow.document_type} workflow")
        return self._workflow_to_dict(workflow)

    # Steps

    def add_step(
        self,
        workflow_id: UUID,
        *,
        step_order: int,
        approver_role: Role,
        min_amount=None,
        max_amount=None,
        skip_if_below_amount=None,
        is_required: bool = True,
    ) -> Dict[str, Any]:
        """
        Add a step to a workflow.

        Raises:
            ValidationError: On malformed bounds or an unknown role
            ConflictError: If the workflow already has a step at step_order
        """
        from procureflow.db.models import WorkflowStep

        self._require_admin("Editing workflow steps")
        workflow = self._get_workflow(workflow_id)
        role = self._parse_role(approver_role)
        validate_step_bounds(step_order, min_amount, max_amount, skip_if_below_amount)
        if any(step.step_order == int(step_order) for step in workflow.steps):
            raise ConflictError(
                f"Workflow already has a step at position {step_order}", code="duplicate_step_order"
            )

        step = WorkflowStep(
            workflow_id=workflow.id,
            step_order=int(step_order),
            approver_role=role.value,
            min_amount=min_amount,
            max_amount=max_amount,
            skip_if_below_amount=skip_if_below_amount,
            is_required=bool(is_required),
        )
        self.db.add(step)
        self._flush_steps()
        self.db.refresh(workflow)
        return self._step_to_dict(step)

    def update_step(self, step_id: UUID, **fields: Any) -> Dict[str, Any]:
        """Update a step's order, role, bounds or required flag."""
        self._require_admin("Editing workflow steps")
        step = self._get_step(step_id)

        step_order = fields.get("step_order", step.step_order)
        min_amount = fields.get("min_amount", step.min_amount)
        max_amount = fields.get("max_amount", step.max_amount)
        skip = fields.get("skip_if_below_amount", step.skip_if_below_amount)
        validate_step_bounds(step_order, min_amount, max_amount, skip)

        if "approver_role" in fields:
            step.approver_role = self._parse_role(fields["approver_role"]).value
        if "is_required" in fields:
            step.is_required = bool(fields["is_required"])
        step.step_order = int(step_order)
        step.min_amount = min_amount
        step.max_amount = max_amount
        step.skip_if_below_amount = skip
        self._flush_steps()
        return self._step_to_dict(step)

    def delete_step(self, step_id: UUID) -> None:
        """Remove a step from its workflow."""
        self._require_admin("Editing workflow steps")
        step = self._get_step(step_id)
        step.workflow.steps.remove(step)
        self.db.flush()

    # Preview

    def preview_steps(self, amount, document_type: DocumentType = DocumentType.PO) -> List[ApprovalStep]:
        """Resolve the chain an amount would get under the current configuration."""
        from procureflow.db.repository import SqlAlchemyApprovalRepository

        resolver = WorkflowResolver(SqlAlchemyApprovalRepository(self.db))
        return resolver.get_applicable_steps(self.org_id, amount, document_type)

    # Helpers

    def _require_admin(self, action: str) -> None:
        self.checker.require_active()
        self.checker.require_role(WORKFLOW_ADMIN_ROLES, action)

    def _parse_role(self, value) -> Role:
        try:
            return Role(value)
        except ValueError:
            raise ValidationError(f"Unknown approver role: {value}", code="invalid_step")

    def _flush_steps(self) -> None:
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(
                "Another step already uses this position", code="duplicate_step_order"
            ) from e

    def _settings_row(self):
        from procureflow.db.models import WorkflowSettings

        return self.db.query(WorkflowSettings).filter(WorkflowSettings.org_id == self.org_id).first()

    def _get_workflow(self, workflow_id: UUID):
        from procureflow.db.models import ApprovalWorkflow

        workflow = self.db.query(ApprovalWorkflow).filter(
            and_(
                ApprovalWorkflow.id == workflow_id,
                ApprovalWorkflow.org_id == self.org_id,
            )
        ).first()
        if not workflow:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def _get_step(self, step_id: UUID):
        from procureflow.db.models import ApprovalWorkflow, WorkflowStep

        step = self.db.query(WorkflowStep).join(ApprovalWorkflow).filter(
            and_(
                WorkflowStep.id == step_id,
                ApprovalWorkflow.org_id == self.org_id,
            )
        ).first()
        if not step:
            raise NotFoundError(f"Workflow step {step_id} not found")
        return step

    def _settings_to_dict(self, row) -> Dict[str, Any]:
        return {
            "org_id": str(row.org_id),
            "use_custom_workflows": bool(row.use_custom_workflows),
            "auto_approve_below_amount": row.auto_approve_below_amount,
            "require_ceo_above_amount": row.require_ceo_above_amount,
        }

    def _workflow_to_dict(self, workflow) -> Dict[str, Any]:
        return {
            "id": str(workflow.id),
            "org_id": str(workflow.org_id),
            "name": workflow.name,
            "document_type": workflow.document_type,
            "is_default": bool(workflow.is_default),
            "is_active": bool(workflow.is_active),
            "steps": [self._step_to_dict(s) for s in sorted(workflow.steps, key=lambda s: s.step_order)],
            "created_at": workflow.created_at.isoformat() if workflow.created_at else None,
        }

    def _step_to_dict(self, step) -> Dict[str, Any]:
        return {
            "id": str(step.id),
            "workflow_id": str(step.workflow_id),
            "step_order": step.step_order,
            "approver_role": step.approver_role,
            "min_amount": step.min_amount,
            "max_amount": step.max_amount,
            "skip_if_below_amount": step.skip_if_below_amount,
            "is_required": bool(step.is_required),
        }
