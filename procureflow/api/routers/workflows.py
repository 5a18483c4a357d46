"""Workflow configuration API endpoints."""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from procureflow.api.deps import get_db, get_workflow_service
from procureflow.core.documents import DocumentType
from procureflow.core.rbac import Role
from procureflow.core.workflow import WorkflowService

router = APIRouter(prefix="/workflows", tags=["workflows"])


# Schemas
class SettingsUpdate(BaseModel):
    use_custom_workflows: Optional[bool] = None
    auto_approve_below_amount: Optional[Decimal] = None
    require_ceo_above_amount: Optional[Decimal] = None


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    document_type: DocumentType = DocumentType.PO


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_active: Optional[bool] = None


class StepCreate(BaseModel):
    step_order: int = Field(..., ge=1)
    approver_role: Role
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    skip_if_below_amount: Optional[Decimal] = None
    is_required: bool = True


class StepUpdate(BaseModel):
    step_order: Optional[int] = Field(None, ge=1)
    approver_role: Optional[Role] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    skip_if_below_amount: Optional[Decimal] = None
    is_required: Optional[bool] = None


class PreviewStep(BaseModel):
    role: Role
    required: bool


# Settings
@router.get("/settings")
def get_settings(service: WorkflowService = Depends(get_workflow_service)):
    """Get the organisation's approval thresholds."""
    return service.get_settings()


@router.put("/settings")
def update_settings(
    body: SettingsUpdate,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Update approval thresholds. Explicit nulls clear a threshold."""
    result = service.update_settings(**body.model_dump(exclude_unset=True))
    db.commit()
    return result


@router.get("/preview", response_model=List[PreviewStep])
def preview_steps(
    amount: Decimal,
    document_type: DocumentType = DocumentType.PO,
    service: WorkflowService = Depends(get_workflow_service),
):
    """Show the approval chain an amount would get right now."""
    return [PreviewStep(role=s.role, required=s.required) for s in service.preview_steps(amount, document_type)]


# Workflows
@router.get("")
def list_workflows(
    document_type: Optional[DocumentType] = None,
    service: WorkflowService = Depends(get_workflow_service),
):
    """List the organisation's workflows."""
    return service.list_workflows(document_type)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_workflow(
    body: WorkflowCreate,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Create a workflow."""
    result = service.create_workflow(body.name, body.document_type)
    db.commit()
    return result


@router.get("/{workflow_id}")
def get_workflow(workflow_id: UUID, service: WorkflowService = Depends(get_workflow_service)):
    """Get a workflow with its steps."""
    return service.get_workflow(workflow_id)


@router.patch("/{workflow_id}")
def update_workflow(
    workflow_id: UUID,
    body: WorkflowUpdate,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Rename or (de)activate a workflow."""
    result = service.update_workflow(workflow_id, name=body.name, is_active=body.is_active)
    db.commit()
    return result


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Delete a workflow and its steps."""
    service.delete_workflow(workflow_id)
    db.commit()


@router.post("/{workflow_id}/default")
def set_default_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Make a workflow the default for its document type."""
    result = service.set_default_workflow(workflow_id)
    db.commit()
    return result


# Steps
@router.post("/{workflow_id}/steps", status_code=status.HTTP_201_CREATED)
def add_step(
    workflow_id: UUID,
    body: StepCreate,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Add a step to a workflow."""
    result = service.add_step(workflow_id, **body.model_dump())
    db.commit()
    return result


@router.patch("/steps/{step_id}")
def update_step(
    step_id: UUID,
    body: StepUpdate,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Update a workflow step."""
    result = service.update_step(step_id, **body.model_dump(exclude_unset=True))
    db.commit()
    return result


@router.delete("/steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_step(
    step_id: UUID,
    db: Session = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Remove a workflow step."""
    service.delete_step(step_id)
    db.commit()
