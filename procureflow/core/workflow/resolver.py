"""Resolution of the approval chain for a document amount.

Two mutually exclusive policies per organisation:

1. Threshold policy (use_custom_workflows off): nothing below
   auto_approve_below_amount, otherwise MD, with CEO appended at or above
   require_ceo_above_amount.
2. Custom policy: the organisation's active default workflow for the
   document type, steps filtered by their amount bounds and ordered by
   step_order. Organisations without such a workflow fall back to MD.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import UUID

from procureflow.core.documents import DocumentType
from procureflow.core.errors import ValidationError
from procureflow.core.rbac.roles import Role

from .models import ApprovalStep, ApprovalWorkflow, WorkflowSettings

logger = logging.getLogger(__name__)

MD_FALLBACK: List[ApprovalStep] = [ApprovalStep(Role.MD, True)]


def to_amount(value) -> Decimal:
    """
    Coerce an amount to Decimal and require it to be positive.

    Raises:
        ValidationError: If the value is not a number or is not positive
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}", code="invalid_amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Amount must be positive, got {value}", code="invalid_amount")
    return amount


def threshold_steps(settings: WorkflowSettings, amount: Decimal) -> List[ApprovalStep]:
    """Apply the simple threshold policy."""
    if settings.auto_approve_below_amount is not None and amount < settings.auto_approve_below_amount:
        return []

    steps = [ApprovalStep(Role.MD, True)]
    if settings.require_ceo_above_amount is not None and amount >= settings.require_ceo_above_amount:
        steps.append(ApprovalStep(Role.CEO, True))
    return steps


def custom_steps(workflow: Optional[ApprovalWorkflow], amount: Decimal) -> List[ApprovalStep]:
    """Apply a custom workflow's step bounds to an amount."""
    if workflow is None or not workflow.steps:
        return list(MD_FALLBACK)

    applicable = [step for step in workflow.steps if step.applies_to(amount)]
    applicable.sort(key=lambda step: step.step_order)
    return [ApprovalStep(Role(step.approver_role), step.is_required) for step in applicable]


def resolve_steps(
    settings: WorkflowSettings,
    workflow: Optional[ApprovalWorkflow],
    amount,
) -> List[ApprovalStep]:
    """
    Resolve the approval chain from already-loaded configuration.

    Args:
        settings: Organisation workflow settings
        workflow: Active default workflow for the document type, if any
        amount: Document amount

    Returns:
        Ordered approval steps; empty when no human approval is needed
    """
    amount = to_amount(amount)
    if not settings.use_custom_workflows:
        return threshold_steps(settings, amount)
    return custom_steps(workflow, amount)


class WorkflowResolver:
    """Resolves approval chains from the latest persisted configuration."""

    def __init__(self, repository):
        self.repository = repository

    def get_applicable_steps(
        self,
        org_id: UUID,
        amount,
        document_type: DocumentType = DocumentType.PO,
    ) -> List[ApprovalStep]:
        """
        Get the ordered approval steps for an amount.

        Configuration is read on every call, so a changed threshold or step
        applies to the very next request.

        Args:
            org_id: Organisation whose configuration applies
            amount: Document amount (positive)
            document_type: PO or INVOICE

        Returns:
            List of ApprovalStep(role, required)

        Raises:
            ValidationError: If the amount is not positive
        """
        amount = to_amount(amount)
        document_type = DocumentType(document_type)
        settings = self.repository.load_settings(org_id)

        workflow = None
        if settings.use_custom_workflows:
            workflow = self.repository.load_default_workflow(org_id, document_type)
            if workflow is None:
                logger.debug(
                    f"No default {document_type.value} workflow for org {org_id}, using MD fallback"
                )

        steps = resolve_steps(settings, workflow, amount)
        logger.debug(
            f"Resolved {document_type.value} chain for {amount} in org {org_id}: "
            f"{[step.role.value for step in steps]}"
        )
        return steps
