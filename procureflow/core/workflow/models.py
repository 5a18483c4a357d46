"""Workflow configuration snapshots read by the resolver."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, NamedTuple, Optional
from uuid import UUID

from procureflow.core.documents import DocumentType
from procureflow.core.errors import ValidationError
from procureflow.core.rbac.roles import Role


@dataclass(frozen=True)
class WorkflowSettings:
    """Per-organisation approval policy switches."""

    org_id: UUID
    use_custom_workflows: bool = False
    auto_approve_below_amount: Optional[Decimal] = None
    require_ceo_above_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class WorkflowStep:
    """One role's position in a custom approval chain."""

    step_order: int
    approver_role: Role
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    skip_if_below_amount: Optional[Decimal] = None
    is_required: bool = True
    id: Optional[UUID] = None

    def applies_to(self, amount: Decimal) -> bool:
        """Check whether the step's amount bounds admit an amount."""
        if self.skip_if_below_amount is not None and amount < self.skip_if_below_amount:
            return False
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


@dataclass(frozen=True)
class ApprovalWorkflow:
    """An organisation's ordered approval chain for one document type."""

    id: UUID
    org_id: UUID
    document_type: DocumentType
    name: str = ""
    is_default: bool = False
    is_active: bool = True
    steps: List[WorkflowStep] = field(default_factory=list)


class ApprovalStep(NamedTuple):
    """A resolved approval requirement."""

    role: Role
    required: bool


def validate_step_bounds(
    step_order: int,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    skip_if_below_amount: Optional[Decimal] = None,
) -> None:
    """
    Reject step definitions whose bounds cannot describe an amount range.

    Raises:
        ValidationError: On a non-positive step order, negative bounds, or
            min_amount above max_amount
    """
    if step_order is None or int(step_order) < 1:
        raise ValidationError("step_order must be a positive integer", code="invalid_step")
    for name, value in (
        ("min_amount", min_amount),
        ("max_amount", max_amount),
        ("skip_if_below_amount", skip_if_below_amount),
    ):
        if value is not None and Decimal(value) < 0:
            raise ValidationError(f"{name} cannot be negative", code="invalid_step")
    if min_amount is not None and max_amount is not None and Decimal(min_amount) > Decimal(max_amount):
        raise ValidationError(
            f"min_amount {min_amount} exceeds max_amount {max_amount}", code="invalid_step"
        )
