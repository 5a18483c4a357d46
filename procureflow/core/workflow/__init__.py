"""Approval chain configuration and resolution."""

from .models import (
    ApprovalStep,
    ApprovalWorkflow,
    WorkflowSettings,
    WorkflowStep,
    validate_step_bounds,
)
from .resolver import WorkflowResolver, resolve_steps, to_amount
from .service import WorkflowService

__all__ = [
    "ApprovalStep",
    "ApprovalWorkflow",
    "WorkflowSettings",
    "WorkflowStep",
    "validate_step_bounds",
    "WorkflowResolver",
    "resolve_steps",
    "to_amount",
    "WorkflowService",
]
