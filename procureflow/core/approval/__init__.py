"""Approval workflow module for ProcureFlow.

Implements the purchase order and invoice approval state machine and the
service that executes approval actions.
"""

from .states import Transition, TransitionRule, VALID_TRANSITIONS
from .machine import ApprovalStateMachine, TransitionPlan
from .service import ApprovalResult, ApprovalService

__all__ = [
    "Transition",
    "TransitionRule",
    "VALID_TRANSITIONS",
    "ApprovalStateMachine",
    "TransitionPlan",
    "ApprovalResult",
    "ApprovalService",
]
