"""Role model and approval-authority checks for ProcureFlow."""

from .roles import (
    Role,
    Principal,
    APPROVAL_AUTHORITY,
    FINANCE_ROLES,
    WORKFLOW_ADMIN_ROLES,
    DELEGATOR_ROLES,
    can_sign_for,
)
from .checker import AuthorityChecker, AuthorityGrant

__all__ = [
    "Role",
    "Principal",
    "APPROVAL_AUTHORITY",
    "FINANCE_ROLES",
    "WORKFLOW_ADMIN_ROLES",
    "DELEGATOR_ROLES",
    "can_sign_for",
    "AuthorityChecker",
    "AuthorityGrant",
]
