"""Business roles and the principals that hold them.

Five roles exist in every organisation:
1. Property Manager - raises purchase orders, first approval tier
2. MD - managing director, default primary approver
3. Accounts - matches invoices and records payments
4. Admin - MD/PM-equivalent approval authority, never CEO authority
5. CEO - final approval tier above the escalation threshold
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import UUID


class Role(str, Enum):
    """Roles a principal can hold."""

    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    MD = "MD"
    ACCOUNTS = "ACCOUNTS"
    ADMIN = "ADMIN"
    CEO = "CEO"


@dataclass(frozen=True)
class Principal:
    """An acting user, as supplied by the identity provider."""

    id: UUID
    role: Role
    org_id: UUID
    is_active: bool = True
    full_name: Optional[str] = None


# Approval tiers each role may sign for directly. Every Role must appear here;
# a missing entry is a programming error, not a denial.
APPROVAL_AUTHORITY: Dict[Role, FrozenSet[Role]] = {
    Role.PROPERTY_MANAGER: frozenset({Role.PROPERTY_MANAGER}),
    Role.MD: frozenset({Role.MD}),
    Role.ACCOUNTS: frozenset(),
    Role.ADMIN: frozenset({Role.PROPERTY_MANAGER, Role.MD}),
    Role.CEO: frozenset({Role.CEO}),
}

# Roles allowed to run invoice bookkeeping (match, send for approval, mark paid)
FINANCE_ROLES: FrozenSet[Role] = frozenset({Role.ACCOUNTS, Role.ADMIN})

# Roles allowed to manage workflow configuration
WORKFLOW_ADMIN_ROLES: FrozenSet[Role] = frozenset({Role.MD, Role.ADMIN})

# Roles that may hand their approval authority to a delegate
DELEGATOR_ROLES: FrozenSet[Role] = frozenset({Role.MD})


def approval_tiers(role: Role) -> FrozenSet[Role]:
    """Get the approval tiers a role may sign for directly.

    Raises:
        KeyError: If the role has no entry in APPROVAL_AUTHORITY
    """
    return APPROVAL_AUTHORITY[Role(role)]


def can_sign_for(role: Role, required_role: Role) -> bool:
    """Check if a role holds direct authority for the required approval tier."""
    return Role(required_role) in approval_tiers(role)
