"""Authority checks for approval actions.

Decides whether a principal may sign for an approval tier, either directly
through their role or through a delegation of MD authority.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from procureflow.core.config import PO_APPROVAL_SCOPE
from procureflow.core.errors import PermissionDeniedError

from .roles import Principal, Role, can_sign_for


@dataclass(frozen=True)
class AuthorityGrant:
    """Outcome of a successful authority check."""

    principal_id: UUID
    required_role: Role
    on_behalf_of: Optional[UUID] = None

    @property
    def is_delegated(self) -> bool:
        return self.on_behalf_of is not None


class AuthorityChecker:
    """Checks a principal's authority for approval tiers.

    Delegated authority is looked up on every check; nothing is cached, so
    a delegation that expires stops granting authority immediately.
    """

    def __init__(
        self,
        principal: Principal,
        delegations=None,
        *,
        scope: str = PO_APPROVAL_SCOPE,
    ):
        """
        Initialize the checker.

        Args:
            principal: The acting principal
            delegations: DelegationAuthority used for MD-tier delegated authority
            scope: Delegation scope that grants MD authority
        """
        self.principal = principal
        self.delegations = delegations
        self.scope = scope

    def require_active(self) -> None:
        """Raise if the acting principal is deactivated."""
        if not self.principal.is_active:
            raise PermissionDeniedError(
                f"User {self.principal.id} is not active", code="inactive_user"
            )

    def require_organisation(self, org_id: UUID) -> None:
        """Raise if the principal belongs to a different organisation."""
        if self.principal.org_id != org_id:
            raise PermissionDeniedError(
                "Document belongs to another organisation", code="wrong_organisation"
            )

    def require_role(self, roles: Iterable[Role], action: str) -> None:
        """Raise unless the principal holds one of the given roles."""
        allowed = set(roles)
        if self.principal.role not in allowed:
            names = ", ".join(sorted(r.value for r in allowed))
            raise PermissionDeniedError(
                f"{action} requires one of: {names}", code="role_required"
            )

    def require_owner(self, owner_id: UUID, action: str) -> None:
        """Raise unless the principal owns the document."""
        if self.principal.id != owner_id:
            raise PermissionDeniedError(
                f"Only the document owner may {action}", code="owner_required"
            )

    def authorize_approval(self, required_role: Role) -> AuthorityGrant:
        """
        Check that the principal may approve or reject at the given tier.

        Args:
            required_role: Role the document's current status waits on

        Returns:
            AuthorityGrant, with on_behalf_of set for delegated authority

        Raises:
            PermissionDeniedError: If neither role nor delegation grants authority
        """
        self.require_active()
        role = self.principal.role
        required_role = Role(required_role)

        # CEOs sign only the CEO tier, whatever their delegations say
        if role == Role.CEO and required_role != Role.CEO:
            raise PermissionDeniedError(
                f"CEO cannot act on a document awaiting {required_role.value} approval",
                code="out_of_sequence",
            )

        if can_sign_for(role, required_role):
            return AuthorityGrant(self.principal.id, required_role)

        if required_role == Role.MD and self.delegations is not None:
            if self.delegations.is_active_delegate_for_any_principal(
                self.principal.id, self.scope, org_id=self.principal.org_id
            ):
                delegators = self.delegations.principals_for_delegate(
                    self.principal.id, self.scope, org_id=self.principal.org_id
                )
                if delegators:
                    return AuthorityGrant(
                        self.principal.id, required_role, on_behalf_of=delegators[0].id
                    )

        raise PermissionDeniedError(
            f"Role {role.value} cannot act on a document awaiting "
            f"{required_role.value} approval",
            code="insufficient_authority",
        )
