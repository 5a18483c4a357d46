"""Time-windowed delegation of approval authority.

An MD can hand their approval authority to another user for a window of
time. Windows are evaluated against the clock on every call; there is no
cache to invalidate when a delegation starts, ends or is switched off.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Set
from uuid import UUID

from procureflow.core.config import PO_APPROVAL_SCOPE
from procureflow.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from procureflow.core.rbac.roles import DELEGATOR_ROLES, Principal, Role

from .models import Delegation

logger = logging.getLogger(__name__)

_UNSET = object()


def is_active(delegation: Delegation, now: datetime) -> bool:
    """
    Check whether a delegation grants authority at an instant.

    Open bounds (starts_at or ends_at unset) are unconditionally satisfied.
    Both bounds are inclusive.
    """
    if not delegation.is_active:
        return False
    if delegation.starts_at is not None and now < delegation.starts_at:
        return False
    if delegation.ends_at is not None and now > delegation.ends_at:
        return False
    return True


class DelegationAuthority:
    """
    Resolves and manages delegated approval authority.

    Handles:
    - Window checks for individual delegations
    - Who currently acts for a principal, and for whom a delegate acts
    - Creating, updating, deleting and expiring delegations
    """

    def __init__(
        self,
        repository,
        *,
        scope: str = PO_APPROVAL_SCOPE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the delegation authority.

        Args:
            repository: Persistence backend
            scope: Default delegation scope
            clock: Returns the current UTC time; defaults to datetime.utcnow
        """
        self.repository = repository
        self.scope = scope
        self.clock = clock or datetime.utcnow

    def is_active(self, delegation: Delegation, now: Optional[datetime] = None) -> bool:
        """Check a delegation's window, at now or the current time."""
        return is_active(delegation, now if now is not None else self.clock())

    def effective_approvers(self, principal_id: UUID, scope: Optional[str] = None) -> Set[Principal]:
        """Get the delegates currently holding a principal's authority."""
        now = self.clock()
        delegations = self.repository.load_delegations(principal_id, scope or self.scope)
        return {
            d.delegate
            for d in delegations
            if d.delegate is not None and is_active(d, now)
        }

    def principals_for_delegate(
        self,
        user_id: UUID,
        scope: Optional[str] = None,
        *,
        org_id: Optional[UUID] = None,
    ) -> List[Principal]:
        """
        Get the principals a user currently acts for, oldest delegation first.

        Only active MD delegators count, and only within org_id when given.
        """
        now = self.clock()
        delegations = self.repository.load_delegations_for_delegate(user_id, scope or self.scope)
        active = [
            d for d in delegations
            if is_active(d, now)
            and d.delegator is not None
            and d.delegator.is_active
            and d.delegator.role in DELEGATOR_ROLES
            and (org_id is None or d.delegator.org_id == org_id)
        ]
        active.sort(key=lambda d: (d.created_at or datetime.min, str(d.id)))
        return [d.delegator for d in active]

    def is_active_delegate_for_any_principal(
        self,
        user_id: UUID,
        scope: Optional[str] = None,
        *,
        org_id: Optional[UUID] = None,
    ) -> bool:
        """Check whether a user currently holds any MD's delegated authority."""
        return bool(self.principals_for_delegate(user_id, scope, org_id=org_id))

    def create_delegation(
        self,
        delegator_id: UUID,
        delegate_id: UUID,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        *,
        scope: Optional[str] = None,
    ) -> Delegation:
        """
        Grant a delegator's approval authority to a delegate.

        Args:
            delegator_id: Principal handing over authority (an MD)
            delegate_id: User receiving it
            starts_at: Start of the window (open when None)
            ends_at: End of the window (open when None)
            scope: Delegation scope, defaults to the authority's scope

        Returns:
            The created delegation

        Raises:
            NotFoundError: If either user does not exist
            PermissionDeniedError: If the delegate is a CEO or the delegator
                may not delegate
            ValidationError: On self-delegation, cross-organisation delegation
                or an inverted window
            ConflictError: If the pair already has a delegation
        """
        delegator = self.repository.load_principal(delegator_id)
        if delegator is None:
            raise NotFoundError(f"User {delegator_id} not found")
        delegate = self.repository.load_principal(delegate_id)
        if delegate is None:
            raise NotFoundError(f"User {delegate_id} not found")

        if delegate.role == Role.CEO:
            raise PermissionDeniedError(
                "CEO cannot be assigned as an approval delegate", code="ceo_delegate"
            )
        if delegator.role not in DELEGATOR_ROLES or not delegator.is_active:
            raise PermissionDeniedError(
                "Only an active MD can delegate approval authority", code="delegator_role"
            )
        if delegator.id == delegate.id:
            raise ValidationError("A user cannot delegate to themselves", code="self_delegation")
        if delegator.org_id != delegate.org_id:
            raise ValidationError(
                "Delegate must belong to the delegator's organisation", code="wrong_organisation"
            )
        _validate_window(starts_at, ends_at)

        if self.repository.delegation_exists(delegator.id, delegate.id):
            raise ConflictError("This user is already a delegate", code="duplicate_delegation")

        delegation = self.repository.insert_delegation(
            delegator.id, delegate.id, scope or self.scope, starts_at, ends_at
        )
        self.repository.commit()
        logger.info(
            f"Delegation {delegation.id} created: {delegator.id} -> {delegate.id} "
            f"[{starts_at or 'open'} .. {ends_at or 'open'}]"
        )
        return delegation

    def update_delegation(
        self,
        delegation_id: UUID,
        actor: Principal,
        *,
        is_active=_UNSET,
        starts_at=_UNSET,
        ends_at=_UNSET,
    ) -> Delegation:
        """
        Change a delegation's flag or window.

        Only the delegator or an ADMIN of the same organisation may update.
        Passing None for a bound opens it.
        """
        delegation = self._load_for_management(delegation_id, actor)

        new_starts = delegation.starts_at if starts_at is _UNSET else starts_at
        new_ends = delegation.ends_at if ends_at is _UNSET else ends_at
        _validate_window(new_starts, new_ends)

        fields = {}
        if is_active is not _UNSET:
            fields["is_active"] = bool(is_active)
        if starts_at is not _UNSET:
            fields["starts_at"] = starts_at
        if ends_at is not _UNSET:
            fields["ends_at"] = ends_at

        updated = self.repository.update_delegation(delegation_id, **fields)
        self.repository.commit()
        logger.info(f"Delegation {delegation_id} updated by {actor.id}: {sorted(fields)}")
        return updated

    def delete_delegation(self, delegation_id: UUID, actor: Principal) -> None:
        """Remove a delegation. Past audit entries are unaffected."""
        self._load_for_management(delegation_id, actor)
        self.repository.delete_delegation(delegation_id)
        self.repository.commit()
        logger.info(f"Delegation {delegation_id} deleted by {actor.id}")

    def expire_delegations(self, now: Optional[datetime] = None) -> List[Delegation]:
        """
        Switch off active delegations whose window has closed.

        Window checks already ignore expired delegations; this keeps the
        is_active flag truthful for listings and lets delegates be told.

        Returns:
            The delegations that were deactivated
        """
        now = now if now is not None else self.clock()
        expired = self.repository.load_expired_delegations(now)
        for delegation in expired:
            self.repository.update_delegation(delegation.id, is_active=False)
        if expired:
            self.repository.commit()
        logger.info(f"Deactivated {len(expired)} expired delegations at {now.isoformat()}")
        return expired

    def _load_for_management(self, delegation_id: UUID, actor: Principal) -> Delegation:
        delegation = self.repository.load_delegation(delegation_id)
        if delegation is None:
            raise NotFoundError(f"Delegation {delegation_id} not found")
        delegator = delegation.delegator or self.repository.load_principal(delegation.delegator_id)
        if delegator is None or delegator.org_id != actor.org_id:
            raise NotFoundError(f"Delegation {delegation_id} not found")
        if actor.id != delegation.delegator_id and actor.role != Role.ADMIN:
            raise PermissionDeniedError(
                "Only the delegator or an admin can change a delegation", code="not_delegator"
            )
        return delegation


def _validate_window(starts_at: Optional[datetime], ends_at: Optional[datetime]) -> None:
    if starts_at is not None and ends_at is not None and starts_at > ends_at:
        raise ValidationError("starts_at must not be after ends_at", code="invalid_window")
