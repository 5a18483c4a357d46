"""Approval delegation API endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from procureflow.api.deps import get_current_principal, get_delegation_authority
from procureflow.core.delegation import Delegation, DelegationAuthority
from procureflow.core.rbac import Principal

router = APIRouter(prefix="/delegations", tags=["delegations"])


# Schemas
class DelegationCreate(BaseModel):
    delegate_user_id: UUID
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class DelegationUpdate(BaseModel):
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class DelegationResponse(BaseModel):
    id: UUID
    delegator_user_id: UUID
    delegate_user_id: UUID
    delegate_name: Optional[str] = None
    scope: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    is_active: bool
    is_current: bool
    created_at: Optional[datetime]


def _to_response(authority: DelegationAuthority, delegation: Delegation) -> DelegationResponse:
    return DelegationResponse(
        id=delegation.id,
        delegator_user_id=delegation.delegator_id,
        delegate_user_id=delegation.delegate_id,
        delegate_name=delegation.delegate.full_name if delegation.delegate else None,
        scope=delegation.scope,
        starts_at=delegation.starts_at,
        ends_at=delegation.ends_at,
        is_active=delegation.is_active,
        is_current=authority.is_active(delegation),
        created_at=delegation.created_at,
    )


# Endpoints
@router.get("", response_model=List[DelegationResponse])
def list_my_delegations(
    principal: Principal = Depends(get_current_principal),
    authority: DelegationAuthority = Depends(get_delegation_authority),
):
    """List the delegations the caller has granted."""
    delegations = authority.repository.load_delegations(principal.id, authority.scope)
    return [_to_response(authority, d) for d in delegations]


@router.get("/received", response_model=List[DelegationResponse])
def list_received_delegations(
    principal: Principal = Depends(get_current_principal),
    authority: DelegationAuthority = Depends(get_delegation_authority),
):
    """List the delegations granted to the caller."""
    delegations = authority.repository.load_delegations_for_delegate(principal.id, authority.scope)
    return [_to_response(authority, d) for d in delegations]


@router.post("", response_model=DelegationResponse, status_code=status.HTTP_201_CREATED)
def create_delegation(
    body: DelegationCreate,
    principal: Principal = Depends(get_current_principal),
    authority: DelegationAuthority = Depends(get_delegation_authority),
):
    """Delegate the caller's approval authority to another user."""
    delegation = authority.create_delegation(
        principal.id, body.delegate_user_id, body.starts_at, body.ends_at
    )
    return _to_response(authority, delegation)


@router.patch("/{delegation_id}", response_model=DelegationResponse)
def update_delegation(
    delegation_id: UUID,
    body: DelegationUpdate,
    principal: Principal = Depends(get_current_principal),
    authority: DelegationAuthority = Depends(get_delegation_authority),
):
    """Change a delegation's active flag or window. Explicit nulls open a bound."""
    changes = body.model_dump(exclude_unset=True)
    if changes.get("is_active", True) is None:
        changes.pop("is_active")
    delegation = authority.update_delegation(delegation_id, principal, **changes)
    return _to_response(authority, delegation)


@router.delete("/{delegation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_delegation(
    delegation_id: UUID,
    principal: Principal = Depends(get_current_principal),
    authority: DelegationAuthority = Depends(get_delegation_authority),
):
    """Remove a delegation."""
    authority.delete_delegation(delegation_id, principal)
