"""Delegation records as seen by the engine."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from procureflow.core.rbac.roles import Principal


@dataclass(frozen=True)
class Delegation:
    """A grant of a principal's approval authority to a delegate."""

    id: UUID
    delegator_id: UUID
    delegate_id: UUID
    scope: str
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    delegator: Optional[Principal] = None
    delegate: Optional[Principal] = None
