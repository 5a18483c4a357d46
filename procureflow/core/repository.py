"""Persistence boundary for the approval engine.

The engine reads documents, configuration and delegations through an
ApprovalRepository and writes status changes through a single conditional
update. Implementations must not cache: every call reflects the latest
persisted state.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from procureflow.core.delegation.models import Delegation
from procureflow.core.documents import ApprovableDocument, ApprovalLogEntry, DocumentType
from procureflow.core.rbac.roles import Principal, Role
from procureflow.core.workflow.models import ApprovalWorkflow, WorkflowSettings


class ApprovalRepository(ABC):
    """Abstract base class for approval persistence backends."""

    # Documents

    @abstractmethod
    def load_document(
        self, document_type: DocumentType, document_id: UUID
    ) -> Optional[ApprovableDocument]:
        """Load a document snapshot, or None if it does not exist."""
        pass

    @abstractmethod
    def conditional_update_status(
        self,
        document_type: DocumentType,
        document_id: UUID,
        expected_status: str,
        new_status: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Write a new status only if the stored status equals expected_status.

        Args:
            document_type: Which document table to update
            document_id: Document to update
            expected_status: Status the caller read before deciding
            new_status: Status to write
            fields: Additional columns to write in the same statement

        Returns:
            Number of rows affected (0 when the status moved underneath the caller)
        """
        pass

    @abstractmethod
    def append_log(self, entry: ApprovalLogEntry) -> ApprovalLogEntry:
        """Append an audit entry. Entries are never updated or deleted."""
        pass

    @abstractmethod
    def list_logs(
        self, document_type: DocumentType, document_id: UUID
    ) -> List[ApprovalLogEntry]:
        """Get a document's audit trail, oldest first."""
        pass

    # Configuration

    @abstractmethod
    def load_settings(self, org_id: UUID) -> WorkflowSettings:
        """Load workflow settings; organisations without a row get defaults."""
        pass

    @abstractmethod
    def load_default_workflow(
        self, org_id: UUID, document_type: DocumentType
    ) -> Optional[ApprovalWorkflow]:
        """Load the active default workflow for a document type, with its steps."""
        pass

    # Principals

    @abstractmethod
    def load_principal(self, user_id: UUID) -> Optional[Principal]:
        """Load a principal by user id."""
        pass

    @abstractmethod
    def find_principals(
        self,
        org_id: UUID,
        roles: Iterable[Role],
        *,
        exclude: Optional[Iterable[UUID]] = None,
    ) -> List[Principal]:
        """Find active principals of an organisation holding any of the roles."""
        pass

    # Delegations

    @abstractmethod
    def load_delegations(self, principal_id: UUID, scope: str) -> List[Delegation]:
        """Load all delegations granted by a principal for a scope."""
        pass

    @abstractmethod
    def load_delegations_for_delegate(self, delegate_id: UUID, scope: str) -> List[Delegation]:
        """Load all delegations held by a delegate for a scope, delegators attached."""
        pass

    @abstractmethod
    def load_delegation(self, delegation_id: UUID) -> Optional[Delegation]:
        """Load a single delegation."""
        pass

    @abstractmethod
    def delegation_exists(self, delegator_id: UUID, delegate_id: UUID) -> bool:
        """Check whether a delegation already exists for the pair."""
        pass

    @abstractmethod
    def insert_delegation(
        self,
        delegator_id: UUID,
        delegate_id: UUID,
        scope: str,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
    ) -> Delegation:
        """Create a delegation.

        Raises:
            ConflictError: If the (delegator, delegate) pair already exists
        """
        pass

    @abstractmethod
    def update_delegation(self, delegation_id: UUID, **fields: Any) -> Delegation:
        """Update is_active / starts_at / ends_at of a delegation."""
        pass

    @abstractmethod
    def delete_delegation(self, delegation_id: UUID) -> bool:
        """Delete a delegation. Returns False if it did not exist."""
        pass

    @abstractmethod
    def load_expired_delegations(self, now: datetime) -> List[Delegation]:
        """Load active delegations whose ends_at lies before now."""
        pass

    # Unit of work

    @abstractmethod
    def commit(self) -> None:
        """Make pending writes durable."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard pending writes."""
        pass
