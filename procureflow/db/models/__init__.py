"""Database models for ProcureFlow."""

from procureflow.db.models.org import Organization
from procureflow.db.models.user import User
from procureflow.db.models.settings import WorkflowSettings
from procureflow.db.models.documents import PurchaseOrder, Invoice
from procureflow.db.models.workflow import ApprovalWorkflow, WorkflowStep
from procureflow.db.models.delegation import ApprovalDelegation
from procureflow.db.models.log import ApprovalLog
from procureflow.db.models.notification import Notification

__all__ = [
    "Organization",
    "User",
    "WorkflowSettings",
    "PurchaseOrder",
    "Invoice",
    "ApprovalWorkflow",
    "WorkflowStep",
    "ApprovalDelegation",
    "ApprovalLog",
    "Notification",
]
