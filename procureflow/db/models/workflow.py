"""Custom approval workflow models."""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Boolean, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class ApprovalWorkflow(Base):
    """
    An ordered approval chain for one document type.

    At most one active workflow per organisation and document type is the
    default; the default is what the resolver uses.
    """
    __tablename__ = "approval_workflows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    document_type = Column(String(20), nullable=False, default="PO")  # PO, INVOICE
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="workflows")
    steps = relationship(
        "WorkflowStep",
        back_populates="workflow",
        order_by="WorkflowStep.step_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ApprovalWorkflow {self.name} [{self.document_type}]>"


class WorkflowStep(Base):
    """One role's position in a workflow, with optional amount bounds."""
    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "step_order", name="uq_workflow_step_order"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    approver_role = Column(String(50), nullable=False)

    min_amount = Column(Numeric(12, 2), nullable=True)
    max_amount = Column(Numeric(12, 2), nullable=True)
    skip_if_below_amount = Column(Numeric(12, 2), nullable=True)
    is_required = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    workflow = relationship("ApprovalWorkflow", back_populates="steps")

    def __repr__(self) -> str:
        return f"<WorkflowStep {self.step_order}:{self.approver_role}>"
