"""Append-only approval audit trail."""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Uuid, Index
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class ApprovalLog(Base):
    """
    Records every action taken on a purchase order or invoice.

    Rows are inserted once and never updated or deleted; deleting a workflow
    or delegation leaves past entries untouched.
    """
    __tablename__ = "approval_logs"
    __table_args__ = (
        Index("ix_approval_logs_document", "document_type", "document_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)

    document_type = Column(String(20), nullable=False)  # PO, INVOICE
    document_id = Column(Uuid, nullable=False)

    action = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)

    action_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    on_behalf_of_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)

    extra_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    action_by = relationship("User", foreign_keys=[action_by_user_id])
    on_behalf_of = relationship("User", foreign_keys=[on_behalf_of_user_id])

    def __repr__(self) -> str:
        return f"<ApprovalLog {self.document_type}:{self.document_id} {self.action}>"
