import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class ApprovalDelegation(Base):
    """A delegator's approval authority granted to a delegate for a time window."""
    __tablename__ = "approval_delegations"
    __table_args__ = (
        UniqueConstraint("delegator_user_id", "delegate_user_id", name="uq_delegation_pair"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    delegator_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    delegate_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    scope = Column(String(50), nullable=False, default="PO_APPROVAL")

    # Open-ended on either side when null
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    delegator = relationship("User", foreign_keys=[delegator_user_id])
    delegate = relationship("User", foreign_keys=[delegate_user_id])

    def __repr__(self) -> str:
        return f"<ApprovalDelegation {self.delegator_user_id} -> {self.delegate_user_id}>"
