"""Per-organisation approval policy settings."""

import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Boolean, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class WorkflowSettings(Base):
    """
    Approval policy switches for one organisation.

    Organisations without a row use the threshold policy with no
    auto-approval and no CEO tier.
    """
    __tablename__ = "workflow_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False)

    use_custom_workflows = Column(Boolean, default=False, nullable=False)
    auto_approve_below_amount = Column(Numeric(12, 2), nullable=True)
    require_ceo_above_amount = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="workflow_settings")
