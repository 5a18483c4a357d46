"""In-app notification model."""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(100), nullable=False)  # template key, e.g. po_approval_request
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(1024), nullable=True)

    related_po_id = Column(Uuid, ForeignKey("purchase_orders.id", ondelete="SET NULL"), nullable=True)
    related_invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<Notification {self.type} -> {self.user_id}>"
