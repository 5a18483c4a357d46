"""Purchase order and invoice models.

Statuses hold procureflow.core.documents POStatus / InvoiceStatus values and
are only ever changed through a conditional update on the current status.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from procureflow.db.base import Base


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    po_number = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    contractor_name = Column(String(255), nullable=True)
    contractor_email = Column(String(255), nullable=True)

    # Amounts; approval routing uses amount_inc_vat
    amount_ex_vat = Column(Numeric(12, 2), nullable=False)
    vat_rate = Column(Numeric(5, 4), nullable=False, default=Decimal("0.2"))
    amount_inc_vat = Column(Numeric(12, 2), nullable=False)

    status = Column(String(50), nullable=False, default="DRAFT", index=True)

    created_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    approved_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    pdf_url = Column(String(1024), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization")
    created_by = relationship("User", foreign_keys=[created_by_user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_user_id])
    invoices = relationship("Invoice", back_populates="purchase_order")

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} [{self.status}]>"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    po_id = Column(Uuid, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    invoice_number = Column(String(100), nullable=False)
    invoice_date = Column(Date, nullable=True)

    amount_ex_vat = Column(Numeric(12, 2), nullable=False)
    vat_rate = Column(Numeric(5, 4), nullable=False, default=Decimal("0.2"))
    amount_inc_vat = Column(Numeric(12, 2), nullable=False)

    status = Column(String(50), nullable=False, default="UPLOADED", index=True)
    mismatch_notes = Column(Text, nullable=True)  # Why the amount differs from the PO
    rejection_reason = Column(Text, nullable=True)

    uploaded_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    approved_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approval_date = Column(DateTime, nullable=True)

    payment_date = Column(Date, nullable=True)
    payment_reference = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization")
    purchase_order = relationship("PurchaseOrder", back_populates="invoices")
    uploaded_by = relationship("User", foreign_keys=[uploaded_by_user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_user_id])

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} [{self.status}]>"
