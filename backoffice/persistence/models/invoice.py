"""Invoice, vendor and invoice email log models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from backoffice.persistence.database import Base


class InvoiceVendor(Base):
    """Vendor (customer being invoiced)."""

    __tablename__ = "invoice_vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    # May hold several addresses separated by "," or ";"
    email = Column(String(1000), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoices = relationship("Invoice", back_populates="vendor")

    @property
    def email_recipients(self) -> list[str]:
        if not self.email:
            return []
        parts = self.email.replace(";", ",").split(",")
        return [part.strip() for part in parts if part.strip()]

    def __repr__(self) -> str:
        return f"<InvoiceVendor(id={self.id}, name={self.name})>"


class Invoice(Base):
    """Invoice raised to a vendor."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(50), nullable=False, unique=True)
    vendor_id = Column(Integer, ForeignKey("invoice_vendors.id"), nullable=True, index=True)

    status = Column(String(30), default="draft", nullable=False, index=True)  # draft, sent, partially_paid, overdue, paid, void
    due_date = Column(Date, nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), default=0, nullable=False)
    paid_amount = Column(Numeric(12, 2), default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("InvoiceVendor", back_populates="invoices", lazy="joined")

    @property
    def outstanding_amount(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.paid_amount or 0)

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"


class InvoiceEmailLog(Base):
    """One row per invoice email recipient."""

    __tablename__ = "invoice_email_logs"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    sent_to = Column(String(255), nullable=False)
    sent_by = Column(String(100), nullable=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    status = Column(String(30), default="sent", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<InvoiceEmailLog(invoice_id={self.invoice_id}, sent_to={self.sent_to})>"
