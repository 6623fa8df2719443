"""Database models."""

from backoffice.persistence.models.audit_log import AuditLog, AuditOperation
from backoffice.persistence.models.customer import Customer
from backoffice.persistence.models.idempotency_key import IdempotencyKey
from backoffice.persistence.models.invoice import Invoice, InvoiceEmailLog, InvoiceVendor
from backoffice.persistence.models.message import Message, MessageDeliveryStatus

__all__ = [
    "AuditLog",
    "AuditOperation",
    "Customer",
    "IdempotencyKey",
    "Invoice",
    "InvoiceEmailLog",
    "InvoiceVendor",
    "Message",
    "MessageDeliveryStatus",
]
