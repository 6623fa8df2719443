"""Repository implementations."""

from backoffice.persistence.repositories.audit_log_repository import AuditLogRepository
from backoffice.persistence.repositories.base import BaseRepository
from backoffice.persistence.repositories.customer_repository import CustomerRepository
from backoffice.persistence.repositories.idempotency_repository import IdempotencyKeyRepository
from backoffice.persistence.repositories.invoice_repository import InvoiceRepository
from backoffice.persistence.repositories.message_repository import MessageRepository

__all__ = [
    "AuditLogRepository",
    "BaseRepository",
    "CustomerRepository",
    "IdempotencyKeyRepository",
    "InvoiceRepository",
    "MessageRepository",
]
