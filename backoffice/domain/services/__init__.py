"""Domain services."""

from backoffice.domain.services.delivery_outcome_service import DeliveryOutcomeService
from backoffice.domain.services.idempotency_service import ClaimResult, IdempotencyService
from backoffice.domain.services.invoice_reminder_service import InvoiceReminderService
from backoffice.domain.services.message_status_service import MessageStatusService
from backoffice.domain.services.sms_reconciliation_service import SmsReconciliationService
from backoffice.domain.services.sms_service import SmsService

__all__ = [
    "ClaimResult",
    "DeliveryOutcomeService",
    "IdempotencyService",
    "InvoiceReminderService",
    "MessageStatusService",
    "SmsReconciliationService",
    "SmsService",
]
