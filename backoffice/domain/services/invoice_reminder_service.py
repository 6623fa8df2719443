"""Overdue invoice reminders sent by the daily cron."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import IdempotencyPersistError
from backoffice.core.idempotency import compute_request_hash, generate_idempotency_key
from backoffice.domain.services.idempotency_service import (
    CLAIM_CONFLICT,
    STATE_PROCESSED,
    STATE_PROCESSED_WITH_ERROR,
    IdempotencyService,
)
from backoffice.infrastructure.graph_email_client import GraphEmailClient
from backoffice.persistence.models.audit_log import AuditOperation
from backoffice.persistence.models.invoice import Invoice
from backoffice.persistence.repositories.audit_log_repository import AuditLogRepository
from backoffice.persistence.repositories.invoice_repository import InvoiceRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

REMINDER_LABELS = ("First Reminder", "Second Reminder", "Final Reminder")


@dataclass
class InvoiceReminderSummary:
    """Counters for one reminder run."""

    processed: int = 0
    reminders_sent: int = 0
    internal_notifications: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _InvoiceSnapshot:
    id: int
    invoice_number: str
    status: str
    due_date: date
    outstanding_amount: Decimal
    vendor_name: str
    contact_name: str | None
    recipients: list[str]

    @classmethod
    def from_model(cls, invoice: Invoice) -> "_InvoiceSnapshot":
        vendor = invoice.vendor
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            status=invoice.status,
            due_date=invoice.due_date,
            outstanding_amount=invoice.outstanding_amount,
            vendor_name=vendor.name if vendor else "Unknown",
            contact_name=vendor.contact_name if vendor else None,
            recipients=vendor.email_recipients if vendor else [],
        )


def reminder_schedule() -> dict[int, str]:
    """Map days-overdue to reminder type, e.g. {7: "First Reminder", ...}."""
    days = sorted(settings.invoice_reminder_days)
    schedule = {}
    for index, day in enumerate(days):
        if index == len(days) - 1:
            schedule[day] = REMINDER_LABELS[-1]
        else:
            schedule[day] = REMINDER_LABELS[min(index, len(REMINDER_LABELS) - 2)]
    return schedule


def _slug(reminder_type: str) -> str:
    return reminder_type.lower().replace(" ", "-")


class InvoiceReminderService:
    """Mark unpaid invoices overdue and send reminders on fixed days.

    Every reminder is guarded by an idempotency claim keyed on invoice and
    reminder type, and each individual email is additionally skipped when
    invoice_email_logs already records it for that recipient.
    """

    def __init__(self, session: AsyncSession, email_client: GraphEmailClient | None) -> None:
        """Initialize invoice reminder service.

        Args:
            session: Database session
            email_client: Graph email client, or None when email is not configured
        """
        self.session = session
        self.email_client = email_client
        self.invoice_repo = InvoiceRepository(session)
        self.audit_repo = AuditLogRepository(session)
        self.idempotency_service = IdempotencyService(session)

    @property
    def internal_email(self) -> str | None:
        if settings.invoice_reminder_internal_email:
            return settings.invoice_reminder_internal_email
        return self.email_client.sender_email if self.email_client else None

    async def run(self, today: date | None = None) -> InvoiceReminderSummary:
        """Process all overdue invoices.

        Args:
            today: Reference date (defaults to the current date)

        Returns:
            InvoiceReminderSummary
        """
        today = today or date.today()
        summary = InvoiceReminderSummary()
        schedule = reminder_schedule()

        invoices = [_InvoiceSnapshot.from_model(invoice) for invoice in await self.invoice_repo.list_overdue(today)]
        logger.info(f"Found {len(invoices)} overdue invoices")

        if self.email_client is None:
            logger.warning("Email is not configured; invoice reminders will not be sent")

        for invoice in invoices:
            summary.processed += 1
            try:
                await self._process_invoice(invoice, today, schedule, summary)
            except Exception as e:
                await self.session.rollback()
                logger.error(
                    f"Error processing invoice {invoice.invoice_number}: {e}",
                    exc_info=True,
                )
                summary.errors.append(
                    {
                        "invoice_number": invoice.invoice_number,
                        "vendor": invoice.vendor_name,
                        "error": str(e),
                    }
                )

        logger.info("Invoice reminders processing completed", extra=summary.to_dict())
        return summary

    async def _process_invoice(
        self,
        invoice: _InvoiceSnapshot,
        today: date,
        schedule: dict[int, str],
        summary: InvoiceReminderSummary,
    ) -> None:
        if invoice.status != "overdue":
            await self.invoice_repo.mark_overdue(invoice.id)

        days_overdue = (today - invoice.due_date).days
        reminder_type = schedule.get(days_overdue)
        if reminder_type is None:
            return

        if self.email_client is None:
            summary.skipped += 1
            return

        key = generate_idempotency_key("invoice-reminder", invoice.id, _slug(reminder_type))
        request_hash = compute_request_hash(
            {
                "invoice_id": invoice.id,
                "reminder_type": reminder_type,
                "due_date": invoice.due_date.isoformat(),
                "recipients": invoice.recipients,
                "internal_recipient": self.internal_email,
            }
        )

        claim = await self.idempotency_service.claim(key, request_hash, ttl_hours=settings.invoice_reminder_ttl_hours)
        if not claim.acquired:
            if claim.state == CLAIM_CONFLICT:
                logger.warning(
                    "Invoice reminder idempotency conflict",
                    extra={"invoice_id": invoice.id, "reminder_type": reminder_type},
                )
            summary.skipped += 1
            return

        outcome = _SendOutcome()
        try:
            await self._send_internal_notification(invoice, reminder_type, days_overdue, outcome)
            await self._send_customer_reminder(invoice, reminder_type, days_overdue, outcome)
        except Exception as e:
            await self.session.rollback()
            outcome.bookkeeping_failed = True
            logger.error(
                f"Error sending reminder for invoice {invoice.invoice_number}: {e}",
                exc_info=True,
            )
            summary.errors.append(
                {
                    "invoice_number": invoice.invoice_number,
                    "vendor": invoice.vendor_name,
                    "error": str(e),
                }
            )

        summary.internal_notifications += outcome.internal_sent
        summary.reminders_sent += outcome.customer_sent
        if outcome.customer_error:
            summary.errors.append(
                {
                    "invoice_number": invoice.invoice_number,
                    "vendor": invoice.vendor_name,
                    "error": outcome.customer_error,
                }
            )

        if not outcome.any_delivered:
            # Nothing went out, let the next run retry
            await self.idempotency_service.release(key, request_hash)
            return

        try:
            await self.audit_repo.create(
                AuditOperation.UPDATE,
                resource_type="invoice",
                resource_id=invoice.id,
                details={
                    "action": "reminder_sent",
                    "reminder_type": reminder_type,
                    "days_overdue": days_overdue,
                    "invoice_number": invoice.invoice_number,
                    "vendor": invoice.vendor_name,
                    "internal_notification": outcome.internal_sent > 0,
                    "customer_reminder": outcome.customer_sent > 0,
                },
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            outcome.bookkeeping_failed = True
            logger.error(f"Failed to write reminder audit log: {e}", extra={"invoice_id": invoice.id})

        state = STATE_PROCESSED
        if outcome.bookkeeping_failed or outcome.customer_error:
            state = STATE_PROCESSED_WITH_ERROR

        try:
            await self.idempotency_service.persist(
                key,
                request_hash,
                {
                    "reminder_type": reminder_type,
                    "internal_sent": outcome.internal_sent,
                    "customer_sent": outcome.customer_sent,
                },
                ttl_hours=settings.invoice_reminder_ttl_hours,
                state=state,
            )
        except IdempotencyPersistError as e:
            # Claim stays held so the reminder is not sent twice
            logger.error(f"Failed to finalize invoice reminder claim: {e}", extra={"invoice_id": invoice.id})
            summary.errors.append(
                {
                    "invoice_number": invoice.invoice_number,
                    "vendor": invoice.vendor_name,
                    "error": "Failed to persist reminder idempotency state",
                }
            )

    async def _send_internal_notification(
        self,
        invoice: _InvoiceSnapshot,
        reminder_type: str,
        days_overdue: int,
        outcome: "_SendOutcome",
    ) -> None:
        internal_email = self.internal_email
        if not internal_email:
            return

        subject = (
            f"[{reminder_type}] Invoice {invoice.invoice_number} - {invoice.vendor_name} - "
            f"£{invoice.outstanding_amount:.2f} overdue"
        )
        if await self.invoice_repo.has_email_log(invoice.id, internal_email, subject):
            outcome.already_logged = True
            return

        if invoice.recipients:
            follow_up = f"A customer reminder is being sent to {', '.join(invoice.recipients)}."
        else:
            follow_up = "No vendor email on file - manual follow-up required."

        body = "\n".join(
            [
                "Invoice Reminder Alert",
                "",
                f"Invoice: {invoice.invoice_number}",
                f"Vendor: {invoice.vendor_name}",
                f"Contact: {invoice.contact_name or 'N/A'}",
                f"Email: {', '.join(invoice.recipients) or 'No email'}",
                "",
                f"Amount Due: £{invoice.outstanding_amount:.2f}",
                f"Days Overdue: {days_overdue}",
                f"Due Date: {invoice.due_date.strftime('%d/%m/%Y')}",
                f"Reminder Type: {reminder_type}",
                "",
                follow_up,
                "",
                f"View invoice: {settings.app_base_url.rstrip('/')}/invoices/{invoice.id}",
            ]
        )

        result = await self.email_client.send_email(internal_email, subject, body)
        if not result.success:
            logger.error(
                f"Failed to send internal reminder for invoice {invoice.invoice_number}: {result.error}"
            )
            return

        outcome.internal_sent += 1
        await self._log_emails(
            invoice.id,
            [internal_email],
            subject,
            f"Internal {reminder_type} - {days_overdue} days overdue",
            outcome,
        )

    async def _send_customer_reminder(
        self,
        invoice: _InvoiceSnapshot,
        reminder_type: str,
        days_overdue: int,
        outcome: "_SendOutcome",
    ) -> None:
        if not invoice.recipients:
            return

        to_address, cc_addresses = invoice.recipients[0], invoice.recipients[1:]
        subject = f"{reminder_type}: Invoice {invoice.invoice_number} from {settings.company_name}"
        if await self.invoice_repo.has_email_log(invoice.id, to_address, subject):
            outcome.already_logged = True
            return

        if reminder_type == REMINDER_LABELS[-1]:
            closing = "This is our final reminder. Please arrange payment immediately to avoid any disruption to services."
        else:
            closing = "Please arrange payment at your earliest convenience."

        body = "\n".join(
            [
                f"Dear {invoice.contact_name or invoice.vendor_name},",
                "",
                f"This is a friendly reminder that invoice {invoice.invoice_number} is now {days_overdue} days overdue.",
                "",
                "Invoice Details:",
                f"- Invoice Number: {invoice.invoice_number}",
                f"- Amount Due: £{invoice.outstanding_amount:.2f}",
                f"- Due Date: {invoice.due_date.strftime('%d/%m/%Y')}",
                "",
                closing,
                "",
                "If you have already made payment, please disregard this reminder. If you have any questions "
                "about this invoice, please don't hesitate to contact us.",
                "",
                "Best regards,",
                settings.company_name,
            ]
        )

        result = await self.email_client.send_email(to_address, subject, body, cc=cc_addresses)
        if not result.success:
            logger.error(
                f"Failed to send customer reminder for invoice {invoice.invoice_number}: {result.error}"
            )
            outcome.customer_error = "Failed to send customer reminder"
            return

        outcome.customer_sent += 1
        await self._log_emails(
            invoice.id,
            invoice.recipients,
            subject,
            f"{reminder_type} - {days_overdue} days overdue",
            outcome,
        )

    async def _log_emails(
        self,
        invoice_id: int,
        recipients: list[str],
        subject: str,
        body: str,
        outcome: "_SendOutcome",
    ) -> None:
        try:
            await self.invoice_repo.add_email_logs(invoice_id, recipients, subject, body)
        except SQLAlchemyError as e:
            await self.session.rollback()
            outcome.bookkeeping_failed = True
            logger.error(f"Failed to write invoice email log: {e}", extra={"invoice_id": invoice_id})


@dataclass
class _SendOutcome:
    internal_sent: int = 0
    customer_sent: int = 0
    already_logged: bool = False
    customer_error: str | None = None
    bookkeeping_failed: bool = False

    @property
    def any_delivered(self) -> bool:
        return bool(self.internal_sent or self.customer_sent or self.already_logged)
