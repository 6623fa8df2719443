"""Invoice repository."""

from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.persistence.models.invoice import Invoice, InvoiceEmailLog
from backoffice.persistence.repositories.base import BaseRepository

REMINDABLE_STATUSES = ("sent", "partially_paid", "overdue")


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for invoices and their email log."""

    def __init__(self, session: AsyncSession):
        """Initialize invoice repository."""
        super().__init__(Invoice, session)

    async def list_overdue(self, today: date) -> list[Invoice]:
        """List unpaid invoices whose due date is before today, earliest first."""
        stmt = (
            select(Invoice)
            .where(
                Invoice.status.in_(REMINDABLE_STATUSES),
                Invoice.due_date < today,
            )
            .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.unique().scalars().all())

    async def mark_overdue(self, invoice_id: int) -> bool:
        """Set status to overdue unless it already is."""
        stmt = (
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status != "overdue")
            .values(status="overdue", updated_at=datetime.utcnow())
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def has_email_log(self, invoice_id: int, sent_to: str, subject: str) -> bool:
        """Check whether an email with this subject was already sent to a recipient."""
        stmt = (
            select(InvoiceEmailLog.id)
            .where(
                InvoiceEmailLog.invoice_id == invoice_id,
                InvoiceEmailLog.sent_to == sent_to,
                InvoiceEmailLog.subject == subject,
                InvoiceEmailLog.status == "sent",
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add_email_logs(
        self,
        invoice_id: int,
        recipients: list[str],
        subject: str,
        body: str,
        sent_by: str = "system",
    ) -> None:
        """Insert one email log row per recipient."""
        now = datetime.utcnow()
        for recipient in recipients:
            self.session.add(
                InvoiceEmailLog(
                    invoice_id=invoice_id,
                    sent_to=recipient,
                    sent_by=sent_by,
                    subject=subject,
                    body=body,
                    status="sent",
                    created_at=now,
                )
            )
        await self.session.commit()
