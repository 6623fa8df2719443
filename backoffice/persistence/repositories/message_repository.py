"""Message repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.sms_status import LOCAL_PENDING_STATUSES, OUTBOUND_DIRECTIONS
from backoffice.persistence.models.message import Message, MessageDeliveryStatus
from backoffice.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message entities and their delivery-status audit trail."""

    def __init__(self, session: AsyncSession):
        """Initialize message repository."""
        super().__init__(Message, session)

    async def get_by_carrier_message_id(self, carrier_message_id: str) -> Message | None:
        """Get a message by its carrier-assigned SID."""
        stmt = select(Message).where(Message.carrier_message_id == carrier_message_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_pending_outbound(self, limit: int, now: datetime) -> list[Message]:
        """List outbound messages in a non-terminal status that are due for reconciliation.

        Args:
            limit: Maximum number of messages to return
            now: Reference time for the per-message backoff window

        Returns:
            Messages ordered oldest first
        """
        stmt = (
            select(Message)
            .where(
                Message.direction.in_(OUTBOUND_DIRECTIONS),
                Message.status.in_(LOCAL_PENDING_STATUSES),
                Message.carrier_message_id.is_not(None),
                or_(Message.next_reconcile_at.is_(None), Message.next_reconcile_at <= now),
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_if_pending(self, message_id: int, **values: Any) -> bool:
        """Update a message only while its local status is still non-terminal.

        Two concurrent writers converge because a terminal row is never
        matched again.

        Returns:
            True if a row was updated
        """
        stmt = (
            update(Message)
            .where(
                Message.id == message_id,
                Message.status.in_(LOCAL_PENDING_STATUSES),
            )
            .values(**values)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def schedule_reconcile_retry(
        self, message_id: int, attempts: int, next_reconcile_at: datetime
    ) -> None:
        """Record a failed reconciliation attempt and when to try again."""
        stmt = (
            update(Message)
            .where(Message.id == message_id)
            .values(reconcile_attempts=attempts, next_reconcile_at=next_reconcile_at)
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def add_delivery_status(
        self, message_id: int, status: str, note: str | None = None
    ) -> MessageDeliveryStatus:
        """Append a row to the delivery-status audit trail."""
        entry = MessageDeliveryStatus(
            message_id=message_id,
            status=status,
            note=note,
            created_at=datetime.utcnow(),
        )
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def list_delivery_statuses(self, message_id: int) -> list[MessageDeliveryStatus]:
        """List audit rows for a message, oldest first."""
        stmt = (
            select(MessageDeliveryStatus)
            .where(MessageDeliveryStatus.message_id == message_id)
            .order_by(MessageDeliveryStatus.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_outbound_since(
        self,
        since: datetime,
        customer_id: int | None = None,
        to_number: str | None = None,
    ) -> int:
        """Count outbound messages created since a point in time.

        Scoped to a customer when customer_id is given, otherwise to a
        recipient number when to_number is given, otherwise global.
        """
        stmt = select(func.count(Message.id)).where(
            Message.direction.in_(OUTBOUND_DIRECTIONS),
            Message.created_at >= since,
        )
        if customer_id is not None:
            stmt = stmt.where(Message.customer_id == customer_id)
        elif to_number is not None:
            stmt = stmt.where(Message.to_number == to_number)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
