"""Customer repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.persistence.models.customer import SMS_STATUS_DEACTIVATED, SMS_STATUS_OPTED_OUT, Customer
from backoffice.persistence.repositories.base import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    """Repository for Customer entities."""

    def __init__(self, session: AsyncSession):
        """Initialize customer repository."""
        super().__init__(Customer, session)

    async def get_fresh(self, customer_id: int) -> Customer | None:
        """Get a customer, bypassing any stale copy in the session identity map."""
        stmt = (
            select(Customer)
            .where(Customer.id == customer_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_mobile(self, mobile_e164: str) -> Customer | None:
        """Get a customer by normalized mobile number."""
        stmt = select(Customer).where(Customer.mobile_e164 == mobile_e164).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_sms_fields(self, customer_id: int, **values: Any) -> bool:
        """Update messaging columns on a customer.

        Returns:
            True if the customer row exists and was updated
        """
        stmt = update(Customer).where(Customer.id == customer_id).values(**values)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def record_delivery_failure(self, customer_id: int, reason: str, now: datetime) -> bool:
        """Increment the failure counter in the database.

        Returns:
            True if the customer row exists
        """
        stmt = (
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                sms_delivery_failures=func.coalesce(Customer.sms_delivery_failures, 0) + 1,
                last_sms_failure_reason=reason,
                updated_at=now,
            )
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def deactivate_if_over_threshold(self, customer_id: int, threshold: int, reason: str, now: datetime) -> bool:
        """Deactivate SMS once the failure counter passes the threshold.

        Customers already opted out or deactivated are left untouched.

        Returns:
            True if this call deactivated the customer
        """
        stmt = (
            update(Customer)
            .where(
                Customer.id == customer_id,
                Customer.sms_delivery_failures > threshold,
                Customer.sms_status.notin_((SMS_STATUS_OPTED_OUT, SMS_STATUS_DEACTIVATED)),
            )
            .values(
                sms_status=SMS_STATUS_DEACTIVATED,
                sms_opt_in=False,
                sms_deactivated_at=now,
                sms_deactivation_reason=reason,
                updated_at=now,
            )
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0
