"""Per-customer delivery outcome bookkeeping and automatic SMS deactivation."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.sms_status import FAILURE_STATUSES, LOCAL_DELIVERED, format_error_message
from backoffice.persistence.repositories.customer_repository import CustomerRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

DEACTIVATION_REASON_DELIVERY_FAILURES = "delivery_failures"


class DeliveryOutcomeService:
    """Apply terminal delivery outcomes to the customer record.

    A confirmed delivery resets the failure counter. Each failure
    increments it, and the first failure that pushes the counter past the
    threshold deactivates SMS for the customer.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize delivery outcome service."""
        self.session = session
        self.customer_repo = CustomerRepository(session)

    async def apply_outcome(
        self,
        customer_id: int | None,
        status: str | None,
        error_code: int | str | None = None,
    ) -> None:
        """Apply a delivery outcome for a customer.

        Args:
            customer_id: Customer the message was sent to
            status: Local or carrier status of the message
            error_code: Carrier error code, if any

        Persistence errors are logged and not raised.
        """
        if not customer_id or not status:
            return

        normalized = status.strip().lower()
        if normalized != LOCAL_DELIVERED and normalized not in FAILURE_STATUSES:
            return

        try:
            now = datetime.utcnow()

            if normalized == LOCAL_DELIVERED:
                found = await self.customer_repo.update_sms_fields(
                    customer_id,
                    sms_delivery_failures=0,
                    last_sms_failure_reason=None,
                    last_successful_sms_at=now,
                    updated_at=now,
                )
            else:
                found = await self.customer_repo.record_delivery_failure(
                    customer_id, format_error_message(error_code), now
                )

            if not found:
                logger.warning(
                    "Customer not found when applying delivery outcome",
                    extra={"customer_id": customer_id, "status": normalized},
                )
                return

            if normalized == LOCAL_DELIVERED:
                return

            deactivated = await self.customer_repo.deactivate_if_over_threshold(
                customer_id,
                settings.sms_failure_deactivation_threshold,
                DEACTIVATION_REASON_DELIVERY_FAILURES,
                now,
            )
            if deactivated:
                logger.warning(
                    "SMS deactivated after repeated delivery failures",
                    extra={"customer_id": customer_id},
                )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(
                f"Failed to apply delivery outcome: {e}",
                extra={"customer_id": customer_id, "status": normalized},
            )
