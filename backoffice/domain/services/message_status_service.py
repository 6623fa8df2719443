"""Apply carrier-reported statuses to local messages under the upgrade policy.

Shared by the reconciliation poller (pull) and the status callback
webhook (push) so both paths obey the same lattice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.sms_status import (
    FAILURE_STATUSES,
    LOCAL_DELIVERED,
    LOCAL_FAILED,
    format_error_message,
    is_status_upgrade,
    map_carrier_status,
)
from backoffice.domain.services.delivery_outcome_service import DeliveryOutcomeService
from backoffice.infrastructure.telephony.twilio_provider import TWILIO_NOT_FOUND_CODE
from backoffice.persistence.models.message import Message
from backoffice.persistence.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)

APPLY_UNCHANGED = "unchanged"
APPLY_REGRESSION = "regression"
APPLY_UPDATED = "updated"
APPLY_STALE = "stale"

CARRIER_STATUS_NOT_FOUND = "not_found"
NOT_FOUND_ERROR_MESSAGE = "Message not found in Twilio"


@dataclass
class MessageSnapshot:
    """Plain copy of the message columns needed to reconcile it.

    Taken before any carrier call so later commits cannot expire it.
    """

    id: int
    customer_id: int | None
    carrier_message_id: str | None
    direction: str
    status: str
    carrier_status: str | None
    created_at: datetime | None
    reconcile_attempts: int

    @classmethod
    def from_model(cls, message: Message) -> "MessageSnapshot":
        return cls(
            id=message.id,
            customer_id=message.customer_id,
            carrier_message_id=message.carrier_message_id,
            direction=message.direction,
            status=message.status,
            carrier_status=message.carrier_status,
            created_at=message.created_at,
            reconcile_attempts=message.reconcile_attempts or 0,
        )


class MessageStatusService:
    """Apply carrier statuses to stored messages."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize message status service."""
        self.session = session
        self.message_repo = MessageRepository(session)
        self.outcome_service = DeliveryOutcomeService(session)

    async def apply_carrier_status(
        self,
        message: MessageSnapshot,
        carrier_status: str,
        error_code: int | str | None = None,
        error_message: str | None = None,
        source: str = "cron reconciliation",
        occurred_at: datetime | None = None,
    ) -> str:
        """Apply a carrier status to a message if it moves it forward.

        Args:
            message: Snapshot of the stored message
            carrier_status: Raw status reported by the carrier
            error_code: Carrier error code, if any
            error_message: Carrier error message, if any
            source: Where the status came from, used in audit notes
            occurred_at: When the carrier recorded the status; defaults to now

        Returns:
            One of "unchanged", "regression", "updated" or "stale"
        """
        new_status = (carrier_status or "").strip().lower()
        previous = message.carrier_status or message.status

        if new_status == previous.strip().lower():
            return APPLY_UNCHANGED

        if not is_status_upgrade(previous, new_status):
            await self.message_repo.add_delivery_status(
                message.id,
                new_status,
                note=f"Status regression prevented by {source}",
            )
            logger.info(
                "Status regression prevented",
                extra={
                    "message_id": message.id,
                    "from_status": previous,
                    "to_status": new_status,
                    "source": source,
                },
            )
            return APPLY_REGRESSION

        local_status = map_carrier_status(new_status)
        now = datetime.utcnow()
        values = {
            "status": local_status,
            "carrier_status": new_status,
            "updated_at": now,
        }
        if local_status == LOCAL_DELIVERED:
            values["delivered_at"] = occurred_at or now
        elif new_status in FAILURE_STATUSES:
            values["failed_at"] = occurred_at or now
            values["error_code"] = str(error_code) if error_code is not None else None
            values["error_message"] = error_message or format_error_message(error_code)

        updated = await self.message_repo.update_if_pending(message.id, **values)
        if not updated:
            # Another writer already moved the row to a terminal status
            logger.info(
                "Message no longer pending, skipping status write",
                extra={"message_id": message.id, "to_status": new_status},
            )
            return APPLY_STALE

        await self.message_repo.add_delivery_status(
            message.id,
            new_status,
            note=f"Updated via {source}",
        )
        await self.outcome_service.apply_outcome(message.customer_id, local_status, error_code)

        logger.info(
            "Message status updated",
            extra={
                "message_id": message.id,
                "from_status": previous,
                "to_status": new_status,
                "source": source,
            },
        )
        return APPLY_UPDATED

    async def mark_not_found(self, message: MessageSnapshot) -> bool:
        """Fail a message the carrier has no record of.

        Returns:
            True if the message was updated
        """
        now = datetime.utcnow()
        updated = await self.message_repo.update_if_pending(
            message.id,
            status=LOCAL_FAILED,
            carrier_status=CARRIER_STATUS_NOT_FOUND,
            error_code=str(TWILIO_NOT_FOUND_CODE),
            error_message=NOT_FOUND_ERROR_MESSAGE,
            failed_at=now,
            updated_at=now,
        )
        if not updated:
            return False

        await self.message_repo.add_delivery_status(
            message.id,
            LOCAL_FAILED,
            note="Twilio message SID not found during reconciliation",
        )
        await self.outcome_service.apply_outcome(message.customer_id, LOCAL_FAILED, TWILIO_NOT_FOUND_CODE)
        return True
