"""Cron-driven reconciliation of outbound SMS delivery state against the carrier."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import CarrierError, CarrierMessageNotFoundError
from backoffice.core.sms_status import is_message_stuck
from backoffice.domain.services.message_status_service import (
    APPLY_UPDATED,
    MessageSnapshot,
    MessageStatusService,
)
from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.persistence.repositories.message_repository import MessageRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

RECONCILIATION_SOURCE = "cron reconciliation"


@dataclass
class ReconciliationSummary:
    """Counters for one reconciliation run."""

    checked: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def compute_next_reconcile_at(attempts: int, now: datetime | None = None) -> datetime:
    """Exponential backoff for a message whose carrier lookup keeps failing.

    Args:
        attempts: Number of failed attempts including the current one
        now: Reference time

    Returns:
        When the message becomes eligible again
    """
    base = settings.sms_reconcile_backoff_base_minutes
    delay_minutes = min(base * (2 ** attempts), settings.sms_reconcile_backoff_max_minutes)
    return (now or datetime.utcnow()) + timedelta(minutes=delay_minutes)


class SmsReconciliationService:
    """Pull stale outbound messages from the carrier and apply upgrade-only writes.

    The status callback webhook is the primary path; this service is the
    fallback for callbacks that never arrived.
    """

    def __init__(self, session: AsyncSession, carrier: SmsCarrierProtocol) -> None:
        """Initialize reconciliation service.

        Args:
            session: Database session
            carrier: SMS carrier used to fetch authoritative status
        """
        self.session = session
        self.carrier = carrier
        self.message_repo = MessageRepository(session)
        self.status_service = MessageStatusService(session)

    async def reconcile(self) -> ReconciliationSummary:
        """Run one reconciliation pass.

        Returns:
            ReconciliationSummary with checked, updated and errors counts
        """
        summary = ReconciliationSummary()
        now = datetime.utcnow()

        candidates = await self.message_repo.list_pending_outbound(settings.sms_reconcile_limit, now)
        snapshots = [
            MessageSnapshot.from_model(message)
            for message in candidates
            if is_message_stuck(message.status, message.created_at, message.direction, now=now)
        ]

        if not snapshots:
            logger.info("No stuck messages to reconcile")
            return summary

        logger.info(f"Reconciling {len(snapshots)} stuck messages")

        batch_size = max(settings.sms_reconcile_batch_size, 1)
        for start in range(0, len(snapshots), batch_size):
            if start > 0 and settings.sms_reconcile_batch_delay_seconds > 0:
                await asyncio.sleep(settings.sms_reconcile_batch_delay_seconds)

            for message in snapshots[start:start + batch_size]:
                await self._reconcile_message(message, summary)

        logger.info("SMS reconciliation complete", extra=summary.to_dict())
        return summary

    async def _reconcile_message(self, message: MessageSnapshot, summary: ReconciliationSummary) -> None:
        summary.checked += 1

        try:
            await self._apply_carrier_state(message, summary)
        except Exception as e:
            await self.session.rollback()
            summary.errors += 1
            logger.error(
                f"Error reconciling message: {e}",
                exc_info=True,
                extra={"message_id": message.id, "carrier_message_id": message.carrier_message_id},
            )

    async def _apply_carrier_state(self, message: MessageSnapshot, summary: ReconciliationSummary) -> None:
        try:
            carrier_message = await self.carrier.fetch_message(message.carrier_message_id)
        except CarrierMessageNotFoundError:
            logger.warning(
                "Message SID not found at carrier",
                extra={"message_id": message.id, "carrier_message_id": message.carrier_message_id},
            )
            if await self.status_service.mark_not_found(message):
                summary.updated += 1
            summary.errors += 1
            return
        except CarrierError as e:
            await self._schedule_retry(message, e)
            summary.errors += 1
            return

        result = await self.status_service.apply_carrier_status(
            message,
            carrier_message.status,
            error_code=carrier_message.error_code,
            error_message=carrier_message.error_message,
            source=RECONCILIATION_SOURCE,
            occurred_at=carrier_message.date_updated,
        )
        if result == APPLY_UPDATED:
            summary.updated += 1

    async def _schedule_retry(self, message: MessageSnapshot, error: CarrierError) -> None:
        attempts = message.reconcile_attempts + 1
        next_reconcile_at = compute_next_reconcile_at(attempts)
        logger.error(
            f"Carrier lookup failed during reconciliation: {error}",
            extra={
                "message_id": message.id,
                "carrier_message_id": message.carrier_message_id,
                "reconcile_attempts": attempts,
                "next_reconcile_at": next_reconcile_at.isoformat(),
            },
        )
        await self.message_repo.schedule_reconcile_retry(message.id, attempts, next_reconcile_at)
