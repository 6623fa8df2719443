"""Outbound SMS sending via the configured carrier."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import CarrierError, IdempotencyPersistError
from backoffice.core.phone import normalize_phone_e164
from backoffice.core.sms_status import map_carrier_status
from backoffice.domain.services.idempotency_service import (
    CLAIM_CONFLICT,
    STATE_PROCESSED,
    STATE_PROCESSED_WITH_ERROR,
    IdempotencyService,
)
from backoffice.domain.services.sms_safety_service import SmsSafetyService, build_sms_dedup_context
from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.persistence.repositories.customer_repository import CustomerRepository
from backoffice.persistence.repositories.message_repository import MessageRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

SUPPRESSED_CUSTOMER_NOT_FOUND = "customer_not_found"
SUPPRESSED_CUSTOMER_NOT_ELIGIBLE = "customer_not_eligible"
SUPPRESSED_DUPLICATE = "duplicate"
SUPPRESSED_IDEMPOTENCY_CONFLICT = "idempotency_conflict"


@dataclass
class SmsSendResult:
    """Result of an outbound send."""

    success: bool
    sid: str | None = None
    status: str | None = None
    message_id: int | None = None
    suppressed: bool = False
    code: str | None = None
    reason: str | None = None
    logging_failed: bool = False


def default_status_callback_url() -> str:
    if settings.twilio_status_callback_url:
        return settings.twilio_status_callback_url
    return f"{settings.app_base_url.rstrip('/')}{settings.api_v1_prefix}/webhooks/twilio/status"


class SmsService:
    """Service for sending outbound SMS messages."""

    def __init__(self, session: AsyncSession, carrier: SmsCarrierProtocol) -> None:
        """Initialize SMS service.

        Args:
            session: Database session
            carrier: SMS carrier used for delivery
        """
        self.session = session
        self.carrier = carrier
        self.customer_repo = CustomerRepository(session)
        self.message_repo = MessageRepository(session)
        self.safety_service = SmsSafetyService(session)
        self.idempotency_service = IdempotencyService(session)

    async def send_sms(
        self,
        to: str,
        body: str,
        customer_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SmsSendResult:
        """Send an outbound SMS and record it in the messages table.

        Args:
            to: Recipient phone number, any common format
            body: Message text
            customer_id: Customer the message is for, if known
            metadata: Optional send metadata; template_key enables dedup

        Returns:
            SmsSendResult; suppressed sends carry a code and reason

        Raises:
            InvalidPhoneNumberError: If the recipient number is invalid
            CarrierError: If the carrier rejects the message
        """
        to_e164 = normalize_phone_e164(to)

        if customer_id is not None:
            customer = await self.customer_repo.get_fresh(customer_id)
            if customer is None:
                return self._suppressed(SUPPRESSED_CUSTOMER_NOT_FOUND, "Customer not found", to_e164)
            if not customer.can_receive_sms:
                return self._suppressed(
                    SUPPRESSED_CUSTOMER_NOT_ELIGIBLE,
                    "Customer has not opted in or SMS is deactivated",
                    to_e164,
                )

        safety = await self.safety_service.evaluate_limits(to_e164, customer_id=customer_id)
        if not safety.allowed:
            return SmsSendResult(success=False, suppressed=True, code=safety.code, reason=safety.reason)

        dedup = build_sms_dedup_context(to_e164, body, customer_id=customer_id, metadata=metadata)
        if dedup is not None:
            claim = await self.idempotency_service.claim(
                dedup.key,
                dedup.request_hash,
                ttl_hours=settings.sms_idempotency_ttl_hours,
            )
            if claim.state == CLAIM_CONFLICT:
                return self._suppressed(
                    SUPPRESSED_IDEMPOTENCY_CONFLICT,
                    "SMS blocked by idempotency conflict",
                    to_e164,
                )
            if not claim.acquired:
                return self._suppressed(SUPPRESSED_DUPLICATE, "Duplicate SMS suppressed", to_e164)

        try:
            carrier_result = await self.carrier.send_sms(
                to_e164,
                body,
                status_callback=default_status_callback_url(),
            )
        except CarrierError:
            if dedup is not None:
                await self.idempotency_service.release(dedup.key, dedup.request_hash)
            logger.error("SMS send failed", extra={"to": to_e164, "customer_id": customer_id}, exc_info=True)
            raise

        now = datetime.utcnow()
        result = SmsSendResult(success=True, sid=carrier_result.sid, status=carrier_result.status)

        try:
            message = await self.message_repo.create(
                customer_id=customer_id,
                direction="outbound",
                body=body,
                from_number=carrier_result.from_,
                to_number=to_e164,
                segments=carrier_result.segments,
                status=map_carrier_status(carrier_result.status),
                carrier_status=carrier_result.status,
                carrier_message_id=carrier_result.sid,
                created_at=now,
                sent_at=now,
                updated_at=now,
            )
            result.message_id = message.id
        except SQLAlchemyError as e:
            await self.session.rollback()
            result.logging_failed = True
            logger.error(
                f"SMS sent but message row could not be stored: {e}",
                extra={"sid": carrier_result.sid, "to": to_e164},
            )

        if dedup is not None:
            state = STATE_PROCESSED_WITH_ERROR if result.logging_failed else STATE_PROCESSED
            try:
                await self.idempotency_service.persist(
                    dedup.key,
                    dedup.request_hash,
                    {"sid": carrier_result.sid, "message_id": result.message_id},
                    ttl_hours=settings.sms_idempotency_ttl_hours,
                    state=state,
                )
            except IdempotencyPersistError as e:
                # Claim stays held until it expires so the send is not repeated
                logger.error(f"Failed to finalize SMS idempotency claim: {e}", extra={"sid": carrier_result.sid})

        logger.info(
            "SMS sent",
            extra={"sid": carrier_result.sid, "to": to_e164, "customer_id": customer_id},
        )
        return result

    @staticmethod
    def _suppressed(code: str, reason: str, to: str) -> SmsSendResult:
        logger.info(f"SMS suppressed: {reason}", extra={"code": code, "to": to})
        return SmsSendResult(success=False, suppressed=True, code=code, reason=reason)
