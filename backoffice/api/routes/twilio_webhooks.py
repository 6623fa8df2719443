"""Twilio SMS status callback webhook."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_sms_carrier
from backoffice.domain.services.message_status_service import MessageSnapshot, MessageStatusService
from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.persistence.database import get_db
from backoffice.persistence.repositories.message_repository import MessageRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_CALLBACK_SOURCE = "status callback"


async def _validate_twilio_signature(
    request: Request,
    carrier: SmsCarrierProtocol | None,
) -> bool:
    """Validate Twilio webhook signature.

    Args:
        request: FastAPI request
        carrier: Configured carrier, or None when Twilio is not configured

    Returns:
        True if signature is valid, False otherwise
    """
    signature = request.headers.get("X-Twilio-Signature", "")
    if not signature:
        logger.warning("Missing X-Twilio-Signature header")
        return False
    if carrier is None:
        logger.warning("Cannot validate Twilio signature without Twilio credentials")
        return False

    form_data = await request.form()
    params = {key: form_data[key] for key in form_data}
    return carrier.validate_webhook_signature(str(request.url), params, signature)


@router.post("/status")
async def twilio_status_callback(
    request: Request,
    MessageSid: Annotated[str, Form()],
    MessageStatus: Annotated[str, Form()],
    db: Annotated[AsyncSession, Depends(get_db)],
    carrier: Annotated[SmsCarrierProtocol | None, Depends(get_sms_carrier)],
    ErrorCode: Annotated[str | None, Form()] = None,
    ErrorMessage: Annotated[str | None, Form()] = None,
) -> Response:
    """Handle SMS delivery status callback from Twilio.

    Applies the reported status through the same upgrade policy as the
    reconciliation cron, so late or out-of-order callbacks never move a
    message backwards.

    Returns:
        Empty response (200 OK)
    """
    if not await _validate_twilio_signature(request, carrier):
        if settings.is_production:
            logger.warning("Invalid Twilio signature on status callback", extra={"sid": MessageSid})
            raise HTTPException(status_code=403, detail="Invalid signature")
        logger.warning("Invalid Twilio signature on status callback (ignored outside production)")

    try:
        message = await MessageRepository(db).get_by_carrier_message_id(MessageSid)
        if message is None:
            logger.info("Status callback for unknown message SID", extra={"sid": MessageSid})
            return Response(status_code=200)

        result = await MessageStatusService(db).apply_carrier_status(
            MessageSnapshot.from_model(message),
            MessageStatus,
            error_code=ErrorCode or None,
            error_message=ErrorMessage or None,
            source=STATUS_CALLBACK_SOURCE,
        )
        logger.info(
            f"SMS status callback: MessageSid={MessageSid}, Status={MessageStatus}, result={result}"
        )
    except SQLAlchemyError as e:
        logger.error(f"Error processing SMS status callback: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process status callback")

    return Response(status_code=200)
