"""Twilio SMS carrier implementation."""

import asyncio
import logging
from functools import partial
from typing import Any

from requests.exceptions import RequestException
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client as TwilioClient

from backoffice.core.exceptions import (
    CarrierConfigurationError,
    CarrierError,
    CarrierMessageNotFoundError,
)
from backoffice.infrastructure.telephony.base import (
    CarrierMessage,
    CarrierSendResult,
    SmsCarrierProtocol,
)
from backoffice.settings import settings

logger = logging.getLogger(__name__)

TWILIO_NOT_FOUND_CODE = 20404


class TwilioSmsProvider(SmsCarrierProtocol):
    """Twilio SMS carrier.

    The Twilio SDK is synchronous, so calls run in the default executor.
    """

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        messaging_service_sid: str | None = None,
        client: TwilioClient | None = None,
    ) -> None:
        """Initialize Twilio client.

        Args:
            account_sid: Twilio account SID (defaults to settings)
            auth_token: Twilio auth token (defaults to settings)
            from_number: Sender number (defaults to settings)
            messaging_service_sid: Messaging service SID, preferred over from_number
            client: Pre-built Twilio client

        Raises:
            CarrierConfigurationError: If credentials are missing
        """
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.from_number = from_number or settings.twilio_phone_number
        self.messaging_service_sid = messaging_service_sid or settings.twilio_messaging_service_sid

        if not self.account_sid or not self.auth_token:
            raise CarrierConfigurationError("Twilio account SID and auth token must be provided")

        self.client = client or TwilioClient(self.account_sid, self.auth_token)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def send_sms(
        self,
        to: str,
        body: str,
        status_callback: str | None = None,
    ) -> CarrierSendResult:
        """Send an SMS message via Twilio."""
        params: dict[str, Any] = {"to": to, "body": body}
        if self.messaging_service_sid:
            params["messaging_service_sid"] = self.messaging_service_sid
        elif self.from_number:
            params["from_"] = self.from_number
        else:
            raise CarrierConfigurationError("Twilio sender number or messaging service must be configured")
        if status_callback:
            params["status_callback"] = status_callback

        try:
            message = await self._run(self.client.messages.create, **params)
        except TwilioRestException as e:
            raise CarrierError(f"Twilio SMS send failed: {e.msg}", code=e.code, status=e.status) from e
        except TwilioException as e:
            raise CarrierError(f"Twilio SMS send failed: {str(e)}") from e
        except RequestException as e:
            raise CarrierError(f"Twilio SMS send request failed: {str(e)}") from e

        return CarrierSendResult(
            sid=message.sid,
            status=message.status,
            to=message.to,
            from_=message.from_,
            segments=int(message.num_segments) if message.num_segments else None,
            date_created=message.date_created,
        )

    async def fetch_message(self, message_sid: str) -> CarrierMessage:
        """Fetch message details by SID."""
        try:
            message = await self._run(self.client.messages(message_sid).fetch)
        except TwilioRestException as e:
            if e.code == TWILIO_NOT_FOUND_CODE or e.status == 404:
                raise CarrierMessageNotFoundError(
                    f"Twilio message {message_sid} not found",
                    code=TWILIO_NOT_FOUND_CODE,
                    status=e.status,
                ) from e
            raise CarrierError(f"Twilio fetch failed: {e.msg}", code=e.code, status=e.status) from e
        except TwilioException as e:
            raise CarrierError(f"Twilio fetch failed: {str(e)}") from e
        except RequestException as e:
            raise CarrierError(f"Twilio fetch request failed: {str(e)}") from e

        return CarrierMessage(
            sid=message.sid,
            status=message.status,
            error_code=message.error_code,
            error_message=message.error_message,
            date_created=message.date_created,
            date_sent=message.date_sent,
            date_updated=message.date_updated,
        )

    def validate_webhook_signature(
        self,
        url: str,
        params: dict[str, Any],
        signature: str,
    ) -> bool:
        """Validate Twilio webhook signature.

        Args:
            url: The webhook URL as Twilio called it
            params: Form parameters
            signature: X-Twilio-Signature header value

        Returns:
            True if signature is valid
        """
        if not signature:
            return False
        validator = RequestValidator(self.auth_token)
        return validator.validate(url, params, signature)
