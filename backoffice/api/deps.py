"""FastAPI dependencies for external clients."""

import logging

from backoffice.core.exceptions import CarrierConfigurationError
from backoffice.infrastructure.graph_email_client import GraphEmailClient
from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.infrastructure.telephony.twilio_provider import TwilioSmsProvider
from backoffice.settings import settings

logger = logging.getLogger(__name__)


def get_sms_carrier() -> SmsCarrierProtocol | None:
    """Build the SMS carrier, or None when Twilio is not configured."""
    if not settings.twilio_configured:
        return None
    try:
        return TwilioSmsProvider()
    except CarrierConfigurationError as e:
        logger.error(f"Twilio client could not be created: {e}")
        return None


def get_email_client() -> GraphEmailClient | None:
    """Build the Microsoft Graph email client, or None when it is not configured."""
    if not settings.graph_configured:
        return None
    try:
        return GraphEmailClient()
    except ValueError as e:
        logger.error(f"Graph email client could not be created: {e}")
        return None
