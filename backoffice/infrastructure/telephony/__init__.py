"""SMS carrier infrastructure."""

from backoffice.infrastructure.telephony.base import (
    CarrierMessage,
    CarrierSendResult,
    SmsCarrierProtocol,
)
from backoffice.infrastructure.telephony.twilio_provider import TwilioSmsProvider

__all__ = [
    "CarrierMessage",
    "CarrierSendResult",
    "SmsCarrierProtocol",
    "TwilioSmsProvider",
]
