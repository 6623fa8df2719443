"""Phone number utilities for consistent handling across the application."""

import logging
import re

from backoffice.core.exceptions import InvalidPhoneNumberError
from backoffice.settings import settings

logger = logging.getLogger(__name__)


def normalize_phone_e164(phone: str | None, default_country_code: str | None = None) -> str:
    """Normalize a phone number to E.164 format.

    Numbers without an international prefix are assumed to belong to the
    venue's home country (UK by default):
        07700 900123     → +447700900123
        +44 7700 900123  → +447700900123
        0044 7700 900123 → +447700900123

    Raises:
        InvalidPhoneNumberError: If the number cannot be normalized
    """
    if not phone or not phone.strip():
        raise InvalidPhoneNumberError("Phone number is required")

    country_code = default_country_code or settings.sms_default_country_code
    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)

    if stripped.startswith("+"):
        candidate = digits
    elif digits.startswith("00"):
        candidate = digits[2:]
    elif digits.startswith("0"):
        candidate = f"{country_code}{digits[1:]}"
    elif digits.startswith(country_code):
        candidate = digits
    else:
        candidate = f"{country_code}{digits}"

    # E.164 allows at most 15 digits; anything under 8 is not a reachable number
    if not 8 <= len(candidate) <= 15:
        logger.warning(f"Could not normalize phone number: {phone}")
        raise InvalidPhoneNumberError(f"Invalid phone number: {phone}")

    return f"+{candidate}"


def normalize_phone_for_dedup(phone: str) -> str:
    """Strip formatting from a phone number for deduplication keys.

    Example:
        +44 7700 900123 → +447700900123
    """
    return re.sub(r"\s+", "", phone)
