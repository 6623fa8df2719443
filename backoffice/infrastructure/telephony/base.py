"""Base SMS carrier interface and boundary DTOs."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, field_validator


def _to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert a datetime to naive UTC to match database columns."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class CarrierSendResult(BaseModel):
    """Result of an outbound send accepted by the carrier."""

    sid: str
    status: str
    to: str | None = None
    from_: str | None = None
    segments: int | None = None
    date_created: datetime | None = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("date_created")
    @classmethod
    def normalize_date(cls, value: datetime | None) -> datetime | None:
        return _to_naive_utc(value)


class CarrierMessage(BaseModel):
    """Authoritative message state fetched from the carrier."""

    sid: str
    status: str
    error_code: int | None = None
    error_message: str | None = None
    date_created: datetime | None = None
    date_sent: datetime | None = None
    date_updated: datetime | None = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("date_created", "date_sent", "date_updated")
    @classmethod
    def normalize_dates(cls, value: datetime | None) -> datetime | None:
        return _to_naive_utc(value)


class SmsCarrierProtocol(ABC):
    """Protocol for SMS carrier implementations."""

    @abstractmethod
    async def send_sms(
        self,
        to: str,
        body: str,
        status_callback: str | None = None,
    ) -> CarrierSendResult:
        """Send an SMS message.

        Args:
            to: Recipient phone number (E.164 format)
            body: Message body
            status_callback: Optional callback URL for delivery status

        Returns:
            CarrierSendResult with the carrier SID and initial status

        Raises:
            CarrierError: If the carrier rejects the message
        """
        pass

    @abstractmethod
    async def fetch_message(self, message_sid: str) -> CarrierMessage:
        """Fetch the current state of a message.

        Raises:
            CarrierMessageNotFoundError: If the carrier has no such message
            CarrierError: On any other carrier or network failure
        """
        pass

    @abstractmethod
    def validate_webhook_signature(
        self,
        url: str,
        params: dict[str, Any],
        signature: str,
    ) -> bool:
        """Validate an incoming webhook signature."""
        pass
