"""Tests for the Twilio SMS carrier."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from twilio.base.exceptions import TwilioRestException

from backoffice.core.exceptions import (
    CarrierConfigurationError,
    CarrierError,
    CarrierMessageNotFoundError,
)
from backoffice.infrastructure.telephony.twilio_provider import TwilioSmsProvider


@pytest.fixture
def twilio_client():
    return MagicMock()


@pytest.fixture
def provider(twilio_client):
    return TwilioSmsProvider(
        account_sid="AC123",
        auth_token="token",
        from_number="+447700900000",
        messaging_service_sid=None,
        client=twilio_client,
    )


def test_missing_credentials_raise(monkeypatch):
    from backoffice.settings import settings

    monkeypatch.setattr(settings, "twilio_account_sid", None)
    monkeypatch.setattr(settings, "twilio_auth_token", None)

    with pytest.raises(CarrierConfigurationError):
        TwilioSmsProvider(client=MagicMock())


@pytest.mark.asyncio
async def test_send_sms(provider, twilio_client):
    twilio_client.messages.create.return_value = SimpleNamespace(
        sid="SM1",
        status="queued",
        to="+447700900123",
        from_="+447700900000",
        num_segments="2",
        date_created=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
    )

    result = await provider.send_sms("+447700900123", "Hello", status_callback="https://example.com/status")

    assert result.sid == "SM1"
    assert result.status == "queued"
    assert result.segments == 2
    assert result.date_created == datetime(2026, 1, 1, 12, 0)
    twilio_client.messages.create.assert_called_once_with(
        to="+447700900123",
        body="Hello",
        from_="+447700900000",
        status_callback="https://example.com/status",
    )


@pytest.mark.asyncio
async def test_send_sms_error(provider, twilio_client):
    twilio_client.messages.create.side_effect = TwilioRestException(400, "/Messages", msg="Invalid To", code=21211)

    with pytest.raises(CarrierError) as exc_info:
        await provider.send_sms("+447700900123", "Hello")

    assert exc_info.value.code == 21211


@pytest.mark.asyncio
async def test_fetch_message(provider, twilio_client):
    twilio_client.messages.return_value.fetch.return_value = SimpleNamespace(
        sid="SM1",
        status="Delivered",
        error_code=None,
        error_message=None,
        date_created=None,
        date_sent=None,
        date_updated=None,
    )

    message = await provider.fetch_message("SM1")

    twilio_client.messages.assert_called_once_with("SM1")
    assert message.status == "delivered"


@pytest.mark.asyncio
async def test_fetch_message_not_found(provider, twilio_client):
    twilio_client.messages.return_value.fetch.side_effect = TwilioRestException(
        404, "/Messages/SMX", msg="Not found", code=20404
    )

    with pytest.raises(CarrierMessageNotFoundError) as exc_info:
        await provider.fetch_message("SMX")

    assert exc_info.value.code == 20404


@pytest.mark.asyncio
async def test_fetch_message_transient_error(provider, twilio_client):
    twilio_client.messages.return_value.fetch.side_effect = TwilioRestException(
        500, "/Messages/SMX", msg="Server error", code=20500
    )

    with pytest.raises(CarrierError) as exc_info:
        await provider.fetch_message("SMX")

    assert not isinstance(exc_info.value, CarrierMessageNotFoundError)


@pytest.mark.asyncio
async def test_fetch_message_network_error_is_carrier_error(provider, twilio_client):
    twilio_client.messages.return_value.fetch.side_effect = RequestsConnectionError("reset")

    with pytest.raises(CarrierError) as exc_info:
        await provider.fetch_message("SMX")

    assert not isinstance(exc_info.value, CarrierMessageNotFoundError)


@pytest.mark.asyncio
async def test_send_sms_network_error_is_carrier_error(provider, twilio_client):
    twilio_client.messages.create.side_effect = RequestsConnectionError("reset")

    with pytest.raises(CarrierError):
        await provider.send_sms("+447700900123", "Hello")


def test_webhook_signature_requires_header(provider):
    assert provider.validate_webhook_signature("https://example.com/status", {}, "") is False
