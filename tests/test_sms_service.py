"""Tests for outbound SMS sending."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError
from unittest.mock import AsyncMock, patch

from backoffice.core.exceptions import CarrierError, InvalidPhoneNumberError
from backoffice.domain.services.sms_safety_service import build_sms_dedup_context
from backoffice.domain.services.sms_service import SmsService
from backoffice.infrastructure.telephony.base import CarrierSendResult
from backoffice.persistence.models import IdempotencyKey, Message
from backoffice.persistence.repositories.idempotency_repository import IdempotencyKeyRepository
from backoffice.persistence.repositories.message_repository import MessageRepository
from backoffice.settings import settings


def _send_result(sid: str = "SM900", status: str = "queued") -> CarrierSendResult:
    return CarrierSendResult(sid=sid, status=status, to="+447700900123", from_="+447700900000", segments=1)


@pytest.mark.asyncio
async def test_send_sms_persists_message(db_session, carrier, customer):
    carrier.send_sms.return_value = _send_result()

    result = await SmsService(db_session, carrier).send_sms("07700 900123", "See you tonight", customer_id=customer.id)

    assert result.success
    assert result.sid == "SM900"
    assert not result.logging_failed
    carrier.send_sms.assert_awaited_once()
    assert carrier.send_sms.await_args.args[0] == "+447700900123"
    assert carrier.send_sms.await_args.kwargs["status_callback"].endswith("/api/v1/webhooks/twilio/status")

    message = await MessageRepository(db_session).get_by_carrier_message_id("SM900")
    assert message.id == result.message_id
    assert message.direction == "outbound"
    assert message.status == "queued"
    assert message.customer_id == customer.id
    assert message.sent_at is not None


@pytest.mark.asyncio
async def test_invalid_number_raises(db_session, carrier):
    with pytest.raises(InvalidPhoneNumberError):
        await SmsService(db_session, carrier).send_sms("123", "Hi")
    carrier.send_sms.assert_not_awaited()


@pytest.mark.asyncio
async def test_deactivated_customer_is_suppressed(db_session, carrier, customer):
    customer.sms_status = "sms_deactivated"
    await db_session.commit()

    result = await SmsService(db_session, carrier).send_sms("07700 900123", "Hi", customer_id=customer.id)

    assert result.suppressed
    assert result.code == "customer_not_eligible"
    carrier.send_sms.assert_not_awaited()


@pytest.mark.asyncio
async def test_recipient_hourly_limit(db_session, carrier, make_message, customer, monkeypatch):
    monkeypatch.setattr(settings, "sms_safety_recipient_hourly_limit", 2)
    for index in range(2):
        await make_message(sid=f"SM-R{index}", customer_id=customer.id, age=timedelta(minutes=10))

    result = await SmsService(db_session, carrier).send_sms("07700 900123", "Hi", customer_id=customer.id)

    assert result.suppressed
    assert result.code == "recipient_hourly_limit"
    carrier.send_sms.assert_not_awaited()


@pytest.mark.asyncio
async def test_carrier_failure_releases_claim(db_session, carrier):
    carrier.send_sms.side_effect = CarrierError("rejected", code=21211)
    metadata = {"template_key": "booking_confirmation", "table_booking_id": "tb-1"}

    with pytest.raises(CarrierError):
        await SmsService(db_session, carrier).send_sms("07700 900123", "Booked", metadata=metadata)

    dedup = build_sms_dedup_context("+447700900123", "Booked", metadata=metadata)
    assert await IdempotencyKeyRepository(db_session).get(dedup.key) is None


@pytest.mark.asyncio
async def test_templated_send_is_deduplicated(db_session, carrier):
    carrier.send_sms.return_value = _send_result()
    metadata = {"template_key": "booking_confirmation", "table_booking_id": "tb-1"}
    service = SmsService(db_session, carrier)

    first = await service.send_sms("07700 900123", "Booked", metadata=metadata)
    second = await service.send_sms("07700 900123", "Booked", metadata=metadata)
    changed_body = await service.send_sms("07700 900123", "Booked for 8pm", metadata=metadata)

    assert first.success
    assert second.suppressed and second.code == "duplicate"
    assert changed_body.suppressed and changed_body.code == "idempotency_conflict"
    carrier.send_sms.assert_awaited_once()


@pytest.mark.asyncio
async def test_logging_failure_marks_claim_processed_with_error(db_session, carrier):
    carrier.send_sms.return_value = _send_result()
    metadata = {"template_key": "booking_confirmation", "table_booking_id": "tb-2"}
    service = SmsService(db_session, carrier)

    with patch.object(service.message_repo, "create", AsyncMock(side_effect=SQLAlchemyError("db down"))):
        result = await service.send_sms("07700 900123", "Booked", metadata=metadata)

    assert result.success
    assert result.logging_failed
    dedup = build_sms_dedup_context("+447700900123", "Booked", metadata=metadata)
    row = await IdempotencyKeyRepository(db_session).get(dedup.key)
    assert row.response["state"] == "processed_with_error"


def test_dedup_context_requires_template_key():
    assert build_sms_dedup_context("+447700900123", "Hi") is None
    assert build_sms_dedup_context("+447700900123", "Hi", metadata={"template_key": "  "}) is None


def test_dedup_key_ignores_body_but_hash_does_not():
    metadata = {"template_key": "reminder", "event_id": "ev-1"}
    a = build_sms_dedup_context("+447700900123", "Body one", metadata=metadata)
    b = build_sms_dedup_context("+447700900123", "Body two", metadata=metadata)

    assert a.key == b.key
    assert a.key.startswith("sms:")
    assert a.request_hash != b.request_hash


def test_dedup_without_context_buckets_by_day():
    metadata = {"template_key": "reminder"}
    day1 = build_sms_dedup_context("+447700900123", "Hi", metadata=metadata, now=datetime(2026, 3, 1, 9))
    same_day = build_sms_dedup_context("+447700900123", "Hi", metadata=metadata, now=datetime(2026, 3, 1, 21))
    day2 = build_sms_dedup_context("+447700900123", "Hi", metadata=metadata, now=datetime(2026, 3, 2, 9))

    assert day1.key == same_day.key
    assert day1.key != day2.key


@pytest.mark.asyncio
async def test_expired_dedup_claim_allows_resend(db_session, carrier):
    carrier.send_sms.return_value = _send_result(sid="SM901")
    metadata = {"template_key": "booking_confirmation", "table_booking_id": "tb-3"}
    dedup = build_sms_dedup_context("+447700900123", "Booked", metadata=metadata)
    db_session.add(
        IdempotencyKey(
            key=dedup.key,
            request_hash=dedup.request_hash,
            response={"state": "processed", "result": {}},
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        )
    )
    await db_session.commit()

    result = await SmsService(db_session, carrier).send_sms("07700 900123", "Booked", metadata=metadata)

    assert result.success
    assert isinstance(await db_session.get(Message, result.message_id), Message)
