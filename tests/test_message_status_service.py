"""Tests for applying carrier statuses to stored messages."""

from datetime import datetime

import pytest

from backoffice.domain.services.message_status_service import (
    APPLY_STALE,
    APPLY_UPDATED,
    MessageSnapshot,
    MessageStatusService,
)
from backoffice.persistence.repositories.message_repository import MessageRepository


@pytest.mark.asyncio
async def test_status_callback_upgrade(db_session, make_message):
    message = await make_message(sid="SM1", status="queued", carrier_status="sending")

    result = await MessageStatusService(db_session).apply_carrier_status(
        MessageSnapshot.from_model(message), "sent", source="status callback"
    )

    assert result == APPLY_UPDATED
    await db_session.refresh(message)
    assert message.status == "sent"
    audit = await MessageRepository(db_session).list_delivery_statuses(message.id)
    assert audit[0].note == "Updated via status callback"


@pytest.mark.asyncio
async def test_concurrent_terminal_write_wins(db_session, make_message):
    """A snapshot taken before another writer finalized the row cannot overwrite it."""
    message = await make_message(sid="SM2", status="sent")
    snapshot = MessageSnapshot.from_model(message)
    await MessageRepository(db_session).update_if_pending(message.id, status="delivered", carrier_status="delivered")

    result = await MessageStatusService(db_session).apply_carrier_status(snapshot, "failed", error_code=30003)

    assert result == APPLY_STALE
    await db_session.refresh(message)
    assert message.status == "delivered"
    assert message.error_code is None


@pytest.mark.asyncio
async def test_late_callback_after_delivery_is_regression(db_session, make_message):
    message = await make_message(sid="SM3", status="delivered")

    result = await MessageStatusService(db_session).apply_carrier_status(
        MessageSnapshot.from_model(message), "sent", source="status callback"
    )

    assert result == "regression"
    await db_session.refresh(message)
    assert message.status == "delivered"


@pytest.mark.asyncio
async def test_failed_at_uses_reported_time(db_session, make_message):
    message = await make_message(sid="SM4", status="sent")
    reported_at = datetime(2026, 1, 1, 9, 30)

    await MessageStatusService(db_session).apply_carrier_status(
        MessageSnapshot.from_model(message), "undelivered", error_code=30003, occurred_at=reported_at
    )

    await db_session.refresh(message)
    assert message.failed_at == reported_at
    assert message.error_code == "30003"
