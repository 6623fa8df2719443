"""Tests for the idempotency guard."""

from datetime import datetime, timedelta

import pytest

from backoffice.core.exceptions import IdempotencyPersistError
from backoffice.core.idempotency import compute_request_hash, generate_idempotency_key
from backoffice.domain.services.idempotency_service import (
    CLAIM_CLAIMED,
    CLAIM_CONFLICT,
    CLAIM_IN_PROGRESS,
    CLAIM_REPLAY,
    STATE_PROCESSED_WITH_ERROR,
    IdempotencyService,
)
from backoffice.persistence.models import IdempotencyKey
from backoffice.persistence.repositories.idempotency_repository import IdempotencyKeyRepository


def test_request_hash_is_stable():
    """Key order and None-valued keys do not change the hash."""
    hash1 = compute_request_hash({"invoice_id": 12, "reminder_type": "First Reminder", "note": None})
    hash2 = compute_request_hash({"reminder_type": "First Reminder", "invoice_id": 12})
    assert hash1 == hash2

    hash3 = compute_request_hash({"invoice_id": 13, "reminder_type": "First Reminder"})
    assert hash1 != hash3


def test_idempotency_key_generation():
    assert generate_idempotency_key("invoice-reminder", 12, "first-reminder") == "invoice-reminder:12:first-reminder"


@pytest.mark.asyncio
async def test_second_claim_is_in_progress(db_session):
    service = IdempotencyService(db_session)

    first = await service.claim("job:1", "hash-a")
    second = await service.claim("job:1", "hash-a")

    assert first.state == CLAIM_CLAIMED
    assert first.acquired
    assert second.state == CLAIM_IN_PROGRESS
    assert not second.acquired


@pytest.mark.asyncio
async def test_claim_with_different_hash_conflicts(db_session):
    service = IdempotencyService(db_session)

    await service.claim("job:1", "hash-a")
    result = await service.claim("job:1", "hash-b")

    assert result.state == CLAIM_CONFLICT


@pytest.mark.asyncio
async def test_persisted_claim_replays_response(db_session):
    service = IdempotencyService(db_session)

    await service.claim("job:1", "hash-a")
    await service.persist("job:1", "hash-a", {"sent": 2})
    result = await service.claim("job:1", "hash-a")

    assert result.state == CLAIM_REPLAY
    assert result.response == {"state": "processed", "result": {"sent": 2}}


@pytest.mark.asyncio
async def test_processed_with_error_is_stored(db_session):
    service = IdempotencyService(db_session)

    await service.claim("job:1", "hash-a")
    await service.persist("job:1", "hash-a", {"sent": 1}, state=STATE_PROCESSED_WITH_ERROR)
    row = await IdempotencyKeyRepository(db_session).get("job:1")

    assert row.response["state"] == STATE_PROCESSED_WITH_ERROR


@pytest.mark.asyncio
async def test_release_allows_new_claim(db_session):
    service = IdempotencyService(db_session)

    await service.claim("job:1", "hash-a")
    await service.release("job:1", "hash-a")
    result = await service.claim("job:1", "hash-a")

    assert result.state == CLAIM_CLAIMED


@pytest.mark.asyncio
async def test_release_with_foreign_hash_keeps_claim(db_session):
    service = IdempotencyService(db_session)

    await service.claim("job:1", "hash-a")
    await service.release("job:1", "hash-b")

    assert (await service.claim("job:1", "hash-a")).state == CLAIM_IN_PROGRESS


@pytest.mark.asyncio
async def test_expired_claim_is_reclaimed(db_session):
    db_session.add(
        IdempotencyKey(
            key="job:1",
            request_hash="hash-old",
            response={"state": "claimed"},
            expires_at=datetime.utcnow() - timedelta(hours=1),
        )
    )
    await db_session.commit()

    service = IdempotencyService(db_session)
    result = await service.claim("job:1", "hash-new")

    assert result.state == CLAIM_CLAIMED
    row = await IdempotencyKeyRepository(db_session).get("job:1")
    assert row.request_hash == "hash-new"
    assert row.expires_at > datetime.utcnow()


@pytest.mark.asyncio
async def test_persist_without_claim_raises(db_session):
    service = IdempotencyService(db_session)

    with pytest.raises(IdempotencyPersistError):
        await service.persist("job:missing", "hash-a", {"sent": 1})
