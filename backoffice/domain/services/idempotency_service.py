"""Database-backed idempotency guard for side-effecting operations.

Lifecycle of a key:

    claim() -> "claimed"  -> side effect -> persist()  (processed / processed_with_error)
                                         -> release()  (side effect did not happen)

A second claim() for a held key returns "in_progress"; for a finalized
key it returns "replay" with the stored response; with a different
request hash it returns "conflict".
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import IdempotencyPersistError
from backoffice.persistence.repositories.idempotency_repository import IdempotencyKeyRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

CLAIM_CLAIMED = "claimed"
CLAIM_IN_PROGRESS = "in_progress"
CLAIM_REPLAY = "replay"
CLAIM_CONFLICT = "conflict"

STATE_PROCESSED = "processed"
STATE_PROCESSED_WITH_ERROR = "processed_with_error"

_CLAIMED_RESPONSE = {"state": CLAIM_CLAIMED}


@dataclass
class ClaimResult:
    """Outcome of an idempotency claim."""

    state: str
    response: dict[str, Any] | None = None

    @property
    def acquired(self) -> bool:
        return self.state == CLAIM_CLAIMED


class IdempotencyService:
    """Claim, persist and release idempotency keys."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize idempotency service."""
        self.session = session
        self.repo = IdempotencyKeyRepository(session)

    @staticmethod
    def _expiry(ttl_hours: int | None) -> datetime:
        hours = ttl_hours if ttl_hours is not None else settings.idempotency_default_ttl_hours
        return datetime.utcnow() + timedelta(hours=hours)

    async def claim(self, key: str, request_hash: str, ttl_hours: int | None = None) -> ClaimResult:
        """Claim a key before performing a side effect.

        Args:
            key: Stable key identifying the operation
            request_hash: Hash of the request parameters
            ttl_hours: How long the claim lives before it may be reclaimed

        Returns:
            ClaimResult; only "claimed" allows the caller to proceed
        """
        expires_at = self._expiry(ttl_hours)

        existing = await self.repo.get(key)
        if existing is None:
            if await self.repo.insert(key, request_hash, _CLAIMED_RESPONSE, expires_at):
                return ClaimResult(CLAIM_CLAIMED)
            existing = await self.repo.get(key)
            if existing is None:
                # Row released between our insert and read; one more attempt
                if await self.repo.insert(key, request_hash, _CLAIMED_RESPONSE, expires_at):
                    return ClaimResult(CLAIM_CLAIMED)
                return ClaimResult(CLAIM_CONFLICT)

        existing_hash = existing.request_hash
        existing_expires_at = existing.expires_at
        existing_response = dict(existing.response or {})

        if existing_expires_at <= datetime.utcnow():
            reclaimed = await self.repo.reclaim_expired(
                key,
                previous_hash=existing_hash,
                previous_expires_at=existing_expires_at,
                request_hash=request_hash,
                response=_CLAIMED_RESPONSE,
                expires_at=expires_at,
            )
            if reclaimed:
                logger.info("Reclaimed expired idempotency key", extra={"idempotency_key": key})
                return ClaimResult(CLAIM_CLAIMED)

        if existing_hash != request_hash:
            logger.warning(
                "Idempotency key reused with a different request hash",
                extra={"idempotency_key": key},
            )
            return ClaimResult(CLAIM_CONFLICT)

        if existing_response.get("state") == CLAIM_CLAIMED:
            return ClaimResult(CLAIM_IN_PROGRESS)

        return ClaimResult(CLAIM_REPLAY, response=existing_response)

    async def persist(
        self,
        key: str,
        request_hash: str,
        result: dict[str, Any] | None = None,
        ttl_hours: int | None = None,
        state: str = STATE_PROCESSED,
    ) -> None:
        """Finalize a held claim with the outcome of the side effect.

        Raises:
            IdempotencyPersistError: If the claim row could not be updated
        """
        response = {"state": state, "result": result or {}}
        try:
            updated = await self.repo.update_response(key, request_hash, response, self._expiry(ttl_hours))
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise IdempotencyPersistError(f"Failed to persist idempotency key {key}: {e}") from e

        if not updated:
            raise IdempotencyPersistError(f"Idempotency key {key} is no longer held by this request")

    async def release(self, key: str, request_hash: str) -> None:
        """Release a held claim so a later attempt may retry.

        Failures are logged, not raised; the claim then expires on its own.
        """
        try:
            await self.repo.delete(key, request_hash)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(
                f"Failed releasing idempotency claim: {e}",
                extra={"idempotency_key": key},
            )
