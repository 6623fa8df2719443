"""Idempotency key repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.persistence.models.idempotency_key import IdempotencyKey


class IdempotencyKeyRepository:
    """Repository for idempotency claims.

    Claims are keyed by a natural string key rather than an integer id, so
    this repository does not extend BaseRepository.
    """

    def __init__(self, session: AsyncSession):
        """Initialize idempotency key repository."""
        self.session = session

    async def get(self, key: str) -> IdempotencyKey | None:
        """Get the current row for a key."""
        stmt = (
            select(IdempotencyKey)
            .where(IdempotencyKey.key == key)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert(
        self,
        key: str,
        request_hash: str,
        response: dict[str, Any],
        expires_at: datetime,
    ) -> bool:
        """Insert a new claim.

        Returns:
            True if inserted, False if the key already exists
        """
        stmt = insert(IdempotencyKey).values(
            key=key,
            request_hash=request_hash,
            response=response,
            expires_at=expires_at,
            created_at=datetime.utcnow(),
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return False
        return True

    async def reclaim_expired(
        self,
        key: str,
        previous_hash: str,
        previous_expires_at: datetime,
        request_hash: str,
        response: dict[str, Any],
        expires_at: datetime,
    ) -> bool:
        """Take over an expired claim, matching on the exact row previously read.

        Returns:
            True if this caller won the reclaim
        """
        stmt = (
            update(IdempotencyKey)
            .where(
                IdempotencyKey.key == key,
                IdempotencyKey.request_hash == previous_hash,
                IdempotencyKey.expires_at == previous_expires_at,
            )
            .values(request_hash=request_hash, response=response, expires_at=expires_at)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def update_response(
        self,
        key: str,
        request_hash: str,
        response: dict[str, Any],
        expires_at: datetime,
    ) -> bool:
        """Store the final response for a claim owned by request_hash."""
        stmt = (
            update(IdempotencyKey)
            .where(IdempotencyKey.key == key, IdempotencyKey.request_hash == request_hash)
            .values(response=response, expires_at=expires_at)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def delete(self, key: str, request_hash: str) -> bool:
        """Delete a claim owned by request_hash."""
        stmt = delete(IdempotencyKey).where(
            IdempotencyKey.key == key,
            IdempotencyKey.request_hash == request_hash,
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0
