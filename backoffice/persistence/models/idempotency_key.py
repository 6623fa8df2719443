"""Idempotency claim model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String

from backoffice.persistence.database import Base


class IdempotencyKey(Base):
    """Database-backed claim on a side-effecting operation.

    response holds {"state": "claimed"} while the claim is held, and the
    final result ({"state": "processed"} or {"state": "processed_with_error"})
    once persisted.
    """

    __tablename__ = "idempotency_keys"

    key = Column(String(255), primary_key=True)
    request_hash = Column(String(64), nullable=False)
    response = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyKey(key={self.key}, expires_at={self.expires_at})>"
