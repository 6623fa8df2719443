"""Audit log model for system operations."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, String

from backoffice.persistence.database import Base


class AuditOperation(str, Enum):
    """Types of auditable operations."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditLog(Base):
    """Audit log for tracking automated and user operations."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Who performed the operation ("system" for cron jobs)
    user_id = Column(String(100), nullable=True, index=True)

    operation_type = Column(String(50), nullable=False, index=True)
    operation_status = Column(String(30), nullable=False, default="success")

    # What resource was affected
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)

    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, operation={self.operation_type}, "
            f"resource={self.resource_type}:{self.resource_id})>"
        )
