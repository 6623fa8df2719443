"""Audit log repository."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.persistence.models.audit_log import AuditLog, AuditOperation


class AuditLogRepository:
    """Repository for audit log operations.

    Note: This repository intentionally does NOT extend BaseRepository
    because audit entries are append-only.
    """

    def __init__(self, session: AsyncSession):
        """Initialize audit log repository."""
        self.session = session

    async def create(
        self,
        operation_type: str | AuditOperation,
        resource_type: str | None = None,
        resource_id: str | int | None = None,
        user_id: str | None = "system",
        operation_status: str = "success",
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create a new audit log entry.

        Args:
            operation_type: The operation being logged (AuditOperation enum or string)
            resource_type: Type of resource affected (e.g., "invoice", "message")
            resource_id: ID of the specific resource
            user_id: Actor performing the operation ("system" for cron jobs)
            operation_status: success or failure
            details: Additional operation-specific details as JSON

        Returns:
            The created AuditLog entry
        """
        operation_str = (
            operation_type.value if isinstance(operation_type, AuditOperation) else operation_type
        )

        audit_log = AuditLog(
            operation_type=operation_str,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            user_id=user_id,
            operation_status=operation_status,
            details=details,
        )

        self.session.add(audit_log)
        await self.session.commit()
        await self.session.refresh(audit_log)
        return audit_log

    async def list_for_resource(self, resource_type: str, resource_id: str | int) -> list[AuditLog]:
        """List audit entries for a resource, oldest first."""
        stmt = (
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == str(resource_id),
            )
            .order_by(AuditLog.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
