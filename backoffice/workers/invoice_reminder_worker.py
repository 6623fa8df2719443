"""Cron endpoint sending overdue invoice reminders."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_email_client
from backoffice.core.cron_auth import authorize_cron_request
from backoffice.domain.services.invoice_reminder_service import InvoiceReminderService
from backoffice.infrastructure.graph_email_client import GraphEmailClient
from backoffice.persistence.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/invoice-reminders", response_model=None)
async def invoice_reminders(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    email_client: Annotated[GraphEmailClient | None, Depends(get_email_client)],
) -> dict[str, Any] | JSONResponse:
    """Mark overdue invoices and send due reminders.

    Returns:
        Processing counts and per-invoice errors
    """
    auth = authorize_cron_request(request)
    if not auth.authorized:
        logger.warning("Unauthorized cron request", extra={"reason": auth.reason, "path": request.url.path})
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    logger.info("Starting invoice reminders processing")
    try:
        summary = await InvoiceReminderService(db, email_client).run()
    except Exception as e:
        logger.error(f"Fatal error in invoice reminders cron: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to process invoice reminders", "details": str(e)},
        )

    return {
        "success": True,
        "message": "Invoice reminders processed",
        "results": summary.to_dict(),
    }
