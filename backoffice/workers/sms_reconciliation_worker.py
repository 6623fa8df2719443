"""Cron endpoint reconciling stuck outbound SMS with Twilio."""

import logging
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_sms_carrier
from backoffice.core.cron_auth import authorize_cron_request
from backoffice.domain.services.sms_reconciliation_service import SmsReconciliationService
from backoffice.infrastructure.telephony.base import SmsCarrierProtocol
from backoffice.persistence.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/reconcile-sms", response_model=None)
async def reconcile_sms(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    carrier: Annotated[SmsCarrierProtocol | None, Depends(get_sms_carrier)],
) -> dict[str, Any] | JSONResponse:
    """Reconcile outbound messages whose delivery status has gone stale.

    Called by the scheduler with the shared cron secret.

    Returns:
        Counts of checked, updated and errored messages
    """
    auth = authorize_cron_request(request)
    if not auth.authorized:
        logger.warning("Unauthorized cron request", extra={"reason": auth.reason, "path": request.url.path})
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    if carrier is None:
        logger.error("Twilio configuration missing; skipping SMS reconciliation")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "error": "Twilio configuration missing"},
        )

    try:
        summary = await SmsReconciliationService(db, carrier).reconcile()
    except Exception as e:
        logger.error(f"SMS reconciliation failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to reconcile SMS"},
        )

    return {
        "success": True,
        **summary.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
