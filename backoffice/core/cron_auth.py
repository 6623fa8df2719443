"""Shared-secret authorization for cron endpoints."""

import hmac
import logging
from dataclasses import dataclass

from fastapi import Request

from backoffice.settings import settings

logger = logging.getLogger(__name__)

CRON_SECRET_HEADER = "x-cron-secret"


@dataclass
class CronAuthResult:
    """Result of a cron authorization check."""

    authorized: bool
    reason: str | None = None


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    header_secret = request.headers.get(CRON_SECRET_HEADER)
    if header_secret:
        return header_secret.strip()
    return None


def authorize_cron_request(request: Request, cron_secret: str | None = None) -> CronAuthResult:
    """Check the shared cron secret on an incoming request.

    Accepts either ``Authorization: Bearer <secret>`` or ``x-cron-secret: <secret>``.
    When no secret is configured, requests are only allowed outside production.

    Args:
        request: Incoming request
        cron_secret: Expected secret (defaults to settings)

    Returns:
        CronAuthResult with authorized flag and a reason when denied
    """
    expected = cron_secret if cron_secret is not None else settings.cron_secret

    if not expected:
        if settings.is_production:
            logger.error("CRON_SECRET is not configured; rejecting cron request")
            return CronAuthResult(authorized=False, reason="cron_secret_not_configured")
        return CronAuthResult(authorized=True, reason="cron_secret_not_configured")

    token = _extract_token(request)
    if not token:
        return CronAuthResult(authorized=False, reason="missing_credentials")

    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        return CronAuthResult(authorized=False, reason="invalid_credentials")

    return CronAuthResult(authorized=True)
