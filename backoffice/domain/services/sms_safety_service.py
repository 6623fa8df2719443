"""Outbound SMS safety guards: send-rate limits and template dedup context."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.idempotency import hash_sha256, stable_serialize
from backoffice.core.phone import normalize_phone_for_dedup
from backoffice.persistence.repositories.message_repository import MessageRepository
from backoffice.settings import settings

logger = logging.getLogger(__name__)

# Metadata keys that scope a templated send to one booking, job or stage
DEDUP_CONTEXT_KEYS = (
    "event_booking_id",
    "table_booking_id",
    "private_booking_id",
    "event_id",
    "parking_booking_id",
    "bulk_job_id",
    "waitlist_offer_id",
    "waitlist_entry_id",
    "booking_id",
    "trigger_type",
    "stage",
)

LIMIT_GLOBAL_HOURLY = "global_rate_limit"
LIMIT_RECIPIENT_HOURLY = "recipient_hourly_limit"
LIMIT_RECIPIENT_DAILY = "recipient_daily_limit"


@dataclass
class SmsDedupContext:
    """Idempotency key and request hash for a templated send."""

    key: str
    request_hash: str


@dataclass
class SmsSafetyMetrics:
    global_last_hour: int = 0
    recipient_last_hour: int = 0
    recipient_last_24h: int = 0


@dataclass
class SmsSafetyResult:
    """Outcome of the rate-limit check."""

    allowed: bool
    code: str | None = None
    reason: str | None = None
    metrics: SmsSafetyMetrics = field(default_factory=SmsSafetyMetrics)


def _known_context(metadata: dict[str, Any], now: datetime | None = None) -> dict[str, str]:
    context: dict[str, str] = {}
    for key in DEDUP_CONTEXT_KEYS:
        value = metadata.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            context[key] = value.strip()

    if metadata.get("marketing") is True:
        context["marketing"] = "true"
    if metadata.get("manual_interest") is True:
        context["manual_interest"] = "true"

    # Without any scoping context, dedup per UTC day
    if not context:
        context["day_bucket_utc"] = (now or datetime.utcnow()).strftime("%Y-%m-%d")

    return context


def build_sms_dedup_context(
    to: str,
    body: str,
    customer_id: int | str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> SmsDedupContext | None:
    """Build the dedup key for a templated send.

    Returns None unless metadata carries a non-empty template_key. The key
    covers template, recipient identity and scoping context; the request
    hash additionally covers the body, so a different body under the same
    key is a conflict rather than a duplicate.
    """
    if not metadata:
        return None

    template_key = metadata.get("template_key")
    if not isinstance(template_key, str) or not template_key.strip():
        return None

    identity = str(customer_id).strip() if customer_id else normalize_phone_for_dedup(to)
    scope = {
        "template_key": template_key.strip(),
        "identity": identity,
        "context": _known_context(metadata, now=now),
    }
    return SmsDedupContext(
        key=f"sms:{hash_sha256(stable_serialize(scope))}",
        request_hash=hash_sha256(stable_serialize({**scope, "body": body})),
    )


class SmsSafetyService:
    """Enforce outbound send-rate limits against the messages table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize SMS safety service."""
        self.session = session
        self.message_repo = MessageRepository(session)

    async def evaluate_limits(self, to: str, customer_id: int | None = None) -> SmsSafetyResult:
        """Check global and per-recipient outbound counts.

        The recipient is the customer when customer_id is given, otherwise
        the destination number.
        """
        metrics = SmsSafetyMetrics()
        if not settings.sms_safety_guards_enabled:
            return SmsSafetyResult(allowed=True, metrics=metrics)

        now = datetime.utcnow()
        hour_ago = now - timedelta(hours=1)
        day_ago = now - timedelta(hours=24)
        recipient = {"customer_id": customer_id} if customer_id else {"to_number": to}

        metrics.global_last_hour = await self.message_repo.count_outbound_since(hour_ago)
        metrics.recipient_last_hour = await self.message_repo.count_outbound_since(hour_ago, **recipient)
        metrics.recipient_last_24h = await self.message_repo.count_outbound_since(day_ago, **recipient)

        if metrics.global_last_hour >= settings.sms_safety_global_hourly_limit:
            result = SmsSafetyResult(False, LIMIT_GLOBAL_HOURLY, "Global SMS hourly safety limit reached", metrics)
        elif metrics.recipient_last_hour >= settings.sms_safety_recipient_hourly_limit:
            result = SmsSafetyResult(False, LIMIT_RECIPIENT_HOURLY, "Recipient SMS hourly safety limit reached", metrics)
        elif metrics.recipient_last_24h >= settings.sms_safety_recipient_daily_limit:
            result = SmsSafetyResult(False, LIMIT_RECIPIENT_DAILY, "Recipient SMS daily safety limit reached", metrics)
        else:
            return SmsSafetyResult(allowed=True, metrics=metrics)

        logger.warning(
            result.reason,
            extra={"code": result.code, "to": to, "customer_id": customer_id},
        )
        return result
