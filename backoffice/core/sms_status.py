"""Carrier status mapping and the delivery-status upgrade lattice.

Carrier (Twilio) statuses are ranked on a fixed lattice:

    queued / accepted / scheduled  <  sending  <  sent  <  terminal

where terminal is one of delivered, failed, undelivered or canceled.
Terminal statuses absorb: nothing moves a message out of them.
"""

import logging
from datetime import datetime, timedelta

from backoffice.settings import settings

logger = logging.getLogger(__name__)

# Local (coarse) statuses stored in messages.status
LOCAL_QUEUED = "queued"
LOCAL_SENT = "sent"
LOCAL_DELIVERED = "delivered"
LOCAL_FAILED = "failed"
LOCAL_UNDELIVERED = "undelivered"
LOCAL_CANCELLED = "cancelled"

LOCAL_TERMINAL_STATUSES = frozenset(
    {LOCAL_DELIVERED, LOCAL_FAILED, LOCAL_UNDELIVERED, LOCAL_CANCELLED}
)
LOCAL_PENDING_STATUSES = (LOCAL_QUEUED, LOCAL_SENT)

_CARRIER_TO_LOCAL = {
    "accepted": LOCAL_QUEUED,
    "scheduled": LOCAL_QUEUED,
    "queued": LOCAL_QUEUED,
    "sending": LOCAL_QUEUED,
    "sent": LOCAL_SENT,
    "delivered": LOCAL_DELIVERED,
    "read": LOCAL_DELIVERED,
    "received": LOCAL_DELIVERED,
    "receiving": LOCAL_QUEUED,
    "undelivered": LOCAL_UNDELIVERED,
    "failed": LOCAL_FAILED,
    "canceled": LOCAL_CANCELLED,
    "cancelled": LOCAL_CANCELLED,
    "not_found": LOCAL_FAILED,
}

_TERMINAL_RANK = 3
_STATUS_RANK = {
    "accepted": 0,
    "scheduled": 0,
    "queued": 0,
    "receiving": 0,
    "sending": 1,
    "sent": 2,
    "delivered": _TERMINAL_RANK,
    "read": _TERMINAL_RANK,
    "received": _TERMINAL_RANK,
    "failed": _TERMINAL_RANK,
    "undelivered": _TERMINAL_RANK,
    "canceled": _TERMINAL_RANK,
    "cancelled": _TERMINAL_RANK,
    "not_found": _TERMINAL_RANK,
}

FAILURE_STATUSES = frozenset({"failed", "undelivered", "canceled", "cancelled"})

OUTBOUND_DIRECTIONS = ("outbound", "outbound-api")

TWILIO_ERROR_MESSAGES = {
    20404: "Message not found in Twilio",
    21211: "Invalid 'To' phone number",
    21408: "Permission to send to this region is not enabled",
    21610: "Recipient has unsubscribed (replied STOP)",
    21614: "'To' number is not a valid mobile number",
    30001: "Queue overflow",
    30002: "Account suspended",
    30003: "Unreachable destination handset",
    30004: "Message blocked",
    30005: "Unknown destination handset",
    30006: "Landline or unreachable carrier",
    30007: "Carrier violation (message filtered)",
    30008: "Unknown error",
    30034: "Message from an unregistered number",
}


def _normalize(status: str | None) -> str:
    return (status or "").strip().lower()


def map_carrier_status(raw_status: str | None) -> str:
    """Translate a carrier status string into the local status enum.

    Unknown statuses fall into the pending (queued) bucket.
    """
    normalized = _normalize(raw_status)
    local = _CARRIER_TO_LOCAL.get(normalized)
    if local is None:
        logger.warning(
            "Unknown carrier status mapped to queued",
            extra={"carrier_status": raw_status},
        )
        return LOCAL_QUEUED
    return local


def is_terminal_status(status: str | None) -> bool:
    """Return True for terminal statuses in either the carrier or local vocabulary."""
    return _STATUS_RANK.get(_normalize(status)) == _TERMINAL_RANK


def is_status_upgrade(old_status: str | None, new_status: str | None) -> bool:
    """Return True only if moving from old_status to new_status goes forward on the lattice."""
    new = _normalize(new_status)
    if not new:
        return False

    old = _normalize(old_status)
    if not old:
        return True
    if old == new:
        return False

    old_rank = _STATUS_RANK.get(old, 0)
    if old_rank == _TERMINAL_RANK:
        return False

    return _STATUS_RANK.get(new, 0) > old_rank


def is_message_stuck(
    status: str | None,
    created_at: datetime | None,
    direction: str | None,
    now: datetime | None = None,
) -> bool:
    """Return True if an outbound message has sat in a non-terminal status too long."""
    if direction not in OUTBOUND_DIRECTIONS or created_at is None:
        return False

    normalized = _normalize(status)
    if is_terminal_status(normalized):
        return False

    age = (now or datetime.utcnow()) - created_at
    if normalized == "sent":
        return age > timedelta(minutes=settings.sms_stuck_sent_minutes)
    return age > timedelta(minutes=settings.sms_stuck_queued_minutes)


def format_error_message(error_code: int | str | None) -> str:
    """Return a human readable description of a carrier error code."""
    if error_code is None or error_code == "":
        return "Message delivery failed"
    try:
        code = int(error_code)
    except (TypeError, ValueError):
        return f"Message delivery failed (error {error_code})"
    return TWILIO_ERROR_MESSAGES.get(code, f"Message delivery failed (error {code})")
