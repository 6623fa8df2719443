"""Idempotency key and request hash utilities."""

import hashlib
import json
from typing import Any


def stable_serialize(value: Any) -> str:
    """Serialize a value to JSON with sorted keys, dropping None-valued keys."""
    return json.dumps(_drop_none(value), sort_keys=True, separators=(",", ":"), default=str)


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _drop_none(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(item) for item in value]
    return value


def hash_sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def compute_request_hash(payload: dict[str, Any]) -> str:
    """Compute a stable hash of a request payload.

    Args:
        payload: Request parameters identifying the side effect

    Returns:
        Hex-encoded SHA-256 digest
    """
    return hash_sha256(stable_serialize(payload))


def generate_idempotency_key(*parts: str | int) -> str:
    """Join key parts into a namespaced idempotency key.

    Example:
        generate_idempotency_key("invoice-reminder", 12, "first-reminder")
        → "invoice-reminder:12:first-reminder"
    """
    return ":".join(str(part) for part in parts)
