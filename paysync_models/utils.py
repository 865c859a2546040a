"""
Record Utility Functions

Deterministic idempotency keys and timestamp parsing for provider data.
"""

import hashlib
from datetime import datetime, timezone


def idempotency_key(resource_id: str, event_type: str, date: datetime | str) -> str:
    """
    Build the deduplication key of a webhook delivery.

    The same (resource, event, date) triple always yields the same key,
    so provider retries of one notification collapse into one record.
    """
    if isinstance(date, datetime):
        date = date.isoformat()
    raw = f"{resource_id}:{event_type}:{date}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def parse_datetime(value: str | None) -> datetime | None:
    """Parse a provider timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        value = value.replace("Z", "+00:00")
        if "T" not in value:
            return datetime.fromisoformat(f"{value}T00:00:00+00:00")
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
