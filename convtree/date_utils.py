"""Timestamp normalization helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

# Sorts before every real timestamp so unparseable values keep file order at the front.
EPOCH_FLOOR = datetime.min.replace(tzinfo=timezone.utc)


def parse_iso_ts(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_sort_key(value: Any) -> datetime:
    """Comparable key for an entry timestamp; unparseable values sort first."""
    return parse_iso_ts(value) or EPOCH_FLOOR
