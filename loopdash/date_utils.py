"""Timestamp parsing helpers shared by the reconciler and compactor."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f"):
            try:
                parsed = datetime.strptime(cleaned, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def iso_to_epoch(value: Any) -> float:
    """Epoch seconds for sorting; unparseable values sort as the epoch."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return 0.0
    return parsed.timestamp()


def elapsed_seconds(started_at: Any, now: datetime | None = None) -> int:
    """Whole seconds from ``started_at`` until ``now``, never negative."""
    started = parse_timestamp(started_at)
    if started is None:
        return 0
    current = now or utc_now()
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return max(0, int((current - started).total_seconds()))
