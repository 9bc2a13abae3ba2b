"""ISO-8601 parsing and half-open window helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    text = (value or "").strip()
    if not text:
        raise ValueError("Timestamp is empty.")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid ISO-8601 timestamp '{value}'") from exc


def in_window(moment: datetime, start: datetime, end: datetime) -> bool:
    """True when ``start <= moment < end``."""
    return ensure_utc(start) <= ensure_utc(moment) < ensure_utc(end)
