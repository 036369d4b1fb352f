#!/usr/bin/env python3
"""Common note and datetime helpers."""

from datetime import date, datetime, timezone


def utc_now_iso() -> str:
    """Millisecond UTC timestamp with a Z suffix; sorts lexicographically by time."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(value: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (TypeError, ValueError):
        return None


def local_date(value: str) -> date | None:
    dt = parse_iso_datetime(value)
    if dt is None:
        return None
    return dt.astimezone().date()


def note_text(note: dict) -> str:
    text = note.get("text", "")
    return text if isinstance(text, str) else str(text)


def note_tags(note: dict) -> list[str]:
    raw = note.get("tags") or []
    if not isinstance(raw, list):
        return []
    return [str(tag) for tag in raw]


def dedupe(values) -> list:
    """Drop repeats, keeping the order of first appearance."""
    return list(dict.fromkeys(values))
