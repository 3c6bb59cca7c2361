"""
Small helpers shared across LinkNest modules.
"""
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Union


def generate_id() -> str:
    """Generate an opaque unique identifier for a new entity."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time, truncated to milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def format_timestamp(value: datetime) -> str:
    """
    Format a timestamp as ISO-8601 UTC with a 'Z' suffix.

    Millisecond precision is used when it is lossless, otherwise
    microseconds, so parse_timestamp(format_timestamp(dt)) == dt.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    timespec = "milliseconds" if value.microsecond % 1000 == 0 else "microseconds"
    return value.isoformat(timespec=timespec).replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are assumed to be UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected timestamp string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_tags(value: Union[str, Iterable[str], None]) -> List[str]:
    """
    Normalize tag input into a list of non-empty, trimmed tags.

    Accepts either a comma-separated string ("python, web,") or an
    iterable of strings. Order and duplicates are preserved.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [tag.strip() for tag in value if tag and tag.strip()]
