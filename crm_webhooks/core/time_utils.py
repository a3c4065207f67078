"""UTC helpers shared by the ingestion and processing paths."""

from datetime import UTC, datetime
from typing import Any

# Epoch values above this are treated as milliseconds.
EPOCH_MILLIS_THRESHOLD = 10_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: Any) -> datetime | None:
    """Parse the timestamp shapes the CRM sends.

    Accepts datetimes, ISO-8601 strings (with or without a trailing ``Z``) and
    epoch numbers in seconds or milliseconds. Returns None for empty values.

    Raises:
        ValueError: If the value is present but cannot be interpreted.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, int | float):
        seconds = value / 1000 if value > EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=UTC)

    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return parse_datetime(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))

    raise ValueError(f"Unsupported timestamp value: {value!r}")


def parse_datetime_or_none(value: Any) -> datetime | None:
    """Lenient variant for optional payload fields."""
    try:
        return parse_datetime(value)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
