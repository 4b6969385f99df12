"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_epoch(value: object, *, millis: bool = False) -> datetime | None:
    """Parse a platform epoch timestamp (seconds or milliseconds).

    WhatsApp sends seconds as a string, Messenger/Instagram send milliseconds
    as an integer. Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if number <= 0:
        return None
    if millis:
        number /= 1000.0
    try:
        return datetime.fromtimestamp(number, timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
