"""Utility functions for time formatting and text trimming."""

from datetime import UTC, datetime

from synchub.constants import TIMESTAMP_FORMAT


def utc_now() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_duration(ms: int) -> str:
    """
    Format milliseconds to human-readable duration.

    Args:
        ms: Duration in milliseconds.

    Returns:
        Formatted string: "150ms", "2.5s", "1m 5s", etc.

    Examples:
        >>> format_duration(150)
        '150ms'
        >>> format_duration(2500)
        '2.5s'
        >>> format_duration(65000)
        '1m 5s'
    """
    if ms < 0:
        return "0ms"

    if ms < 1000:
        return f"{ms}ms"

    seconds = ms / 1000

    if seconds < 60:
        if seconds == int(seconds):
            return f"{int(seconds)}s"
        formatted = f"{seconds:.1f}".rstrip("0").rstrip(".")
        return f"{formatted}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if remaining_seconds == 0:
        return f"{minutes}m"

    return f"{minutes}m {remaining_seconds}s"


def format_relative_time(moment: datetime, now: datetime | None = None) -> str:
    """
    Format a past moment relative to now.

    Examples:
        >>> format_relative_time(now - timedelta(seconds=20), now)
        'just now'
        >>> format_relative_time(now - timedelta(hours=2), now)
        '2h ago'
    """
    now = now or utc_now()
    seconds = int((now - moment).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def format_timestamp(moment: datetime) -> str:
    """Format as `YYYY-MM-DD HH:MM` (24-hour clock)."""
    return moment.strftime(TIMESTAMP_FORMAT)


def truncate_child(text: str, max_chars: int) -> str:
    """Cut a journal detail line to max_chars, marking the cut with '...'."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."
