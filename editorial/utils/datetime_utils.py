from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    SQLite DateTime columns drop tzinfo, so rows are written naive UTC.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_until(deadline: date, today: date = None) -> int:
    """Whole days from today until the deadline (negative once it has passed)."""
    today = today or naive_utc_now().date()
    return (deadline - today).days
