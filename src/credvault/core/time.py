"""UTC time helpers.

All persisted timestamps (audit records, credential metadata) are ISO-8601
UTC strings. Local time is only used for display.
"""

from __future__ import annotations

from datetime import datetime, timezone

__all__ = [
    "format_local_for_display",
    "format_utc_iso8601",
    "get_current_utc",
    "parse_utc_iso8601",
]


def get_current_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_utc_iso8601(dt: datetime) -> str:
    """Format datetime as ISO-8601 UTC string.

    Naive datetimes are assumed to already be UTC.

    Parameters
    ----------
    dt
        Datetime to format

    Returns
    -------
    str
        ISO-8601 UTC string (e.g., "2025-10-08T12:30:00+00:00")

    Example
    -------
    >>> dt = datetime(2025, 10, 8, 12, 30, 0, tzinfo=timezone.utc)
    >>> format_utc_iso8601(dt)
    '2025-10-08T12:30:00+00:00'
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.isoformat()


def parse_utc_iso8601(iso_string: str) -> datetime:
    """Parse ISO-8601 string to UTC datetime.

    Accepts the ``Z`` suffix as well as explicit offsets.

    Parameters
    ----------
    iso_string
        ISO-8601 formatted string

    Returns
    -------
    datetime
        Datetime in UTC

    Raises
    ------
    ValueError
        If string is not valid ISO-8601
    """
    iso_string = iso_string.strip()
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"

    dt = datetime.fromisoformat(iso_string)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt


def format_local_for_display(value: str | datetime | None) -> str:
    """Render a stored timestamp in local time for tables, ``-`` if absent/unparseable."""
    if value is None:
        return "-"
    if isinstance(value, str):
        try:
            value = parse_utc_iso8601(value)
        except ValueError:
            return value
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")
