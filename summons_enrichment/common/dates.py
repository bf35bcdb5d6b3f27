"""Permissive date parsing and lag-day computation.

Dates scraped from evidence pages and stored on summons records arrive in
several shapes (ISO timestamps, ``MM/DD/YYYY``, "January 15, 2025").
Everything is normalized to a UTC ISO string with millisecond precision,
e.g. ``2025-11-05T14:30:00.000Z``. Naive values are read as UTC.

Neither function raises on bad input: an unparseable value is reported as
None so callers can treat it as "not found".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)

# Tried in order after ISO-8601 parsing fails.
_FALLBACK_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%B %d, %Y %H:%M",
    "%B %d, %Y %H:%M:%S",
    "%B %d, %Y %I:%M %p",
    "%B %d, %Y %I:%M:%S %p",
    "%b %d, %Y %I:%M %p",
    "%A, %B %d, %Y",
    "%a, %b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S",
)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(text: str | None) -> datetime | None:
    """Parse a date or timestamp string into an aware UTC datetime.

    Args:
        text: The raw string, possibly padded with whitespace.

    Returns:
        The parsed datetime in UTC, or None if no known format matches.
    """
    if not text:
        return None

    cleaned = " ".join(text.split())
    if not cleaned:
        return None

    iso_candidate = cleaned
    if iso_candidate.endswith(("Z", "z")):
        iso_candidate = iso_candidate[:-1] + "+00:00"
    try:
        return _to_utc(datetime.fromisoformat(iso_candidate))
    except ValueError:
        pass

    # "GMT"/"UTC" suffixes carry no information beyond the UTC default.
    for suffix in (" GMT", " UTC"):
        if cleaned.upper().endswith(suffix):
            cleaned = cleaned[: -len(suffix)]
            break

    for fmt in _FALLBACK_FORMATS:
        try:
            return _to_utc(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue

    return None


def format_iso(value: datetime) -> str:
    """Render a datetime as a UTC ISO string with millisecond precision."""
    value = _to_utc(value)
    return (
        value.strftime("%Y-%m-%dT%H:%M:%S")
        + f".{value.microsecond // 1000:03d}Z"
    )


def parse_date_string(text: str | None) -> str | None:
    """Normalize a scraped date string to ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Example::

        parse_date_string("January 15, 2025")  # "2025-01-15T00:00:00.000Z"
        parse_date_string("11/05/2025")        # "2025-11-05T00:00:00.000Z"
        parse_date_string("not a date")        # None

    Args:
        text: The raw date text.

    Returns:
        The normalized ISO string, or None if the text is not a date.
    """
    parsed = parse_datetime(text)
    if parsed is None:
        return None
    return format_iso(parsed)


def calculate_lag_days(
    violation_date: str | None, video_created_date: str | None
) -> int | None:
    """Whole days from the violation to the video's creation.

    The result is ``floor((video_created - violation) / 1 day)``. A video
    created before the violation gives a negative lag, which is kept: it
    is a meaningful anomaly in the evidence.

    Args:
        violation_date: The earlier reference date.
        video_created_date: The later date being measured.

    Returns:
        The lag in days, or None if either date is invalid.
    """
    violation = parse_datetime(violation_date)
    video_created = parse_datetime(video_created_date)
    if violation is None or video_created is None:
        logger.debug(
            f"Cannot compute lag between {violation_date!r} "
            f"and {video_created_date!r}"
        )
        return None

    return (video_created - violation) // _ONE_DAY
