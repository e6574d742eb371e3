"""
ISO date checks for request bodies.

Dates are stored as ISO strings; a bare "YYYY-MM-DD" keeps its whole-day
meaning, so values are checked and normalised but not widened to datetimes.
"""
from datetime import date, datetime
from typing import Optional


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Accept "YYYY-MM-DD" only."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError:
        raise ValueError("Must be a date in YYYY-MM-DD format")


def normalize_date_or_datetime(value: Optional[str]) -> Optional[str]:
    """Accept an ISO date or an ISO datetime (a trailing Z is allowed)."""
    if value is None:
        return None
    value = value.strip()
    if len(value) == 10:
        return normalize_date(value)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).isoformat()
    except ValueError:
        raise ValueError("Must be an ISO date (YYYY-MM-DD) or datetime")
