# File: utils/dt_utils.py
"""Date and time utilities for Lux Libris.

Pure Python date/time functions with ZERO Home Assistant dependencies.
All functions here can be unit tested without Home Assistant mocking.

Uses standard library: datetime, zoneinfo, dateutil.

All reading-program arithmetic is calendar-day based: session dates, streak
anchors, and academic-year boundaries are plain `datetime.date` values in the
tenant's local calendar, never durations.

Functions:
    - dt_today_local: Get today's date in local timezone
    - dt_now_utc: Get current datetime in UTC
    - dt_now_iso: Get current UTC datetime as ISO string
    - dt_parse_date: Parse date strings
    - dt_coerce_date: Normalize date/datetime/string inputs to a date
    - dt_add_years: Calendar-year offset (leap-day safe)
"""

from __future__ import annotations

from datetime import UTC, date, datetime
import logging
from zoneinfo import ZoneInfo

# Third-party date utilities (no HA dependency)
from dateutil.relativedelta import relativedelta

# Module-level logger (no HA dependency)
_LOGGER = logging.getLogger(__name__)

# Default timezone - can be overridden by caller
DEFAULT_TIME_ZONE: ZoneInfo = ZoneInfo("UTC")


# ==============================================================================
# Timezone Configuration
# ==============================================================================


def set_default_timezone(tz: ZoneInfo) -> None:
    """Set the default timezone for all dt_utils functions.

    Call this during integration setup to configure the user's timezone.

    Args:
        tz: ZoneInfo object representing the default timezone
    """
    global DEFAULT_TIME_ZONE  # noqa: PLW0603
    DEFAULT_TIME_ZONE = tz


# ==============================================================================
# Current Date/Time Functions
# ==============================================================================


def dt_today_local(tz: ZoneInfo | None = None) -> date:
    """Return today's date in local timezone as a `datetime.date`.

    Args:
        tz: Optional timezone override. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        Today's date in the specified timezone.

    Example:
        datetime.date(2025, 4, 7)
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    return datetime.now(tz_info).date()


def dt_now_utc() -> datetime:
    """Return the current datetime in UTC (timezone-aware)."""
    return datetime.now(UTC)


def dt_now_iso() -> str:
    """Return the current UTC datetime as an ISO 8601 string."""
    return dt_now_utc().isoformat()


# ==============================================================================
# Date Parsing
# ==============================================================================


def dt_parse_date(date_str: str | None) -> date | None:
    """Safely parse a date string into a `datetime.date`.

    Accepts formats:
    - "2025-04-07" (ISO format)
    - "2025-04-07T18:30:00" (ISO datetime, date part kept)
    - "04/07/2025" (US format)
    - "2025/04/07"

    Args:
        date_str: Date string to parse, or None

    Returns:
        datetime.date or None if parsing fails.
    """
    if not date_str or not isinstance(date_str, str):
        return None

    # Try ISO format first (most common)
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(date_str).date()
    except ValueError:
        pass

    for fmt in ("%m/%d/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    _LOGGER.debug("Unable to parse date string: %s", date_str)
    return None


def dt_coerce_date(value: str | date | datetime | None) -> date | None:
    """Normalize a date-like input to a calendar `datetime.date`.

    Datetimes are converted to the default timezone before the date part is
    taken, so a late-evening UTC timestamp lands on the local calendar day.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(DEFAULT_TIME_ZONE)
        return value.date()
    if isinstance(value, date):
        return value
    return dt_parse_date(value)


# ==============================================================================
# Calendar Arithmetic
# ==============================================================================


def dt_add_years(day: date, years: int) -> date:
    """Return `day` shifted by whole calendar years.

    Feb 29 clamps to Feb 28 in non-leap years.

    Example:
        dt_add_years(date(2024, 2, 29), 1) -> date(2025, 2, 28)
    """
    return day + relativedelta(years=years)
