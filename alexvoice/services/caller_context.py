"""Caller location and local time, derived from edge geo headers.

Both helpers are best-effort: a missing or malformed header yields a
fallback value, never an exception.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone, tzinfo
from urllib.parse import unquote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

COUNTRY_HEADER = "x-vercel-ip-country"
REGION_HEADER = "x-vercel-ip-country-region"
CITY_HEADER = "x-vercel-ip-city"
TIMEZONE_HEADER = "x-vercel-ip-timezone"

UNKNOWN_LOCATION = "unknown"


def caller_location(headers: Mapping[str, str]) -> str:
    """Return "city, region, country", or "unknown" if any part is missing."""
    country = headers.get(COUNTRY_HEADER)
    region = headers.get(REGION_HEADER)
    city = headers.get(CITY_HEADER)

    if not country or not region or not city:
        return UNKNOWN_LOCATION

    # The edge percent-encodes city names
    return f"{unquote(city)}, {region}, {country}"


def _caller_timezone(headers: Mapping[str, str]) -> tzinfo:
    name = headers.get(TIMEZONE_HEADER)
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    # Directory names like "America" raise IsADirectoryError on some versions
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return timezone.utc


def format_local_time(moment: datetime) -> str:
    """Format like en-US locale strings: 10/19/2026, 3:04:05 PM."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return (
        f"{moment.month}/{moment.day}/{moment.year}, "
        f"{hour}:{moment.minute:02d}:{moment.second:02d} {meridiem}"
    )


def caller_time(headers: Mapping[str, str], now: datetime | None = None) -> str:
    """Current time in the caller's timezone, UTC when unknown."""
    moment = now or datetime.now(timezone.utc)
    return format_local_time(moment.astimezone(_caller_timezone(headers)))
