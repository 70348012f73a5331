"""
Timezone helpers. Race times are stored as naive UTC datetimes and shown in
the application's configured timezone.
"""

from datetime import datetime, timezone

import pytz
from flask import current_app


def get_app_timezone():
    """Get the application's configured timezone"""
    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Treat naive datetimes as UTC and return an aware UTC datetime"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_naive_utc(dt):
    """UTC datetime without tzinfo, the form stored in the database"""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None

    return ensure_utc(dt).astimezone(get_app_timezone())


def format_race_time(dt, format_str="%a %d %b at %H:%M %Z"):
    """Format a session start time in the application's timezone"""
    if dt is None:
        return "TBD"

    return convert_to_app_timezone(dt).strftime(format_str)


def parse_session_time(date_str, time_str=None):
    """Build a naive UTC datetime from the results API's date and time fields.

    The API sends e.g. date="2024-03-02", time="15:00:00Z"; time may be missing
    for old seasons, in which case midnight UTC is used.
    """
    if not date_str:
        return None

    time_part = (time_str or "00:00:00Z").rstrip("Z")
    parsed = datetime.fromisoformat(f"{date_str}T{time_part}")
    return to_naive_utc(parsed)
