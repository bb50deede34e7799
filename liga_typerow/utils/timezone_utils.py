"""
Timezone utility functions for Liga Typerow
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
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Treat naive datetimes read back from the database as UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def convert_to_utc(dt):
    """Convert a datetime to UTC"""
    if dt is None:
        return None

    # If datetime is naive, assume it's in the application timezone
    if dt.tzinfo is None:
        app_tz = get_app_timezone()
        dt = app_tz.localize(dt)

    return dt.astimezone(timezone.utc)


def parse_deadline(value):
    """Parse an ISO 8601 deadline (naive values are in the application timezone)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return convert_to_utc(value)
    return convert_to_utc(datetime.fromisoformat(str(value)))


def is_past(deadline, now=None):
    """Check whether a deadline has passed"""
    if deadline is None:
        return False
    now = ensure_utc(now) if now is not None else get_utc_time()
    return now >= ensure_utc(deadline)
