"""
Timezone utility functions for Round Pick'em

Lock times are stored as UTC instants. A round's IANA timezone is only used to
interpret administrator input and to present lock times to participants.
"""

from datetime import datetime, timezone

import pytz
from flask import current_app


def is_valid_timezone(timezone_name):
    """Check whether a string names an IANA timezone known to pytz"""
    if not timezone_name:
        return False
    try:
        pytz.timezone(timezone_name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def get_timezone(timezone_name=None):
    """Resolve a timezone name, falling back to the configured default and then UTC"""
    if timezone_name is None:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Return an aware UTC datetime; naive values are assumed to already be UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def localize_to_utc(dt, timezone_name):
    """
    Convert a datetime entered in a round's timezone to UTC.

    Naive values are interpreted as wall-clock time in ``timezone_name``;
    aware values are simply converted.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        tz = get_timezone(timezone_name)
        dt = tz.localize(dt)

    return dt.astimezone(timezone.utc)


def convert_to_timezone(dt, timezone_name):
    """Convert a stored UTC datetime to the given timezone"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(get_timezone(timezone_name))


def format_lock_time(dt, timezone_name, format_str="%a %b %d at %I:%M %p %Z"):
    """Format a lock time in the round's timezone for user-facing messages"""
    if dt is None:
        return "TBD"

    return convert_to_timezone(dt, timezone_name).strftime(format_str)
