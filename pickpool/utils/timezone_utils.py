"""
Timezone helpers: week boundaries, scoreboard calendar days and UTC normalization
"""

from datetime import date, datetime, timedelta, timezone

import pytz
from flask import current_app, has_app_context


def get_timezone(name, default="UTC"):
    """Resolve a timezone name, falling back to UTC when it is unknown"""
    try:
        return pytz.timezone(name or default)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def get_scoreboard_timezone():
    """Timezone the results provider uses for scoreboard calendar days"""
    if has_app_context():
        return get_timezone(current_app.config.get("SCOREBOARD_TIMEZONE"), "America/New_York")
    return get_timezone("America/New_York")


def ensure_utc(dt):
    """Return an aware UTC datetime; naive values are assumed to already be UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_provider_datetime(value):
    """
    Parse ISO timestamps as the provider sends them ("2024-09-08T17:00Z",
    "2024-09-05T07:00:00.000Z"). Returns an aware UTC datetime or None.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def scoreboard_days(start, end):
    """
    Yield every calendar day (as a date) in the scoreboard timezone that overlaps
    the [start, end] window. Accepts datetimes or dates.
    """
    tz = get_scoreboard_timezone()

    def _to_local_date(value):
        if isinstance(value, datetime):
            return ensure_utc(value).astimezone(tz).date()
        return value

    first = _to_local_date(start)
    last = _to_local_date(end)
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def format_scoreboard_date(day):
    """YYYYMMDD as the scoreboard endpoint expects it"""
    if isinstance(day, datetime):
        day = day.date()
    if not isinstance(day, date):
        raise TypeError(f"Expected date, got {type(day).__name__}")
    return day.strftime("%Y%m%d")
