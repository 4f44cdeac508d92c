"""Helper utility functions."""

import re
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

_LABEL_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def label_to_minutes(label: str) -> int:
    """
    Convert an "HH:MM" clock label to minutes past midnight.

    Raises:
        ValueError: if the label is not a 24-hour HH:MM string
    """
    match = _LABEL_RE.match(label or "")
    if not match:
        raise ValueError(f"Invalid time label {label!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_label(minutes: int) -> str:
    """Convert minutes past midnight to an "HH:MM" label."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date string."""
    if not isinstance(value, str) or len(value) != 10:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return date_parser.isoparse(value).date()
    except ValueError:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve a timezone name, falling back to UTC."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def scheduled_instant(date_str: str, time_label: str, tz_name: str = "UTC") -> datetime:
    """
    Resolve a booking's date and time label into an aware UTC instant.

    Args:
        date_str: Date in YYYY-MM-DD format
        time_label: Time in HH:MM format, local to tz_name
        tz_name: Timezone the labels are expressed in

    Returns:
        UTC datetime of the slot start
    """
    minutes = label_to_minutes(time_label)
    local = datetime.combine(
        parse_date(date_str),
        time(minutes // 60, minutes % 60),
        tzinfo=get_zone(tz_name),
    )
    return local.astimezone(timezone.utc)


def format_time_label(label: str) -> str:
    """Format an HH:MM label as 12-hour clock text, e.g. "2:30 PM"."""
    try:
        return datetime.strptime(label, "%H:%M").strftime("%I:%M %p").lstrip("0")
    except ValueError:
        return label
