"""Utility functions package."""

from .helpers import (
    format_time_label,
    label_to_minutes,
    minutes_to_label,
    scheduled_instant,
    utc_now,
)
from .keyed_lock import KeyedLock

__all__ = [
    "format_time_label",
    "label_to_minutes",
    "minutes_to_label",
    "scheduled_instant",
    "utc_now",
    "KeyedLock",
]
