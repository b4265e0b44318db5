from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Any, Optional, Tuple

import pandas as pd
from dateutil import parser as date_parser

# (pattern, order of the year/month/day groups)
DATE_PATTERNS = [
    (re.compile(r"(\d{4})-(\d{2})-(\d{2})"), ("year", "month", "day")),
    (re.compile(r"(\d{2})/(\d{2})/(\d{4})"), ("day", "month", "year")),
    (re.compile(r"(\d{2})-(\d{2})-(\d{4})"), ("day", "month", "year")),
    (re.compile(r"(\d{4})/(\d{2})/(\d{2})"), ("year", "month", "day")),
]

TIME_24_RE = re.compile(r"([0-9]{1,2}):([0-9]{2})")
TIME_12_RE = re.compile(r"([0-9]{1,2}):([0-9]{2})\s*(AM|PM)", re.IGNORECASE)

NON_DIGIT_RE = re.compile(r"\D")


def is_present(value: Any) -> bool:
    """True when a cell exists at all: not None and not NaN. Blank text counts."""
    if value is None:
        return False
    try:
        return not pd.isna(value)
    except (TypeError, ValueError):
        return True


def has_value(value: Any) -> bool:
    """True when a cell holds something other than None, NaN or blank text."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    try:
        if pd.isna(value):
            return False
    except (TypeError, ValueError):
        pass
    return bool(str(value).strip())


def _shaped_date(text: str) -> Optional[date]:
    for pattern, order in DATE_PATTERNS:
        match = pattern.fullmatch(text)
        if not match:
            continue
        parts = dict(zip(order, (int(group) for group in match.groups())))
        try:
            return date(parts["year"], parts["month"], parts["day"])
        except ValueError:
            return None
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a loosely formatted appointment date.

    The four shaped forms are read field by field; anything else, including
    a shaped string that is not a real calendar day, goes through
    ``dateutil``'s generic parser with its default (month-first) reading of
    ambiguous forms. Returns ``None`` instead of raising.
    """
    if not has_value(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    shaped = _shaped_date(text)
    if shaped is not None:
        return shaped
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError, TypeError):
        return None


def format_date(value: Optional[date]) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d")


def _clock(hours: int, minutes: int) -> Optional[str]:
    if 0 <= hours < 24 and 0 <= minutes < 60:
        return f"{hours:02d}:{minutes:02d}"
    return None


def parse_time(value: Any) -> Optional[str]:
    """Normalise ``H:MM``/``HH:MM`` (optionally with AM/PM) to ``HH:MM``."""
    if not has_value(value):
        return None
    if isinstance(value, (datetime, time)):
        return value.strftime("%H:%M")
    text = str(value).strip()

    match = TIME_24_RE.fullmatch(text)
    if match:
        clock = _clock(int(match.group(1)), int(match.group(2)))
        if clock:
            return clock

    match = TIME_12_RE.fullmatch(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2))
        period = match.group(3).upper()
        if period == "PM" and hours != 12:
            hours += 12
        if period == "AM" and hours == 12:
            hours = 0
        return _clock(hours, minutes)

    return None


def is_valid_time_range(start: Any, end: Any) -> bool:
    start_time = parse_time(start)
    end_time = parse_time(end)
    if not start_time or not end_time:
        return False
    # both sides are zero-padded HH:MM, so string order is clock order
    return start_time < end_time


def minutes_of(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_phone(value: Any) -> str:
    if not has_value(value):
        return ""
    return NON_DIGIT_RE.sub("", str(value).strip())


def split_name(value: Any) -> Tuple[str, str]:
    name = str(value).strip()
    parts = name.split(" ")
    first = parts[0] or name
    last = " ".join(parts[1:])
    return first, last


def cell_text(value: Any) -> str:
    if not has_value(value):
        return ""
    return str(value).strip()


__all__ = [
    "is_present",
    "has_value",
    "parse_date",
    "format_date",
    "parse_time",
    "is_valid_time_range",
    "minutes_of",
    "normalize_phone",
    "split_name",
    "cell_text",
]
