# tourdispatch/util/timeparse.py
from __future__ import annotations

import datetime as dt
import re
from typing import Tuple

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

DAY_MINUTES = 24 * 60


def parse_hhmm(s: str, *, allow_end_of_day: bool = False) -> Tuple[int, int]:
    """Parse "HH:MM" into (hour, minute).

    "24:00" is only accepted with allow_end_of_day=True (window ends).
    """
    if not isinstance(s, str):
        raise ValueError(f"Invalid HH:MM: {s!r}")
    m = _HHMM_RE.match(s.strip())
    if not m:
        raise ValueError(f"Invalid HH:MM: {s!r}")
    hh = int(m.group(1))
    mm = int(m.group(2))
    if allow_end_of_day and hh == 24 and mm == 0:
        return hh, mm
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        raise ValueError(f"Invalid HH:MM: {s!r}")
    return hh, mm


def hhmm_to_minutes(s: str, *, allow_end_of_day: bool = False) -> int:
    hh, mm = parse_hhmm(s, allow_end_of_day=allow_end_of_day)
    return hh * 60 + mm


def format_hhmm(minutes: int) -> str:
    """Minutes since midnight -> zero-padded "HH:MM" (1440 formats as "24:00")."""
    m = int(minutes)
    if m < 0 or m > DAY_MINUTES:
        raise ValueError(f"minutes out of range for a day: {minutes!r}")
    return f"{m // 60:02d}:{m % 60:02d}"


def format_time_label(s: str) -> str:
    """12-hour display label: "13:30" -> "1:30 PM", "09:00" -> "9 AM"."""
    hour, minute = parse_hhmm(s, allow_end_of_day=True)
    if hour in (0, 24):
        return "12 AM" if minute == 0 else f"12:{minute:02d} AM"
    if hour == 12:
        return "12 PM" if minute == 0 else f"12:{minute:02d} PM"
    display = hour - 12 if hour > 12 else hour
    period = "PM" if hour >= 12 else "AM"
    return f"{display} {period}" if minute == 0 else f"{display}:{minute:02d} {period}"


def parse_window(s: str) -> Tuple[int, int]:
    parts = s.split("-")
    if len(parts) != 2:
        raise ValueError("window must be like 06:00-24:00")
    start = hhmm_to_minutes(parts[0])
    end = hhmm_to_minutes(parts[1], allow_end_of_day=True)
    if end <= start:
        raise ValueError("window end must be after start")
    return start, end


def parse_date_yyyy_mm_dd(s: str) -> dt.date:
    return dt.datetime.strptime(s, "%Y-%m-%d").date()
