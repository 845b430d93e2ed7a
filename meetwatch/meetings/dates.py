"""Resolve the model's natural-language meeting times ("Tuesday 2pm", "Jan 15th at 3:30") to datetimes.

Relative expressions are anchored on a reference instant (the last message of the thread)
in the mailbox's timezone, falling back to UTC.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DAY_SHORT = {"mon": 0, "tue": 1, "tues": 1, "wed": 2, "thu": 3, "thur": 3, "thurs": 3, "fri": 4, "sat": 5, "sun": 6}
MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]
MONTH_SHORT = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sept?", "oct", "nov", "dec"]

NAMED_TIMES = [
    ("noon", time(12, 0)),
    ("midday", time(12, 0)),
    ("midnight", time(0, 0)),
    ("morning", time(9, 0)),
    ("afternoon", time(14, 0)),
    ("evening", time(18, 0)),
]

_MERIDIEM_TIME = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)(?=\W|$)", re.I)
_CLOCK_TIME = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_AT_TIME = re.compile(r"(?:\bat\b|@)\s*(\d{1,2})\b(?!\s*(?:st|nd|rd|th|/))", re.I)
_NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_MONTH_DAY = [
    re.compile(rf"\b(?:{full}|{short})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\b", re.I)
    for full, short in zip(MONTH_NAMES, MONTH_SHORT)
]


@dataclass(frozen=True)
class DateResolution:
    value: Optional[datetime]
    needs_confirmation: bool
    error: Optional[str] = None


def get_zone(name: str | None) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_time_of_day(text: str) -> Optional[time]:
    """First explicit time in text: 3pm / 3:30 pm / 15:00 / at 3, then named times."""
    m = _MERIDIEM_TIME.search(text)
    if m:
        hours, minutes = int(m.group(1)), int(m.group(2) or 0)
        meridiem = m.group(3).lower().replace(".", "")
        if meridiem == "pm" and hours < 12:
            hours += 12
        if meridiem == "am" and hours == 12:
            hours = 0
        if hours < 24 and minutes < 60:
            return time(hours, minutes)
    m = _CLOCK_TIME.search(text)
    if m and int(m.group(1)) < 24 and int(m.group(2)) < 60:
        return time(int(m.group(1)), int(m.group(2)))
    m = _AT_TIME.search(text)
    if m and int(m.group(1)) < 24:
        hours = int(m.group(1))
        # "at 3" in a business email means the afternoon
        if 1 <= hours <= 7:
            hours += 12
        return time(hours, 0)
    lowered = text.lower()
    for word, value in NAMED_TIMES:
        if word in lowered:
            return value
    return None


def _on_day(day: date, text: str, zone: tzinfo) -> DateResolution:
    tod = parse_time_of_day(text)
    if tod is None:
        return DateResolution(datetime.combine(day, time(0, 0), tzinfo=zone), needs_confirmation=True)
    return DateResolution(datetime.combine(day, tod, tzinfo=zone), needs_confirmation=False)


def _weekday_offset(target: int, today: date, raw: str) -> int:
    days = target - today.weekday()
    if "next" in raw or days <= 0:
        days += 7
    return days


def _parse_iso(raw: str, zone: tzinfo) -> Optional[DateResolution]:
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    date_only = "T" not in raw and ":" not in raw
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return DateResolution(parsed, needs_confirmation=date_only)


def resolve_datetime(raw: str | None, reference: datetime, tz: str | None = None) -> DateResolution:
    """Resolve raw against reference. Unparseable input gives value None and needs_confirmation."""
    if not raw or not raw.strip():
        return DateResolution(None, needs_confirmation=False)

    zone = get_zone(tz)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    today = reference.astimezone(zone).date()

    iso = _parse_iso(raw.strip(), zone)
    if iso is not None:
        return iso

    text = raw.lower().strip()

    if "today" in text:
        return _on_day(today, text, zone)
    if "tomorrow" in text:
        return _on_day(today + timedelta(days=1), text, zone)

    for index, name in enumerate(DAY_NAMES):
        if name in text:
            return _on_day(today + timedelta(days=_weekday_offset(index, today, text)), text.replace(name, " "), zone)
    for short, index in DAY_SHORT.items():
        pattern = re.compile(rf"\b{short}\b\.?")
        if pattern.search(text):
            return _on_day(today + timedelta(days=_weekday_offset(index, today, text)), pattern.sub(" ", text), zone)

    if "next week" in text:
        return DateResolution(
            datetime.combine(today + timedelta(days=7), time(0, 0), tzinfo=zone),
            needs_confirmation=True,
        )

    for month_index, pattern in enumerate(_MONTH_DAY, start=1):
        m = pattern.search(text)
        if not m:
            continue
        day_num = int(m.group(1))
        try:
            day = date(today.year, month_index, day_num)
            if day < today:
                day = date(today.year + 1, month_index, day_num)
        except ValueError:
            return DateResolution(None, needs_confirmation=True, error=f"Invalid date: {raw!r}")
        return _on_day(day, text[: m.start()] + " " + text[m.end():], zone)

    m = _NUMERIC_DATE.search(text)
    if m:
        month_num, day_num, year_str = int(m.group(1)), int(m.group(2)), m.group(3)
        if year_str:
            year = 2000 + int(year_str) if len(year_str) == 2 else int(year_str)
        else:
            year = today.year
        try:
            day = date(year, month_num, day_num)
            if not year_str and day < today:
                day = date(year + 1, month_num, day_num)
        except ValueError:
            return DateResolution(None, needs_confirmation=True, error=f"Invalid date: {raw!r}")
        return _on_day(day, text[: m.start()] + " " + text[m.end():], zone)

    # A bare time ("3pm") refers to the reference day
    tod = parse_time_of_day(text)
    if tod is not None:
        return DateResolution(datetime.combine(today, tod, tzinfo=zone), needs_confirmation=True)

    return DateResolution(None, needs_confirmation=True, error=f"Could not parse date/time: {raw!r}")
