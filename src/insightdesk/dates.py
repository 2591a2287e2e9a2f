"""Summary: Deadline phrase resolution for detected signals.

Importance: Turns absolute and relative date text into concrete instants for scheduling.
Alternatives: Use a natural-language date library such as dateparser.
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta

from insightdesk.models import DeadlineKind

MONTH_NAMES = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]
WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_MONTH_DAY = re.compile(
    r"\b(" + "|".join(MONTH_NAMES) + r")\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}))?\b",
    re.IGNORECASE,
)
_SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_IN_N_UNITS = re.compile(r"\b(?:in|within)\s+(\d+)\s+(day|week|month)s?\b", re.IGNORECASE)
_QUARTER = re.compile(r"\bq([1-4])(?:\s*(\d{4}))?\b", re.IGNORECASE)


def parse_absolute_date(text: str, now: datetime) -> datetime | None:
    """Summary: Parse an explicit calendar date from text.

    Importance: Absolute dates earn the highest deadline priority and exact reminders.
    Alternatives: Delegate to dateutil.parser with fuzzy matching.
    """

    iso = _ISO_DATE.search(text)
    if iso:
        return _build_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)), now)

    named = _MONTH_DAY.search(text)
    if named:
        month = MONTH_NAMES.index(named.group(1).lower()) + 1
        day = int(named.group(2))
        if named.group(3):
            return _build_date(int(named.group(3)), month, day, now)
        return _roll_forward(month, day, now)

    slashed = _SLASH_DATE.search(text)
    if slashed:
        month = int(slashed.group(1))
        day = int(slashed.group(2))
        year_text = slashed.group(3)
        if year_text is None:
            return _roll_forward(month, day, now)
        if len(year_text) == 2:
            return _build_date(2000 + int(year_text), month, day, now)
        if len(year_text) == 4:
            return _build_date(int(year_text), month, day, now)
        return None

    return None


def parse_relative_date(text: str, now: datetime) -> datetime | None:
    """Summary: Resolve a relative deadline phrase against the current instant.

    Importance: Covers the common way people talk about due dates in conversation.
    Alternatives: Ask the user to confirm every relative date.
    """

    lower = text.lower()

    if "tomorrow" in lower:
        return now + timedelta(days=1)

    counted = _IN_N_UNITS.search(lower)
    if counted:
        amount = int(counted.group(1))
        unit = counted.group(2)
        if unit == "day":
            return now + timedelta(days=amount)
        if unit == "week":
            return now + timedelta(weeks=amount)
        return _add_months(now, amount)

    if "week" in lower:
        if "next" in lower:
            return now + timedelta(days=7)
        return _end_of_week(now)

    if "month" in lower:
        if "next" in lower:
            return _add_months(now, 1)
        return now.replace(day=calendar.monthrange(now.year, now.month)[1])

    if "quarter" in lower:
        quarter = (now.month - 1) // 3 + 1
        if "next" in lower:
            quarter += 1
        return _end_of_quarter(now, quarter)

    quarter_match = _QUARTER.search(lower)
    if quarter_match:
        quarter = int(quarter_match.group(1))
        if quarter_match.group(2):
            return _end_of_quarter(now, quarter, year=int(quarter_match.group(2)))
        candidate = _end_of_quarter(now, quarter)
        if candidate.date() < now.date():
            candidate = _end_of_quarter(now, quarter, year=now.year + 1)
        return candidate

    if "year" in lower:
        if "next" in lower:
            return now.replace(year=now.year + 1, month=12, day=31)
        return now.replace(month=12, day=31)

    for index, name in enumerate(WEEKDAY_NAMES):
        if name in lower:
            days_until = index - now.weekday()
            if days_until <= 0:
                days_until += 7
            return now + timedelta(days=days_until)

    return None


def resolve_deadline(text: str, now: datetime) -> tuple[datetime | None, DeadlineKind]:
    """Summary: Resolve any deadline phrase and report how it was interpreted.

    Importance: Lets callers outside the detector reuse the same date semantics.
    Alternatives: Expose the two parsers only.
    """

    absolute = parse_absolute_date(text, now)
    if absolute is not None:
        return absolute, DeadlineKind.ABSOLUTE
    relative = parse_relative_date(text, now)
    if relative is not None:
        return relative, DeadlineKind.RELATIVE
    return None, DeadlineKind.UNRESOLVED


def _build_date(year: int, month: int, day: int, now: datetime) -> datetime | None:
    try:
        return datetime(year, month, day, tzinfo=now.tzinfo)
    except ValueError:
        return None


def _roll_forward(month: int, day: int, now: datetime) -> datetime | None:
    """Assume the current year, moving to next year when the date has passed."""

    candidate = _build_date(now.year, month, day, now)
    if candidate is None:
        return None
    if candidate.date() < now.date():
        return _build_date(now.year + 1, month, day, now)
    return candidate


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _end_of_week(moment: datetime) -> datetime:
    # Sunday closes the week; on a Sunday the next one is used.
    days_until_sunday = 6 - moment.weekday()
    if days_until_sunday == 0:
        days_until_sunday = 7
    return moment + timedelta(days=days_until_sunday)


def _end_of_quarter(moment: datetime, quarter: int, year: int | None = None) -> datetime:
    year = (moment.year if year is None else year) + (quarter - 1) // 4
    quarter = (quarter - 1) % 4 + 1
    month = quarter * 3
    return moment.replace(year=year, month=month, day=calendar.monthrange(year, month)[1])
