"""Summary: Tests for deadline phrase resolution.

Importance: Ensures absolute and relative dates map to the instants reminders depend on.
Alternatives: Trust a third-party natural-language date parser.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from insightdesk.dates import parse_absolute_date, parse_relative_date, resolve_deadline
from insightdesk.models import DeadlineKind

# A Wednesday.
NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _day(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("text", "now", "expected"),
    [
        ("2025-07-04", NOW, _day(2025, 7, 4)),
        ("January 15, 2026", NOW, _day(2026, 1, 15)),
        ("march 5th", NOW, _day(2025, 3, 5)),
        ("March 5th", datetime(2025, 6, 1, tzinfo=timezone.utc), _day(2026, 3, 5)),
        ("12/27", NOW, _day(2025, 12, 27)),
        ("12/27/25", NOW, _day(2025, 12, 27)),
        ("1/2/2026", NOW, _day(2026, 1, 2)),
        ("January 1", NOW, _day(2025, 1, 1)),
    ],
)
def test_parse_absolute_date(text: str, now: datetime, expected: datetime) -> None:
    assert parse_absolute_date(text, now) == expected


@pytest.mark.parametrize("text", ["13/45", "February 30", "4/5/202", "no date here"])
def test_parse_absolute_date_rejects_invalid(text: str) -> None:
    assert parse_absolute_date(text, NOW) is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("by tomorrow", NOW + timedelta(days=1)),
        ("in 3 days", NOW + timedelta(days=3)),
        ("within 2 weeks", NOW + timedelta(weeks=2)),
        ("in 2 months", NOW.replace(month=3)),
        ("next week", NOW + timedelta(days=7)),
        ("by end of the week", NOW.replace(day=5)),
        ("this month", NOW.replace(day=31)),
        ("next month", NOW.replace(month=2)),
        ("by end of quarter", NOW.replace(month=3, day=31)),
        ("next quarter", NOW.replace(month=6, day=30)),
        ("by Q3", NOW.replace(month=9, day=30)),
        ("in Q2 2026", NOW.replace(year=2026, month=6, day=30)),
        ("by end of year", NOW.replace(month=12, day=31)),
        ("by Friday", NOW.replace(day=3)),
        ("next Wednesday", NOW.replace(day=8)),
    ],
)
def test_parse_relative_date(text: str, expected: datetime) -> None:
    assert parse_relative_date(text, NOW) == expected


def test_past_quarter_rolls_to_next_year() -> None:
    now = datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert parse_relative_date("by Q1", now) == datetime(2026, 3, 31, tzinfo=timezone.utc)


def test_end_of_week_on_sunday_uses_following_sunday() -> None:
    sunday = datetime(2025, 1, 5, tzinfo=timezone.utc)
    assert parse_relative_date("end of week", sunday) == datetime(2025, 1, 12, tzinfo=timezone.utc)


def test_add_months_clamps_day() -> None:
    now = datetime(2025, 1, 31, tzinfo=timezone.utc)
    assert parse_relative_date("next month", now) == datetime(2025, 2, 28, tzinfo=timezone.utc)


def test_resolve_deadline_reports_kind() -> None:
    assert resolve_deadline("due 2025-03-01", NOW) == (_day(2025, 3, 1), DeadlineKind.ABSOLUTE)
    assert resolve_deadline("by tomorrow", NOW) == (NOW + timedelta(days=1), DeadlineKind.RELATIVE)
    assert resolve_deadline("after the launch review", NOW) == (None, DeadlineKind.UNRESOLVED)
