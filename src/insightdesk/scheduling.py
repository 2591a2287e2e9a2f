"""Summary: Surface-time scheduling for detected signals.

Importance: Decides the earliest instant each insight may interrupt the user.
Alternatives: Surface every signal immediately and rely on queue ranking alone.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from insightdesk.models import ScheduledInsight, Signal, SignalCategory

SURFACE_OFFSETS: dict[SignalCategory, timedelta] = {
    SignalCategory.CONTRADICTION: timedelta(0),
    SignalCategory.PATTERN_BREAK: timedelta(0),
    SignalCategory.RECURRING_PATTERN: timedelta(days=1),
    SignalCategory.PEOPLE_WAITING: timedelta(days=3),
    SignalCategory.COMMITMENT: timedelta(days=2),
    SignalCategory.DEPENDENCY: timedelta(days=7),
    SignalCategory.FOLLOW_UP: timedelta(days=7),
    SignalCategory.OPEN_QUESTION: timedelta(days=7),
    SignalCategory.CONTEXT_DECAY: timedelta(days=7),
    SignalCategory.UNFINISHED_WORK: timedelta(days=7),
    SignalCategory.STALE_DECISION: timedelta(days=14),
}

UNRESOLVED_DEADLINE_OFFSET = timedelta(days=1)

# How long after its surface time an undelivered insight stays worth showing.
INSIGHT_EXPIRY: dict[SignalCategory, timedelta] = {
    SignalCategory.CONTRADICTION: timedelta(hours=24),
    SignalCategory.PATTERN_BREAK: timedelta(hours=24),
    SignalCategory.DEADLINE: timedelta(hours=48),
    SignalCategory.PEOPLE_WAITING: timedelta(hours=48),
    SignalCategory.COMMITMENT: timedelta(hours=72),
    SignalCategory.RECURRING_PATTERN: timedelta(hours=72),
    SignalCategory.DEPENDENCY: timedelta(hours=168),
    SignalCategory.FOLLOW_UP: timedelta(hours=168),
    SignalCategory.OPEN_QUESTION: timedelta(hours=168),
    SignalCategory.CONTEXT_DECAY: timedelta(hours=168),
    SignalCategory.UNFINISHED_WORK: timedelta(hours=168),
    SignalCategory.STALE_DECISION: timedelta(hours=168),
}

# (days-until threshold, lead time before the deadline), largest first.
DEADLINE_LEAD_TIMES: tuple[tuple[int, timedelta], ...] = (
    (30, timedelta(days=30)),
    (7, timedelta(days=7)),
    (3, timedelta(days=3)),
    (1, timedelta(days=1)),
)


def deadline_reminder(deadline: datetime, now: datetime) -> datetime:
    """Summary: Pick the reminder instant for a resolved deadline.

    Importance: Far deadlines get an early heads-up, imminent ones surface at once.
    Alternatives: Always remind a fixed number of days before the deadline.
    """

    days_until = (deadline - now) // timedelta(days=1)
    for threshold, lead_time in DEADLINE_LEAD_TIMES:
        if days_until > threshold:
            return deadline - lead_time
    return now


def compute_surface_at(
    category: SignalCategory, detected_at: datetime, resolved_date: datetime | None
) -> datetime:
    """Summary: Compute the surface time from category, detection time, and deadline.

    Importance: Pure function shared by the queue and any offline re-scheduling.
    Alternatives: Store per-category offsets in the database.
    """

    if category is SignalCategory.DEADLINE:
        if resolved_date is None:
            return detected_at + UNRESOLVED_DEADLINE_OFFSET
        return deadline_reminder(resolved_date, detected_at)
    return detected_at + SURFACE_OFFSETS[category]


def expires_at(category: SignalCategory, surface_at: datetime) -> datetime:
    """Instant after which an undelivered insight counts as stale."""

    return surface_at + INSIGHT_EXPIRY[category]


def schedule(signal: Signal) -> ScheduledInsight:
    """Wrap a signal with its computed surface time."""

    surface_at = compute_surface_at(signal.category, signal.detected_at, signal.deadline_at)
    return ScheduledInsight(signal=signal, surface_at=surface_at)
