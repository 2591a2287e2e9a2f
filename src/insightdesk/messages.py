"""Summary: Display text for surfaced insights.

Importance: Gives each category a short title and a conversational prompt for the bubble.
Alternatives: Generate bubble copy with an LLM at delivery time.
"""

from __future__ import annotations

from insightdesk.models import Signal, SignalCategory

TITLES: dict[SignalCategory, str] = {
    SignalCategory.COMMITMENT: "Commitment reminder",
    SignalCategory.DEADLINE: "Deadline approaching",
    SignalCategory.FOLLOW_UP: "Unresolved discussion",
    SignalCategory.DEPENDENCY: "Dependency check",
    SignalCategory.CONTRADICTION: "Possible change of direction",
    SignalCategory.OPEN_QUESTION: "Open question",
    SignalCategory.PEOPLE_WAITING: "Someone is waiting",
    SignalCategory.RECURRING_PATTERN: "Recurring habit",
    SignalCategory.STALE_DECISION: "Decision worth revisiting",
    SignalCategory.CONTEXT_DECAY: "Information may be outdated",
    SignalCategory.UNFINISHED_WORK: "Unfinished work",
    SignalCategory.PATTERN_BREAK: "Routine slipped",
}

_TEMPLATES: dict[SignalCategory, str] = {
    SignalCategory.COMMITMENT: 'You mentioned "{content}". Did that happen?',
    SignalCategory.DEADLINE: 'Heads up: "{content}" is coming up.',
    SignalCategory.FOLLOW_UP: 'You were discussing "{content}". Want to revisit?',
    SignalCategory.DEPENDENCY: '"{content}" - is this still blocking?',
    SignalCategory.CONTRADICTION: 'You changed course on "{content}". Want to reconcile the two?',
    SignalCategory.OPEN_QUESTION: 'Still open: "{content}". Ready to decide?',
    SignalCategory.PEOPLE_WAITING: '"{content}" may still be waiting on you.',
    SignalCategory.RECURRING_PATTERN: 'You tend to do this regularly: "{content}".',
    SignalCategory.STALE_DECISION: '"{content}" was decided a while ago. Does it still hold?',
    SignalCategory.CONTEXT_DECAY: '"{content}" might be out of date. Worth a refresh?',
    SignalCategory.UNFINISHED_WORK: '"{content}" looked unfinished. Pick it back up?',
    SignalCategory.PATTERN_BREAK: 'Your routine slipped: "{content}". Back on track?',
}


def format_title(category: SignalCategory) -> str:
    return TITLES.get(category, "Quick note")


def format_message(signal: Signal) -> str:
    """Summary: Render the bubble message for a signal.

    Importance: Keeps user-facing copy in one place for all categories.
    Alternatives: Inline message strings in the API layer.
    """

    template = _TEMPLATES.get(signal.category)
    if template is None:
        return signal.content
    return template.format(content=signal.content)
