"""Summary: Heuristic signal detection over conversation text.

Importance: Finds commitments, deadlines, and other trackable items in a single message.
Alternatives: Use an LLM-based extractor for higher recall at higher cost.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from insightdesk.dates import WEEKDAY_NAMES, parse_absolute_date, parse_relative_date
from insightdesk.models import DeadlineKind, Signal, SignalCategory

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.70
MAX_CONFIDENCE = 0.95
DEDUP_KEY_LENGTH = 30
CONTEXT_RADIUS = 100

DEADLINE_PRIORITIES = {
    DeadlineKind.ABSOLUTE: 8,
    DeadlineKind.RELATIVE: 7,
    DeadlineKind.EVENT: 6,
    DeadlineKind.UNRESOLVED: 6,
}

_FLAGS = re.IGNORECASE
_APOS = "['’]"
_WEEKDAYS = "|".join(WEEKDAY_NAMES)
_MONTHS = "january|february|march|april|may|june|july|august|september|october|november|december"
# Capitalized word that is not a pronoun, used for people's names.
_NAME = r"(?!(?-i:We|They|You|It|He|She|This|That|The|I)\b)(?-i:[A-Z])\w+"
_END = r"(?:[.,!?;]|$)"


@dataclass(frozen=True)
class PatternRule:
    """Summary: One compiled pattern plus how its matches are interpreted.

    Importance: Lets deadline rules carry their date kind alongside the regex.
    Alternatives: Keep parallel lists of patterns and kinds.
    """

    regex: re.Pattern[str]
    deadline_kind: DeadlineKind | None = None


@dataclass(frozen=True)
class CategoryRules:
    """Summary: Data describing how one signal category is detected and weighted.

    Importance: Keeps every category in one shared scoring and dedup pipeline.
    Alternatives: Implement a detector subclass per category.
    """

    category: SignalCategory
    patterns: tuple[PatternRule, ...]
    base_priority: int
    min_confidence: float | None
    min_length: int = 3
    max_length: int = 100
    denylist: frozenset[str] = frozenset()
    boost_pattern: re.Pattern[str] | None = None
    boost: float = 0.0


def _rules(*patterns: str, kind: DeadlineKind | None = None) -> tuple[PatternRule, ...]:
    return tuple(PatternRule(re.compile(pattern, _FLAGS), kind) for pattern in patterns)


RULES: dict[SignalCategory, CategoryRules] = {
    SignalCategory.COMMITMENT: CategoryRules(
        category=SignalCategory.COMMITMENT,
        patterns=_rules(
            rf"\bi{_APOS}ll\s+(?:definitely\s+)?(?:be\s+)?(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+need\s+to\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+should\s+(?:probably\s+)?(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi{_APOS}m\s+going\s+to\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\blet\s+me\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+have\s+to\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+must\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+promised\s+(?:to\s+)?(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi\s+committed\s+to\s+(\w[\w\s]{{5,60}}?){_END}",
            rf"\bi{_APOS}ll\s+get\s+back\s+to\s+(\w+)",
            rf"\bi{_APOS}ll\s+send\s+(?:\w+\s+)?(\w[\w\s]{{5,60}}?){_END}",
        ),
        base_priority=6,
        min_confidence=0.70,
        min_length=5,
        denylist=frozenset({"know", "see", "check", "look", "think", "try"}),
        boost_pattern=re.compile(rf"\b(?:i|we){_APOS}(?:ll|m|re|ve|d)\b", _FLAGS),
        boost=0.10,
    ),
    SignalCategory.DEADLINE: CategoryRules(
        category=SignalCategory.DEADLINE,
        patterns=_rules(
            rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?\b",
            r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b",
            r"\b\d{4}-\d{2}-\d{2}\b",
            kind=DeadlineKind.ABSOLUTE,
        )
        + _rules(
            rf"\bby\s+(?:{_WEEKDAYS})\b",
            r"\bby\s+(?:tomorrow|next\s+week|end\s+of\s+(?:the\s+)?(?:week|month|quarter|year))\b",
            r"\b(?:in|within)\s+\d+\s+(?:days?|weeks?|months?)\b",
            rf"\b(?:next|this)\s+(?:week|month|quarter|{_WEEKDAYS})\b",
            r"\b(?:by|in|before|during|for)\s+q[1-4](?:\s+\d{4})?\b",
            kind=DeadlineKind.RELATIVE,
        )
        + _rules(
            r"\bbefore\s+(?:the\s+)?(\w+\s+meeting|\w+\s+launch|\w+\s+deadline)\b",
            r"\bafter\s+(?:the\s+)?(\w+\s+meeting|\w+\s+launch|\w+\s+review)\b",
            kind=DeadlineKind.EVENT,
        ),
        base_priority=6,
        min_confidence=None,
        boost_pattern=re.compile(r"\d"),
        boost=0.10,
    ),
    SignalCategory.FOLLOW_UP: CategoryRules(
        category=SignalCategory.FOLLOW_UP,
        patterns=_rules(
            r"\bshould\s+(?:we|i)\s+(\w[\w\s]{5,60}?)\?",
            r"\bwhat\s+if\s+(?:we|i)\s+(\w[\w\s]{5,60}?)\?",
            r"\bhow\s+(?:do|should)\s+(?:we|i)\s+(\w[\w\s]{5,60}?)\?",
            rf"\blet{_APOS}s\s+think\s+about\s+(?:that|this)\b",
            rf"\bwe{_APOS}ll\s+figure\s+(?:that|this)\s+out\b",
            r"\bneed\s+to\s+decide\s+(?:on|about)\s+(\w[\w\s]{5,40}?)\b",
            r"\bstill\s+need\s+to\s+(?:figure\s+out|decide|determine)\s+(\w[\w\s]{5,40}?)\b",
        ),
        base_priority=5,
        min_confidence=0.65,
    ),
    SignalCategory.DEPENDENCY: CategoryRules(
        category=SignalCategory.DEPENDENCY,
        patterns=_rules(
            r"\bonce\s+(?:the\s+)?(\w[\w\s]{5,40}?)\s+is\s+(?:done|complete|finished|ready)\b",
            r"\bafter\s+(?:we|i)\s+(\w[\w\s]{5,40}?)\b",
            r"\bwhen\s+(?:the\s+)?(\w[\w\s]{5,40}?)\s+(?:is|happens|arrives)\b",
            r"\bblocked\s+(?:by|on)\s+(\w[\w\s]{5,40}?)\b",
            r"\bwaiting\s+(?:on|for)\s+(\w[\w\s]{5,40}?)\b",
            r"\bdepends\s+on\s+(\w[\w\s]{5,40}?)\b",
            rf"\bcan{_APOS}?t\s+(?:do|start|begin|ship|finish)\s+(?:\w+\s+){{0,3}}?until\s+(\w[\w\s]{{5,40}}?)\b",
            r"\bfirst\s+(?:we\s+)?need\s+to\s+(\w[\w\s]{5,40}?)\b",
        ),
        base_priority=6,
        min_confidence=0.70,
        boost_pattern=re.compile(r"\bblocked\b", _FLAGS),
        boost=0.15,
    ),
    SignalCategory.CONTRADICTION: CategoryRules(
        category=SignalCategory.CONTRADICTION,
        patterns=_rules(
            rf"\bactually,?\s+i\s+meant\b(?:\s+(\w[\w\s]{{2,60}}?){_END})?",
            rf"\bwait,?\s+i\s+thought\s+(\w[\w\s]{{3,60}}?){_END}",
            rf"\bi(?:{_APOS}ve)?\s+changed\s+my\s+mind\b(?:\s+(?:about|on)\s+(\w[\w\s]{{2,60}}?){_END})?",
            r"\bscratch\s+that\b",
            r"\bon\s+second\s+thought\b",
            rf"\blet{_APOS}s\s+(?:go\s+with|use|do|try)\s+(\w[\w\s]{{2,60}}?)\s+instead\b",
            rf"\bthat{_APOS}s\s+not\s+what\s+(?:i|we)\s+(?:said|meant|agreed)\b",
            r"\bcorrection:\s*(\w[\w\s]{2,60}?)(?:[.!?]|$)",
        ),
        base_priority=8,
        min_confidence=0.65,
    ),
    SignalCategory.OPEN_QUESTION: CategoryRules(
        category=SignalCategory.OPEN_QUESTION,
        patterns=_rules(
            r"\bshould\s+(?:we|i)\s+(\w[\w\s]{3,80}?)\?",
            r"\b(which\s+(?:option|approach|one|way|tool|version|plan)\b[\w\s]{3,80}?)\?",
            rf"\b(?:let{_APOS}s\s+)?decide\s+(?:on\s+)?(?:that|this|it)\s+later\b",
            rf"\b(?:need|have)\s+to\s+(?:research|investigate|look\s+into)\s+(\w[\w\s]{{3,60}}?){_END}",
            rf"\b(?:not\s+sure|unsure)\s+(?:whether|if|about)\s+(\w[\w\s]{{3,60}}?){_END}",
            rf"\bopen\s+question\b[:\s]+(\w[\w\s]{{3,60}}?){_END}",
        ),
        base_priority=5,
        min_confidence=0.65,
    ),
    SignalCategory.PEOPLE_WAITING: CategoryRules(
        category=SignalCategory.PEOPLE_WAITING,
        patterns=_rules(
            rf"\b(?:get|write)\s+back\s+to\s+({_NAME})",
            rf"\b(?:respond|reply|answer)\s+to\s+({_NAME})",
            rf"\b({_NAME}\s+(?:is|has\s+been)\s+(?:still\s+)?waiting\s+(?:for|on)\s+\w[\w\s]{{2,60}}?){_END}",
            rf"\bi\s+owe\s+({_NAME}\s+\w[\w\s-]{{2,60}}?){_END}",
            rf"\b(i\s+told\s+{_NAME}\s+(?:i{_APOS}d|i\s+would|i{_APOS}ll|i\s+will|we{_APOS}d|that)\s+\w[\w\s]{{2,60}}?){_END}",
            rf"\b(?:promised|owe)\s+({_NAME})\s+(?:a\s+)?(?:reply|response|answer|update)\b",
        ),
        base_priority=7,
        min_confidence=0.65,
    ),
    SignalCategory.RECURRING_PATTERN: CategoryRules(
        category=SignalCategory.RECURRING_PATTERN,
        patterns=_rules(
            rf"\b(?:every|each)\s+(?:other\s+)?(?:day|morning|evening|night|week|month|quarter|year|{_WEEKDAYS})\b",
            rf"\b(usually\s+\w[\w\s]{{2,60}}?\s+on\s+(?:{_WEEKDAYS})s?)\b",
            rf"\bi\s+always\s+(\w[\w\s]{{3,60}}?){_END}",
            r"\b(?:weekly|monthly|daily|quarterly|biweekly)\s+(?:\w+\s+)?(?:meeting|review|sync|call|report|standup|check-?in|retro)s?\b",
            r"\bonce\s+a\s+(?:day|week|month|quarter|year)\b",
        ),
        base_priority=4,
        min_confidence=0.60,
    ),
    SignalCategory.STALE_DECISION: CategoryRules(
        category=SignalCategory.STALE_DECISION,
        patterns=_rules(
            rf"\b(we\s+(?:decided|agreed|chose|picked|settled)\s+(?:on\s+)?(?:\w+\s+){{0,3}}?(?:weeks|months|years|a\s+while|a\s+long\s+time)\s+ago\b[\w\s]{{0,60}}?){_END}",
            rf"\bback\s+when\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\boriginally,?\s+(?:we|i)\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\bthings\s+have\s+changed\b(?:\s+since\s+(\w[\w\s]{{2,60}}?){_END})?",
            rf"\bwhen\s+we\s+first\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\bthe\s+original\s+plan\s+was\s+(?:to\s+)?(\w[\w\s]{{2,60}}?){_END}",
        ),
        base_priority=5,
        min_confidence=0.60,
    ),
    SignalCategory.CONTEXT_DECAY: CategoryRules(
        category=SignalCategory.CONTEXT_DECAY,
        patterns=_rules(
            r"\blast\s+time\s+i\s+(?:checked|looked|heard|saw)\b",
            rf"\bas\s+of\s+(?:last\s+)?(?:{_MONTHS}|week|month|quarter|year)(?:\s+\d{{4}})?\b",
            rf"\b(?:haven{_APOS}t|have\s+not|hasn{_APOS}t|has\s+not)\s+(?:been\s+)?updated\s+(\w[\w\s]{{2,60}}?)(?:\s+in\s+(?:a\s+while|ages|months|weeks|years)|[.,!?;]|$)",
            r"\b(?:is|are|was|were)\s+from\s+last\s+(?:week|month|quarter|year)\b",
            r"\b(?:might|may|could)\s+be\s+(?:outdated|out\s+of\s+date|stale)\b",
        ),
        base_priority=4,
        min_confidence=0.60,
    ),
    SignalCategory.UNFINISHED_WORK: CategoryRules(
        category=SignalCategory.UNFINISHED_WORK,
        patterns=_rules(
            rf"\b(?-i:TODO|FIXME)\b:?\s*(\w[\w\s]{{2,80}}?){_END}",
            r"\b((?:the\s+)?\w+(?:\s+\w+)?\s+(?:is|are)\s+(?:still\s+)?(?:a\s+)?(?-i:WIP))\b",
            r"\b(\w[\w\s]{2,40}?\s+(?:is|are)\s+not\s+(?:finished|done|complete|completed|ready)(?:\s+yet)?)\b",
            rf"\bstill\s+working\s+on\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\bneed\s+to\s+finish\s+(\w[\w\s]{{2,60}}?){_END}",
            r"\b((?:the\s+)?\w+(?:\s+\w+)?\s+draft)\b",
            rf"\bleft\s+off\s+(?:at|on|with)\s+(\w[\w\s]{{2,60}}?){_END}",
            r"\b(?:half[-\s]done|partially\s+(?:done|finished|complete))\b",
        ),
        base_priority=6,
        min_confidence=0.65,
    ),
    SignalCategory.PATTERN_BREAK: CategoryRules(
        category=SignalCategory.PATTERN_BREAK,
        patterns=_rules(
            rf"\bi\s+forgot\s+to\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\bi\s+(?:missed|skipped)\s+(\w[\w\s]{{2,60}}?){_END}",
            rf"\bi\s+(?:haven{_APOS}t|have\s+not)\s+(\w[\w\s]{{2,60}}?)\s+(?:lately|recently|in\s+a\s+while|in\s+ages|in\s+(?:days|weeks|months))\b",
            rf"\b(?:normally|usually),?\s+i(?:\s+would|{_APOS}d)\s+(\w[\w\s]{{2,60}}?){_END}",
            r"\bbroke\s+(?:my|the)\s+streak\b",
            rf"\bfell\s+off\s+(?:my\s+|the\s+)?(\w[\w\s]{{2,60}}?){_END}",
        ),
        base_priority=7,
        min_confidence=0.65,
    ),
}


def detect(
    text: str,
    source_conversation_id: str = "",
    source_message_id: str | None = None,
    now: datetime | None = None,
) -> list[Signal]:
    """Summary: Run every category's rules over one message.

    Importance: Single entry point used after each completed exchange.
    Alternatives: Run only the categories enabled for a workspace.
    """

    detected_at = now or datetime.now(timezone.utc)
    signals: list[Signal] = []
    for category in SignalCategory:
        try:
            signals.extend(
                detect_category(
                    category,
                    text,
                    source_conversation_id=source_conversation_id,
                    source_message_id=source_message_id,
                    now=detected_at,
                )
            )
        except Exception:
            logger.exception("Detection failed for category %s.", category.value)
    return signals


def detect_category(
    category: SignalCategory,
    text: str,
    source_conversation_id: str = "",
    source_message_id: str | None = None,
    now: datetime | None = None,
) -> list[Signal]:
    """Summary: Run one category's rules and return its deduplicated signals.

    Importance: Keeps categories independent so one failure cannot hide another.
    Alternatives: Combine all patterns into one alternation.
    """

    rules = RULES[category]
    detected_at = now or datetime.now(timezone.utc)
    signals: list[Signal] = []
    for rule in rules.patterns:
        for match in rule.regex.finditer(text):
            signal = _build_signal(
                rules, rule, match, text, detected_at, source_conversation_id, source_message_id
            )
            if signal is not None:
                signals.append(signal)
    return deduplicate(signals)


def calculate_confidence(rules: CategoryRules, content: str, matched_text: str) -> float:
    """Summary: Score a match by specificity and category-specific markers.

    Importance: Lets weak matches be gated out before they reach the queue.
    Alternatives: Use a fixed confidence per pattern.
    """

    confidence = BASE_CONFIDENCE
    if len(content) > 20:
        confidence += 0.10
    if len(content) > 40:
        confidence += 0.05
    if rules.boost_pattern is not None and rules.boost_pattern.search(matched_text):
        confidence += rules.boost
    return round(min(MAX_CONFIDENCE, confidence), 2)


def deduplicate(signals: list[Signal]) -> list[Signal]:
    """Collapse signals sharing a lower-cased 30-character content prefix."""

    seen: set[str] = set()
    unique: list[Signal] = []
    for signal in signals:
        key = dedup_key(signal.content)
        if key in seen:
            continue
        seen.add(key)
        unique.append(signal)
    return unique


def dedup_key(content: str) -> str:
    return content.lower()[:DEDUP_KEY_LENGTH]


def extract_context(text: str, index: int, radius: int = CONTEXT_RADIUS) -> str:
    """Summary: Return text around a match, marking truncated edges with ellipses.

    Importance: Gives the expanded bubble enough surrounding text to be useful.
    Alternatives: Store the whole message alongside every signal.
    """

    start = max(0, index - radius)
    end = min(len(text), index + radius)
    context = text[start:end]
    if start > 0:
        context = "..." + context
    if end < len(text):
        context = context + "..."
    return context.strip()


def _build_signal(
    rules: CategoryRules,
    rule: PatternRule,
    match: re.Match[str],
    text: str,
    detected_at: datetime,
    source_conversation_id: str,
    source_message_id: str | None,
) -> Signal | None:
    captured = match.group(1) if match.re.groups and match.group(1) else None
    content = (captured or match.group(0)).strip()
    if not rules.min_length <= len(content) <= rules.max_length:
        return None
    if content.lower() in rules.denylist:
        return None

    confidence = calculate_confidence(rules, content, match.group(0))
    if rules.min_confidence is not None and confidence < rules.min_confidence:
        return None

    base_priority = rules.base_priority
    deadline_at = None
    deadline_kind = None
    if rule.deadline_kind is not None:
        deadline_at, deadline_kind = _interpret_deadline(rule.deadline_kind, content, detected_at)
        base_priority = DEADLINE_PRIORITIES[deadline_kind]

    return Signal(
        category=rules.category,
        content=content,
        context_snippet=extract_context(text, match.start()),
        source_conversation_id=source_conversation_id,
        source_message_id=source_message_id,
        detected_at=detected_at,
        confidence=confidence,
        base_priority=base_priority,
        deadline_at=deadline_at,
        deadline_kind=deadline_kind,
    )


def _interpret_deadline(
    kind: DeadlineKind, content: str, now: datetime
) -> tuple[datetime | None, DeadlineKind]:
    if kind is DeadlineKind.EVENT:
        return None, DeadlineKind.EVENT
    try:
        if kind is DeadlineKind.ABSOLUTE:
            resolved = parse_absolute_date(content, now)
        else:
            resolved = parse_relative_date(content, now)
    except (ValueError, OverflowError):
        logger.warning("Could not resolve deadline text %r.", content)
        resolved = None
    if resolved is None:
        return None, DeadlineKind.UNRESOLVED
    return resolved, kind
