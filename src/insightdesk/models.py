"""Summary: Domain model dataclasses for InsightDesk.

Importance: Defines the core entities shared across detection, scheduling, and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SignalCategory(str, Enum):
    """Summary: The fixed set of signal categories a detector can emit.

    Importance: Keeps category tags stable across storage, scheduling, and the API.
    Alternatives: Use free-form strings validated at the edges.
    """

    COMMITMENT = "commitment"
    DEADLINE = "deadline"
    FOLLOW_UP = "follow_up"
    DEPENDENCY = "dependency"
    CONTRADICTION = "contradiction"
    OPEN_QUESTION = "open_question"
    PEOPLE_WAITING = "people_waiting"
    RECURRING_PATTERN = "recurring_pattern"
    STALE_DECISION = "stale_decision"
    CONTEXT_DECAY = "context_decay"
    UNFINISHED_WORK = "unfinished_work"
    PATTERN_BREAK = "pattern_break"


class DeadlineKind(str, Enum):
    """How a deadline phrase was interpreted."""

    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    EVENT = "event"
    UNRESOLVED = "unresolved"


class Resolution(str, Enum):
    """Summary: Outcomes recorded against a queued insight.

    Importance: Separates the non-terminal delivered marker from terminal outcomes.
    Alternatives: Track a single status column with free-form values.
    """

    DELIVERED = "delivered"
    DISMISSED = "dismissed"
    ENGAGED = "engaged"

    @property
    def terminal(self) -> bool:
        return self is not Resolution.DELIVERED


class DeliveryTrigger(str, Enum):
    """When a queued insight is meant to be offered."""

    IDLE = "idle"
    SESSION_START = "session_start"


class EngagementLevel(str, Enum):
    """Coarse classification of how intensely the user is interacting."""

    DEEP = "deep"
    ACTIVE = "active"
    IDLE = "idle"
    AWAY = "away"


class BubbleState(str, Enum):
    """States of the client-resident delivery bubble."""

    HIDDEN = "hidden"
    IDLE = "idle"
    HOLDING = "holding"
    EXPANDED = "expanded"
    CONNECTED = "connected"


class BubbleMode(str, Enum):
    """Summary: Workspace-level switch for proactive delivery.

    Importance: Quiet mode keeps only high-priority insights; off disables delivery.
    Alternatives: A single enabled flag.
    """

    ON = "on"
    OFF = "off"
    QUIET = "quiet"


@dataclass(frozen=True)
class DeliveryPreferences:
    """Summary: Opt-in throttles applied on top of queue eligibility.

    Importance: Lets a workspace cap interruptions without changing the default
    queue semantics; every field defaults to no restriction.
    Alternatives: Hardcode an interrupt budget for every workspace.
    """

    bubble_mode: BubbleMode = BubbleMode.ON
    max_per_hour: int = 0
    max_per_session: int = 0
    min_interval_minutes: int = 0
    muted_categories: frozenset[SignalCategory] = frozenset()
    expire_stale: bool = False
    refuse_deep_engagement: bool = False


@dataclass(frozen=True)
class Workspace:
    """Summary: Represents a workspace (tenant) that owns queued insights.

    Importance: Scopes every queue read and write to a single tenant boundary.
    Alternatives: Scope insights by user only.
    """

    name: str
    slug: str


@dataclass(frozen=True)
class Signal:
    """Summary: A candidate extraction from one message.

    Importance: The unit produced by detection and consumed by scheduling.
    Alternatives: Emit raw regex matches and classify them later.
    """

    category: SignalCategory
    content: str
    context_snippet: str
    source_conversation_id: str
    detected_at: datetime
    confidence: float
    base_priority: int
    source_message_id: str | None = None
    deadline_at: datetime | None = None
    deadline_kind: DeadlineKind | None = None


@dataclass(frozen=True)
class ScheduledInsight:
    """Summary: A signal annotated with its earliest delivery instant.

    Importance: Carries the scheduler's decision into the queue.
    Alternatives: Compute surface times lazily at retrieval.
    """

    signal: Signal
    surface_at: datetime
    resolved: bool = False
    resolved_at: datetime | None = None
    resolution: Resolution | None = None


@dataclass(frozen=True)
class FeedbackEvent:
    """Summary: Telemetry record mirroring a queue resolution.

    Importance: Feeds external analytics without coupling them to the queue.
    Alternatives: Log resolutions only in application logs.
    """

    workspace_id: int
    entry_id: int
    outcome: Resolution
    category: SignalCategory
    recorded_at: datetime
    context_tags: list[str] = field(default_factory=list)
