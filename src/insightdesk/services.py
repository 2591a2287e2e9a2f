"""Summary: Core application services for InsightDesk.

Importance: Orchestrates detection, scheduling, queueing, and feedback for each workspace.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from insightdesk.detection import dedup_key, detect
from insightdesk.messages import format_message, format_title
from insightdesk.models import (
    BubbleMode,
    DeliveryPreferences,
    DeliveryTrigger,
    EngagementLevel,
    FeedbackEvent,
    Resolution,
    ScheduledInsight,
    Signal,
    Workspace,
)
from insightdesk.scheduling import expires_at, schedule
from insightdesk.storage.sqlite_store import (
    NewInsight,
    SqliteStore,
    StoredInsight,
    StoredWorkspace,
    to_timestamp,
)
from insightdesk.telemetry import TelemetrySink

logger = logging.getLogger(__name__)

# Confidence may move a score at most this far from its base priority.
PRIORITY_SPREAD = 0.45
QUIET_MIN_PRIORITY = 7


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calculate_priority(base_priority: int, confidence: float) -> float:
    """Summary: Blend a category base priority with detection confidence.

    Importance: Gives dashboards a single sortable score while keeping the
    category table authoritative; confidence only nudges within one step.
    Alternatives: Multiply base priority by confidence.
    """

    clamped = min(max(confidence, 0.0), 1.0)
    score = base_priority - PRIORITY_SPREAD + 2 * PRIORITY_SPREAD * clamped
    return round(min(max(score, 1.0), 10.0), 3)


def build_expanded_content(signal: Signal) -> str:
    """Summary: Compose the text revealed when a held insight is expanded.

    Importance: Gives the user the surrounding conversation before deciding.
    Alternatives: Store only the matched span.
    """

    lines = [format_message(signal), "", f"Context: {signal.context_snippet}"]
    if signal.deadline_at is not None:
        lines.append(f"Deadline: {signal.deadline_at.date().isoformat()}")
    if signal.source_conversation_id:
        lines.append(f"Conversation: {signal.source_conversation_id}")
    return "\n".join(lines)


@dataclass(frozen=True)
class WorkspaceService:
    """Summary: Manages workspace records.

    Importance: Provides the tenant boundary every queue call is scoped to.
    Alternatives: Rely on workspace records owned by the host product.
    """

    store: SqliteStore

    def create_workspace(self, name: str, slug: str) -> int:
        """Summary: Create or ensure a workspace exists.

        Importance: Lets integrations register tenants idempotently.
        Alternatives: Require workspaces to be provisioned out of band.
        """

        if not slug.strip():
            raise ValueError("Workspace slug must not be empty")
        return self.store.ensure_workspace(Workspace(name=name.strip() or slug, slug=slug.strip()))

    def list_workspaces(self) -> list[StoredWorkspace]:
        return self.store.list_workspaces()

    def require_workspace(self, workspace_id: int) -> StoredWorkspace:
        workspace = self.store.get_workspace(workspace_id)
        if workspace is None:
            raise ValueError(f"Unknown workspace: {workspace_id}")
        return workspace


@dataclass(frozen=True)
class InsightQueueService:
    """Summary: Per-workspace queue of scheduled insights.

    Importance: Decides which insight, if any, a client may surface right now.
    Alternatives: Push every insight to the client and rank there.
    """

    store: SqliteStore
    telemetry: TelemetrySink | None = None
    default_min_idle_seconds: int = 30
    clock: Callable[[], datetime] = field(default=utc_now)
    default_preferences: DeliveryPreferences = field(default_factory=DeliveryPreferences)

    def enqueue(
        self,
        workspace_id: int,
        scheduled: ScheduledInsight,
        delivery_trigger: DeliveryTrigger = DeliveryTrigger.IDLE,
        min_idle_seconds: int | None = None,
        context_tags: list[str] | None = None,
        expanded_content: str | None = None,
    ) -> int:
        """Summary: Persist a scheduled insight as a queue entry.

        Importance: Entry point for detection output; entries are never deleted.
        Alternatives: Keep the queue in memory per session.
        """

        if self.store.get_workspace(workspace_id) is None:
            raise ValueError(f"Unknown workspace: {workspace_id}")
        signal = scheduled.signal
        tags = list(context_tags) if context_tags is not None else [signal.category.value]
        insight = NewInsight(
            workspace_id=workspace_id,
            scheduled=scheduled,
            priority_score=calculate_priority(signal.base_priority, signal.confidence),
            delivery_trigger=delivery_trigger,
            min_idle_seconds=(
                self.default_min_idle_seconds if min_idle_seconds is None else min_idle_seconds
            ),
            context_tags=tags,
            expanded_content=(
                expanded_content if expanded_content is not None else build_expanded_content(signal)
            ),
            title=format_title(signal.category),
            message=format_message(signal),
            dedup_key=dedup_key(signal.content),
            expires_at=expires_at(signal.category, scheduled.surface_at),
        )
        entry_id = self.store.add_insight(insight)
        logger.info(
            "Queued %s insight %s for workspace %s (surface at %s)",
            signal.category.value,
            entry_id,
            workspace_id,
            scheduled.surface_at.isoformat(),
        )
        return entry_id

    def next_eligible(
        self,
        workspace_id: int,
        now: datetime | None = None,
        idle_seconds: float = 0,
        engagement_level: EngagementLevel | None = None,
        focus_mode_active: bool = False,
    ) -> StoredInsight | None:
        """Summary: Return the top eligible entry and mark it delivered.

        Importance: Selection and the delivered marker commit together.
        Alternatives: Let the client call resolve(delivered) separately.
        """

        entry = self._select(
            workspace_id, now, idle_seconds, engagement_level, focus_mode_active, mark_delivered=True
        )
        if entry is not None:
            logger.info(
                "Delivering insight %s to workspace %s (engagement=%s)",
                entry.id,
                workspace_id,
                engagement_level.value if engagement_level else "unknown",
            )
        return entry

    def peek(
        self,
        workspace_id: int,
        now: datetime | None = None,
        idle_seconds: float = 0,
        engagement_level: EngagementLevel | None = None,
        focus_mode_active: bool = False,
    ) -> StoredInsight | None:
        """Same selection as next_eligible without marking anything."""

        return self._select(
            workspace_id, now, idle_seconds, engagement_level, focus_mode_active, mark_delivered=False
        )

    def check(
        self,
        workspace_id: int,
        idle_seconds: float = 0,
        engagement_level: EngagementLevel | None = None,
        focus_mode_active: bool = False,
        deliver: bool = False,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Summary: Poll contract used by delivery clients.

        Importance: One call answers whether the client has something to hold.
        Alternatives: Expose only next_eligible and peek.
        """

        selector = self.next_eligible if deliver else self.peek
        entry = selector(
            workspace_id,
            now=now,
            idle_seconds=idle_seconds,
            engagement_level=engagement_level,
            focus_mode_active=focus_mode_active,
        )
        return {"has_insight": entry is not None, "insight": entry.to_dict() if entry else None}

    def resolve(
        self, entry_id: int, outcome: Resolution, workspace_id: int | None = None
    ) -> bool:
        """Summary: Record an outcome against a queue entry.

        Importance: Delivered only marks the entry; dismissed and engaged end it.
        Alternatives: Delete entries once the user reacts.
        """

        now = self.clock()
        if outcome.terminal:
            changed = self.store.mark_resolved(entry_id, outcome, now, workspace_id=workspace_id)
        else:
            changed = self.store.mark_delivered(entry_id, now, workspace_id=workspace_id)
        if not changed:
            logger.info("Ignoring %s for unknown or resolved insight %s", outcome.value, entry_id)
            return False
        self._mirror(entry_id, outcome, now)
        return True

    def list_entries(
        self, workspace_id: int, include_resolved: bool = False, limit: int = 50
    ) -> list[StoredInsight]:
        return self.store.list_insights(workspace_id, include_resolved=include_resolved, limit=limit)

    def get_entry(self, entry_id: int, workspace_id: int | None = None) -> StoredInsight | None:
        return self.store.get_insight(entry_id, workspace_id=workspace_id)

    def preferences(self, workspace_id: int) -> DeliveryPreferences:
        """Stored preferences for the workspace, else the configured defaults."""

        return self.store.get_preferences(workspace_id) or self.default_preferences

    def update_preferences(self, workspace_id: int, preferences: DeliveryPreferences) -> None:
        if preferences.max_per_hour < 0 or preferences.max_per_session < 0:
            raise ValueError("Delivery limits must not be negative")
        if preferences.min_interval_minutes < 0:
            raise ValueError("Minimum interval must not be negative")
        self.store.save_preferences(workspace_id, preferences)
        logger.info("Updated delivery preferences for workspace %s", workspace_id)

    def begin_session(self, workspace_id: int, now: datetime | None = None) -> datetime:
        """Summary: Start a delivery session for the per-session budget.

        Importance: Deliveries before the session started no longer count.
        Alternatives: Count every delivery the workspace ever received.
        """

        started_at = now or self.clock()
        self.store.start_session(workspace_id, started_at)
        return started_at

    def blocked_reason(
        self,
        workspace_id: int,
        preferences: DeliveryPreferences,
        now: datetime,
        engagement_level: EngagementLevel | None = None,
    ) -> str | None:
        """Summary: Explain why workspace preferences hold back every insight right now.

        Importance: Applies the interrupt budget, pacing, and engagement gates
        before any entry is considered.
        Alternatives: Filter these conditions on the client.
        """

        if preferences.bubble_mode is BubbleMode.OFF:
            return "bubble is off"
        if preferences.refuse_deep_engagement and engagement_level is EngagementLevel.DEEP:
            return "user is in deep focus"
        if preferences.max_per_hour:
            delivered = self.store.count_delivered_since(workspace_id, now - timedelta(hours=1))
            if delivered >= preferences.max_per_hour:
                return "hourly budget exhausted"
        if preferences.max_per_session:
            started_at = self.store.session_started_at(workspace_id)
            if started_at is not None:
                delivered = self.store.count_delivered_since(
                    workspace_id, datetime.fromisoformat(started_at)
                )
                if delivered >= preferences.max_per_session:
                    return "session budget exhausted"
        if preferences.min_interval_minutes:
            last = self.store.last_delivered_at(workspace_id)
            cutoff = to_timestamp(now - timedelta(minutes=preferences.min_interval_minutes))
            if last is not None and last > cutoff:
                return "minimum interval not reached"
        return None

    def _select(
        self,
        workspace_id: int,
        now: datetime | None,
        idle_seconds: float,
        engagement_level: EngagementLevel | None,
        focus_mode_active: bool,
        mark_delivered: bool,
    ) -> StoredInsight | None:
        if focus_mode_active:
            return None
        moment = now or self.clock()
        preferences = self.preferences(workspace_id)
        reason = self.blocked_reason(workspace_id, preferences, moment, engagement_level)
        if reason is not None:
            logger.debug("Holding back insights for workspace %s: %s", workspace_id, reason)
            return None
        return self.store.select_eligible(
            workspace_id,
            moment,
            idle_seconds,
            mark_delivered=mark_delivered,
            excluded_categories=preferences.muted_categories,
            min_base_priority=(
                QUIET_MIN_PRIORITY if preferences.bubble_mode is BubbleMode.QUIET else None
            ),
            skip_expired=preferences.expire_stale,
        )

    def _mirror(self, entry_id: int, outcome: Resolution, recorded_at: datetime) -> None:
        """Summary: Forward a resolution to the telemetry sink.

        Importance: Analytics failures must never undo or block a resolution.
        Alternatives: Write telemetry in the same transaction as the resolution.
        """

        if self.telemetry is None:
            return
        try:
            entry = self.store.get_insight(entry_id)
            if entry is None:
                return
            self.telemetry.record(
                FeedbackEvent(
                    workspace_id=entry.workspace_id,
                    entry_id=entry.id,
                    outcome=outcome,
                    category=entry.category,
                    recorded_at=recorded_at,
                    context_tags=list(entry.context_tags),
                )
            )
        except Exception:
            logger.exception("Failed to record feedback for insight %s", entry_id)


@dataclass(frozen=True)
class CrossPassDedupPolicy:
    """Summary: Skips signals already pending in the workspace queue.

    Importance: Stops the same fact mentioned in several messages from
    queueing several reminders when a deployment opts in.
    Alternatives: Merge duplicates at delivery time.
    """

    store: SqliteStore

    def is_duplicate(self, workspace_id: int, signal: Signal) -> bool:
        existing = self.store.find_unresolved_by_key(
            workspace_id, signal.category, dedup_key(signal.content)
        )
        return existing is not None


@dataclass(frozen=True)
class DetectionService:
    """Summary: Runs detection and scheduling for each conversation exchange.

    Importance: Bridges the conversation source and the insight queue.
    Alternatives: Detect inside the chat product and post queue entries directly.
    """

    queue: InsightQueueService
    dedup_policy: CrossPassDedupPolicy | None = None

    def scan(
        self,
        text: str,
        conversation_id: str = "",
        message_id: str | None = None,
        now: datetime | None = None,
    ) -> list[ScheduledInsight]:
        """Detect and schedule without touching the queue."""

        signals = detect(text, conversation_id, message_id, now=now or self.queue.clock())
        return [schedule(signal) for signal in signals]

    def process_exchange(
        self,
        workspace_id: int,
        text: str,
        conversation_id: str = "",
        message_id: str | None = None,
        now: datetime | None = None,
    ) -> list[int]:
        """Summary: Detect, schedule, and enqueue insights from one message.

        Importance: The single write path from conversation text into the queue.
        Alternatives: Batch messages and detect on a timer.
        """

        entry_ids: list[int] = []
        for scheduled in self.scan(text, conversation_id, message_id, now=now):
            if self.dedup_policy is not None and self.dedup_policy.is_duplicate(
                workspace_id, scheduled.signal
            ):
                logger.info(
                    "Skipping duplicate %s signal for workspace %s",
                    scheduled.signal.category.value,
                    workspace_id,
                )
                continue
            entry_ids.append(self.queue.enqueue(workspace_id, scheduled))
        return entry_ids


@dataclass(frozen=True)
class StatsService:
    """Summary: Provides lightweight queue analytics.

    Importance: Enables dashboards and quick health checks.
    Alternatives: Calculate counts directly in the API or UI.
    """

    store: SqliteStore

    def snapshot(self, workspace_id: int) -> dict[str, Any]:
        """Summary: Return pending counts by category and totals by outcome.

        Importance: Shows at a glance what the queue is holding back.
        Alternatives: Build a full analytics pipeline.
        """

        by_category = self.store.count_insights_by_category(workspace_id)
        by_resolution = self.store.count_insights_by_resolution(workspace_id)
        return {
            "pending": sum(by_category.values()),
            "by_category": by_category,
            "by_resolution": by_resolution,
            "feedback_events": self.store.count_feedback_events(workspace_id),
        }
