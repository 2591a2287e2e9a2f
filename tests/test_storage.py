"""Summary: Tests for the SQLite storage layer.

Importance: Ensures queue entries persist and select in the documented order.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

from insightdesk.models import (
    BubbleMode,
    DeliveryPreferences,
    DeliveryTrigger,
    FeedbackEvent,
    Resolution,
    ScheduledInsight,
    Signal,
    SignalCategory,
    Workspace,
)
from insightdesk.storage.sqlite_store import NewInsight, SqliteStore, to_timestamp

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def _new_insight(
    workspace_id: int,
    content: str = "review the budget numbers",
    category: SignalCategory = SignalCategory.COMMITMENT,
    base_priority: int = 6,
    confidence: float = 0.8,
    detected_at: datetime = NOW,
    surface_at: datetime = NOW,
    min_idle_seconds: int = 0,
) -> NewInsight:
    signal = Signal(
        category=category,
        content=content,
        context_snippet=content,
        source_conversation_id="conv",
        detected_at=detected_at,
        confidence=confidence,
        base_priority=base_priority,
    )
    return NewInsight(
        workspace_id=workspace_id,
        scheduled=ScheduledInsight(signal=signal, surface_at=surface_at),
        priority_score=float(base_priority),
        delivery_trigger=DeliveryTrigger.IDLE,
        min_idle_seconds=min_idle_seconds,
        context_tags=[category.value, "budget"],
        expanded_content=f"More about {content}",
        title="Title",
        message="Message",
        dedup_key=content.lower()[:30],
    )


def test_ensure_workspace_is_idempotent(tmp_path: Path) -> None:
    """Summary: Verify a workspace slug maps to a single record.

    Importance: Tenants must not split across duplicate rows.
    Alternatives: Enforce uniqueness only in application code.
    """

    store = _store(tmp_path)
    first = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    second = store.ensure_workspace(Workspace(name="Personal again", slug="personal"))
    assert first == second
    assert [workspace.slug for workspace in store.list_workspaces()] == ["personal"]
    assert store.get_workspace_by_slug("personal").id == first
    assert store.get_workspace(999) is None


def test_add_and_get_insight_round_trips_fields(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    entry_id = store.add_insight(_new_insight(workspace_id))

    entry = store.get_insight(entry_id)

    assert entry is not None
    assert entry.category is SignalCategory.COMMITMENT
    assert entry.context_tags == ["commitment", "budget"]
    assert entry.surface_at == to_timestamp(NOW)
    assert entry.resolved is False
    assert entry.resolution is None
    assert entry.delivered_at is None
    assert store.get_insight(entry_id, workspace_id=workspace_id + 1) is None


def test_select_eligible_ranks_by_priority_confidence_and_age(tmp_path: Path) -> None:
    """Summary: Verify the ranking key of the eligibility query.

    Importance: The most urgent insight must always be offered first.
    Alternatives: Rank in Python after loading every entry.
    """

    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    low = store.add_insight(_new_insight(workspace_id, "low priority item", base_priority=4))
    older = store.add_insight(
        _new_insight(workspace_id, "older item", detected_at=NOW - timedelta(hours=1))
    )
    newer = store.add_insight(_new_insight(workspace_id, "newer item"))
    confident = store.add_insight(_new_insight(workspace_id, "confident item", confidence=0.9))
    high = store.add_insight(_new_insight(workspace_id, "urgent item", base_priority=8))

    order = []
    for _ in range(5):
        entry = store.select_eligible(workspace_id, NOW, 60, mark_delivered=False)
        order.append(entry.id)
        store.mark_resolved(entry.id, Resolution.DISMISSED, NOW)

    assert order == [high, confident, older, newer, low]


def test_select_eligible_respects_surface_time_and_idle(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    store.add_insight(_new_insight(workspace_id, "future item", surface_at=NOW + timedelta(days=1)))
    store.add_insight(_new_insight(workspace_id, "needs idle", min_idle_seconds=30))

    assert store.select_eligible(workspace_id, NOW, 10, mark_delivered=False) is None
    entry = store.select_eligible(workspace_id, NOW, 30, mark_delivered=False)
    assert entry is not None and entry.content == "needs idle"


def test_select_eligible_marks_delivered_in_place(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    entry_id = store.add_insight(_new_insight(workspace_id))

    peeked = store.select_eligible(workspace_id, NOW, 0, mark_delivered=False)
    assert peeked.delivered_at is None

    delivered = store.select_eligible(workspace_id, NOW, 0, mark_delivered=True)
    assert delivered.id == entry_id
    assert delivered.delivered_at == to_timestamp(NOW)
    assert delivered.resolution is Resolution.DELIVERED
    assert delivered.resolved is False


def test_mark_resolved_is_terminal(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    entry_id = store.add_insight(_new_insight(workspace_id))

    assert store.mark_resolved(entry_id, Resolution.ENGAGED, NOW) is True
    assert store.mark_resolved(entry_id, Resolution.DISMISSED, NOW) is False
    assert store.mark_delivered(entry_id, NOW) is False
    assert store.mark_resolved(12345, Resolution.DISMISSED, NOW) is False

    entry = store.get_insight(entry_id)
    assert entry.resolved is True
    assert entry.resolution is Resolution.ENGAGED
    assert store.list_insights(workspace_id) == []
    assert [item.id for item in store.list_insights(workspace_id, include_resolved=True)] == [entry_id]


def test_workspaces_are_isolated(tmp_path: Path) -> None:
    store = _store(tmp_path)
    personal = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    team = store.ensure_workspace(Workspace(name="Team", slug="team"))
    entry_id = store.add_insight(_new_insight(personal))

    assert store.select_eligible(team, NOW, 60, mark_delivered=True) is None
    assert store.mark_resolved(entry_id, Resolution.DISMISSED, NOW, workspace_id=team) is False
    assert store.get_insight(entry_id).resolved is False


def test_counts_and_feedback_events(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    first = store.add_insight(_new_insight(workspace_id, "first item"))
    store.add_insight(_new_insight(workspace_id, "second item", category=SignalCategory.FOLLOW_UP))
    store.mark_resolved(first, Resolution.DISMISSED, NOW)
    store.log_feedback_event(
        FeedbackEvent(
            workspace_id=workspace_id,
            entry_id=first,
            outcome=Resolution.DISMISSED,
            category=SignalCategory.COMMITMENT,
            recorded_at=NOW,
            context_tags=["commitment"],
        )
    )

    assert store.count_insights_by_category(workspace_id) == {"follow_up": 1}
    assert store.count_insights_by_resolution(workspace_id) == {"dismissed": 1, "pending": 1}
    events = store.list_feedback_events(workspace_id)
    assert [(event.entry_id, event.outcome) for event in events] == [(first, "dismissed")]
    assert events[0].context_tags == ["commitment"]
    assert store.count_feedback_events(workspace_id) == 1


def test_find_unresolved_by_key(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    entry_id = store.add_insight(_new_insight(workspace_id, "Review the budget numbers"))

    found = store.find_unresolved_by_key(
        workspace_id, SignalCategory.COMMITMENT, "review the budget numbers"
    )
    assert found is not None and found.id == entry_id
    assert store.find_unresolved_by_key(workspace_id, SignalCategory.FOLLOW_UP, "review the budget numbers") is None


def test_initialize_is_repeatable(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.initialize()
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    assert store.add_insight(_new_insight(workspace_id)) == 1


def test_preferences_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    preferences = DeliveryPreferences(
        bubble_mode=BubbleMode.QUIET,
        max_per_hour=3,
        max_per_session=10,
        min_interval_minutes=10,
        muted_categories=frozenset({SignalCategory.RECURRING_PATTERN, SignalCategory.DEADLINE}),
        expire_stale=True,
        refuse_deep_engagement=True,
    )

    assert store.get_preferences(workspace_id) is None
    store.save_preferences(workspace_id, preferences)
    assert store.get_preferences(workspace_id) == preferences
    store.save_preferences(workspace_id, DeliveryPreferences())
    assert store.get_preferences(workspace_id) == DeliveryPreferences()


def test_delivery_counters_and_session(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    first = store.add_insight(_new_insight(workspace_id, content="first"))
    second = store.add_insight(_new_insight(workspace_id, content="second"))

    assert store.last_delivered_at(workspace_id) is None
    store.mark_delivered(first, NOW)
    store.mark_delivered(second, NOW + timedelta(minutes=30))

    assert store.count_delivered_since(workspace_id, NOW) == 2
    assert store.count_delivered_since(workspace_id, NOW + timedelta(minutes=1)) == 1
    assert store.last_delivered_at(workspace_id) == to_timestamp(NOW + timedelta(minutes=30))

    assert store.session_started_at(workspace_id) is None
    store.start_session(workspace_id, NOW)
    store.start_session(workspace_id, NOW + timedelta(hours=1))
    assert store.session_started_at(workspace_id) == to_timestamp(NOW + timedelta(hours=1))


def test_select_eligible_filters(tmp_path: Path) -> None:
    store = _store(tmp_path)
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    low = _new_insight(workspace_id, content="low", base_priority=5)
    store.add_insight(low)
    high = _new_insight(
        workspace_id, content="high", category=SignalCategory.CONTRADICTION, base_priority=8
    )
    store.add_insight(replace(high, expires_at=NOW + timedelta(hours=1)))

    def pick(**filters) -> str | None:
        entry = store.select_eligible(
            workspace_id, NOW + timedelta(hours=2), 0, mark_delivered=False, **filters
        )
        return entry.content if entry else None

    assert pick() == "high"
    assert pick(skip_expired=True) == "low"
    assert pick(excluded_categories=[SignalCategory.CONTRADICTION]) == "low"
    assert pick(min_base_priority=7) == "high"
    assert pick(min_base_priority=7, skip_expired=True) is None
