"""Summary: Tests for the engagement-aware delivery state machine.

Importance: Ensures the bubble only interrupts when allowed and records every user reaction.
Alternatives: Verify the bubble manually in a browser session.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from insightdesk.delivery import BubbleSession, InvalidTransition, QueueInsightSource
from insightdesk.detection import detect
from insightdesk.engagement import EngagementTracker
from insightdesk.handoff import ConversationHandoff, LoggingConversationHandoff
from insightdesk.models import BubbleState, EngagementLevel, Resolution, Workspace
from insightdesk.scheduling import schedule
from insightdesk.services import InsightQueueService
from insightdesk.storage.sqlite_store import SqliteStore

DETECTED_AT = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class RecordingSource(QueueInsightSource):
    def __init__(
        self,
        queue: InsightQueueService,
        workspace_id: int,
        delay: float = 0.0,
        resolve_delay: float = 0.0,
    ) -> None:
        super().__init__(queue, workspace_id)
        self.checks: list[tuple[EngagementLevel, bool]] = []
        self.delay = delay
        self.resolve_delay = resolve_delay

    def check(self, idle_seconds, engagement_level, focus_mode_active, deliver):
        self.checks.append((engagement_level, deliver))
        if self.delay:
            time.sleep(self.delay)
        return super().check(idle_seconds, engagement_level, focus_mode_active, deliver)

    def resolve(self, entry_id, outcome):
        if self.resolve_delay and outcome is not Resolution.DELIVERED:
            time.sleep(self.resolve_delay)
        return super().resolve(entry_id, outcome)


class FailingHandoff(ConversationHandoff):
    def open_conversation(self, entry):
        raise RuntimeError("chat surface unavailable")


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _queue(tmp_path: Path, text: str | None = "Scratch that.") -> tuple[InsightQueueService, int]:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))
    queue = InsightQueueService(store=store, default_min_idle_seconds=0)
    if text:
        for signal in detect(text, "conv", now=DETECTED_AT):
            queue.enqueue(workspace_id, schedule(signal))
    return queue, workspace_id


def _session(
    tmp_path: Path, text: str | None = "Scratch that.", **kwargs
) -> tuple[BubbleSession, RecordingSource, InsightQueueService]:
    queue, workspace_id = _queue(tmp_path, text)
    source = RecordingSource(
        queue,
        workspace_id,
        delay=kwargs.pop("delay", 0.0),
        resolve_delay=kwargs.pop("resolve_delay", 0.0),
    )
    session = BubbleSession(source=source, **kwargs)
    return session, source, queue


def test_poll_holds_insight_without_marking_delivery(tmp_path: Path) -> None:
    """Summary: Verify an idle poll moves the bubble to holding.

    Importance: Holding is a quiet cue; nothing counts as delivered until shown.
    Alternatives: Expand the insight immediately.
    """

    session, source, queue = _session(tmp_path)

    assert asyncio.run(session.poll_once()) is True

    assert session.state is BubbleState.HOLDING
    assert session.held is not None
    assert source.checks == [(EngagementLevel.IDLE, False)]
    assert queue.get_entry(session.held.id).delivered_at is None


def test_poll_skips_during_deep_engagement(tmp_path: Path) -> None:
    clock = FakeClock()
    tracker = EngagementTracker(clock=clock)
    for instant in (0.0, 0.3, 0.6):
        clock.now = instant
        tracker.record_keystroke()
    clock.now = 0.8
    session, source, _ = _session(tmp_path, tracker=tracker)

    assert asyncio.run(session.poll_once()) is False
    assert session.state is BubbleState.IDLE
    assert source.checks == []


def test_poll_with_empty_queue_stays_idle(tmp_path: Path) -> None:
    session, source, _ = _session(tmp_path, text=None)
    assert asyncio.run(session.poll_once()) is False
    assert session.state is BubbleState.IDLE
    assert len(source.checks) == 1


def test_show_then_dismiss(tmp_path: Path) -> None:
    session, _, queue = _session(tmp_path)

    async def scenario() -> tuple[str, int]:
        await session.poll_once()
        expanded = await session.show()
        entry_id = session.held.id
        assert session.state is BubbleState.EXPANDED
        assert queue.get_entry(entry_id).delivered_at is not None
        assert queue.get_entry(entry_id).resolved is False
        await session.dismiss()
        return expanded, entry_id

    expanded, entry_id = asyncio.run(scenario())

    assert "Context:" in expanded
    assert session.state is BubbleState.IDLE
    assert session.held is None
    assert queue.get_entry(entry_id).resolution is Resolution.DISMISSED


def test_tell_me_more_hands_off_then_resets(tmp_path: Path) -> None:
    """Summary: Verify engagement triggers the handoff and the delayed reset.

    Importance: The connected state is transient and must release the held insight.
    Alternatives: Stay connected until the user closes the conversation.
    """

    handoff = LoggingConversationHandoff()
    session, _, queue = _session(tmp_path, handoff=handoff, connected_reset_seconds=0.01)

    async def scenario() -> int:
        await session.poll_once()
        await session.show()
        entry_id = session.held.id
        await session.tell_me_more()
        assert session.state is BubbleState.CONNECTED
        await asyncio.sleep(0.05)
        return entry_id

    entry_id = asyncio.run(scenario())

    assert handoff.opened == [entry_id]
    assert session.state is BubbleState.IDLE
    assert session.held is None
    assert queue.get_entry(entry_id).resolution is Resolution.ENGAGED


async def _enable_focus_later(session: BubbleSession, delay: float) -> None:
    await asyncio.sleep(delay)
    session.set_focus_mode(True)


def test_focus_during_slow_dismiss_keeps_bubble_hidden(tmp_path: Path) -> None:
    """Summary: Verify focus mode set while a dismissal is recorded wins.

    Importance: A slow resolve must not bring the bubble back over focus mode.
    Alternatives: Block focus changes while an action is in flight.
    """

    session, _, queue = _session(tmp_path, resolve_delay=0.2)

    async def scenario() -> int:
        await session.poll_once()
        await session.show()
        entry_id = session.held.id
        focus = asyncio.create_task(_enable_focus_later(session, 0.05))
        await session.dismiss()
        await focus
        return entry_id

    entry_id = asyncio.run(scenario())

    assert session.state is BubbleState.HIDDEN
    assert session.held is None
    assert queue.get_entry(entry_id).resolution is Resolution.DISMISSED
    session.set_focus_mode(False)
    assert session.state is BubbleState.IDLE


def test_focus_during_slow_tell_me_more_keeps_bubble_hidden(tmp_path: Path) -> None:
    handoff = LoggingConversationHandoff()
    session, _, queue = _session(
        tmp_path, resolve_delay=0.2, handoff=handoff, connected_reset_seconds=0.01
    )

    async def scenario() -> int:
        await session.poll_once()
        await session.show()
        entry_id = session.held.id
        focus = asyncio.create_task(_enable_focus_later(session, 0.05))
        await session.tell_me_more()
        await focus
        await asyncio.sleep(0.05)
        return entry_id

    entry_id = asyncio.run(scenario())

    assert session.state is BubbleState.HIDDEN
    assert session.held is None
    assert handoff.opened == []
    assert queue.get_entry(entry_id).resolution is Resolution.ENGAGED


def test_connected_reset_respects_focus_mode(tmp_path: Path) -> None:
    session, _, _ = _session(tmp_path, connected_reset_seconds=0.02)

    async def scenario() -> None:
        await session.poll_once()
        await session.show()
        await session.tell_me_more()
        session.set_focus_mode(True)
        await asyncio.sleep(0.06)

    asyncio.run(scenario())

    assert session.state is BubbleState.HIDDEN
    assert session.held is None


def test_failed_handoff_still_resets(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """Summary: Verify a raising handoff does not strand the bubble in connected.

    Importance: The engaged outcome is already recorded; the bubble must recover.
    Alternatives: Roll the engagement back when the handoff fails.
    """

    session, _, queue = _session(
        tmp_path, handoff=FailingHandoff(), connected_reset_seconds=0.01
    )

    async def scenario() -> int:
        await session.poll_once()
        await session.show()
        entry_id = session.held.id
        await session.tell_me_more()
        assert session.state is BubbleState.CONNECTED
        await asyncio.sleep(0.05)
        return entry_id

    with caplog.at_level("ERROR", logger="insightdesk.delivery"):
        entry_id = asyncio.run(scenario())

    assert session.state is BubbleState.IDLE
    assert session.held is None
    assert queue.get_entry(entry_id).resolution is Resolution.ENGAGED
    assert "Conversation handoff failed" in caplog.text


def test_session_start_records_delivery_session(tmp_path: Path) -> None:
    session, _, queue = _session(tmp_path, text=None, poll_interval_seconds=10)

    async def scenario() -> None:
        await session.start()
        await asyncio.sleep(0.05)
        await session.stop()

    asyncio.run(scenario())

    workspace_id = queue.store.list_workspaces()[0].id
    assert queue.store.session_started_at(workspace_id) is not None


def test_invalid_transitions_raise(tmp_path: Path) -> None:
    session, _, _ = _session(tmp_path)

    with pytest.raises(InvalidTransition):
        asyncio.run(session.show())
    asyncio.run(session.poll_once())
    with pytest.raises(InvalidTransition):
        asyncio.run(session.dismiss())
    with pytest.raises(InvalidTransition):
        asyncio.run(session.tell_me_more())
    assert session.state is BubbleState.HOLDING


def test_holding_blocks_further_polls(tmp_path: Path) -> None:
    session, source, _ = _session(tmp_path, text="Scratch that. On second thought, keep it.")
    asyncio.run(session.poll_once())
    held = session.held

    assert asyncio.run(session.poll_once()) is False
    assert session.held == held
    assert len(source.checks) == 1


def test_focus_mode_hides_and_restores(tmp_path: Path) -> None:
    session, source, _ = _session(tmp_path)

    session.set_focus_mode(True)
    assert session.state is BubbleState.HIDDEN
    assert asyncio.run(session.poll_once()) is False
    assert source.checks == []
    session.set_focus_mode(False)
    assert session.state is BubbleState.IDLE

    asyncio.run(session.poll_once())
    session.set_focus_mode(True)
    assert session.state is BubbleState.HIDDEN
    session.set_focus_mode(False)
    assert session.state is BubbleState.HOLDING


def test_session_start_check_runs_once_and_only_when_idle(tmp_path: Path) -> None:
    clock = FakeClock()
    tracker = EngagementTracker(clock=clock)
    clock.now = 1.0
    tracker.record_keystroke()
    clock.now = 3.0
    session, source, _ = _session(tmp_path, tracker=tracker)

    assert tracker.level() is EngagementLevel.ACTIVE
    assert asyncio.run(session.session_start_check()) is False
    clock.now = 30.0
    assert asyncio.run(session.session_start_check()) is False
    assert source.checks == []


def test_session_start_check_peeks_when_away(tmp_path: Path) -> None:
    clock = FakeClock()
    tracker = EngagementTracker(clock=clock)
    clock.now = 120.0
    session, source, queue = _session(tmp_path, tracker=tracker)

    assert asyncio.run(session.session_start_check()) is True
    assert source.checks == [(EngagementLevel.AWAY, False)]
    assert queue.get_entry(session.held.id).delivered_at is None


def test_onboarding_blocks_polling(tmp_path: Path) -> None:
    session, source, _ = _session(tmp_path, onboarding=True)
    assert asyncio.run(session.poll_once()) is False
    session.set_onboarding(False)
    assert asyncio.run(session.poll_once()) is True
    assert len(source.checks) == 1


def test_only_one_poll_in_flight(tmp_path: Path) -> None:
    session, source, _ = _session(tmp_path, delay=0.05)

    async def scenario() -> list[bool]:
        return await asyncio.gather(session.poll_once(), session.poll_once())

    results = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert len(source.checks) == 1


def test_start_and_stop_own_their_tasks(tmp_path: Path) -> None:
    """Summary: Verify the background loop polls and stops cleanly.

    Importance: Timers must not outlive the session that created them.
    Alternatives: Let timers fire after teardown and ignore the results.
    """

    session, source, _ = _session(tmp_path, text=None, poll_interval_seconds=0.01)

    async def scenario() -> tuple[int, int]:
        await session.start()
        await asyncio.sleep(0.1)
        await session.stop()
        calls_at_stop = len(source.checks)
        await asyncio.sleep(0.05)
        return calls_at_stop, len(source.checks)

    calls_at_stop, calls_later = asyncio.run(scenario())

    assert calls_at_stop >= 2
    assert calls_later == calls_at_stop
