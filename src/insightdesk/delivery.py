"""Summary: Engagement-aware delivery state machine for the insight bubble.

Importance: Arbitrates when a queued insight may interrupt the user.
Alternatives: Show insights as notifications as soon as they become eligible.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod

from insightdesk.engagement import EngagementTracker
from insightdesk.handoff import ConversationHandoff, LoggingConversationHandoff
from insightdesk.models import BubbleState, EngagementLevel, Resolution
from insightdesk.services import InsightQueueService
from insightdesk.storage.sqlite_store import StoredInsight

logger = logging.getLogger(__name__)

SESSION_START_LEVELS = frozenset({EngagementLevel.IDLE, EngagementLevel.AWAY})


class InvalidTransition(ValueError):
    """Raised when a user action does not apply to the current bubble state."""


class InsightSource(ABC):
    """Summary: Where the bubble fetches and resolves insights.

    Importance: Keeps the state machine independent of transport.
    Alternatives: Call the queue service directly from the session.
    """

    @abstractmethod
    def check(
        self,
        idle_seconds: float,
        engagement_level: EngagementLevel,
        focus_mode_active: bool,
        deliver: bool,
    ) -> StoredInsight | None:
        """Return the eligible insight for this workspace, if any."""

    @abstractmethod
    def resolve(self, entry_id: int, outcome: Resolution) -> bool:
        """Record an outcome for an insight."""

    def begin_session(self) -> None:
        """Mark the start of a client session; sources without budgets ignore it."""


class QueueInsightSource(InsightSource):
    """Summary: Insight source backed by the local queue service.

    Importance: Runs the bubble in-process against the SQLite queue.
    Alternatives: Poll the HTTP API.
    """

    def __init__(self, queue: InsightQueueService, workspace_id: int) -> None:
        self._queue = queue
        self._workspace_id = workspace_id

    def check(
        self,
        idle_seconds: float,
        engagement_level: EngagementLevel,
        focus_mode_active: bool,
        deliver: bool,
    ) -> StoredInsight | None:
        selector = self._queue.next_eligible if deliver else self._queue.peek
        return selector(
            self._workspace_id,
            idle_seconds=idle_seconds,
            engagement_level=engagement_level,
            focus_mode_active=focus_mode_active,
        )

    def resolve(self, entry_id: int, outcome: Resolution) -> bool:
        return self._queue.resolve(entry_id, outcome, workspace_id=self._workspace_id)

    def begin_session(self) -> None:
        self._queue.begin_session(self._workspace_id)


class BubbleSession:
    """Summary: One client session of the delivery bubble.

    Importance: Owns the engagement tracker, the held insight, and every
    timer task so tearing down the session releases all of them.
    Alternatives: Drive the bubble from free-running global timers.
    """

    def __init__(
        self,
        source: InsightSource,
        tracker: EngagementTracker | None = None,
        handoff: ConversationHandoff | None = None,
        poll_interval_seconds: float = 10.0,
        connected_reset_seconds: float = 0.5,
        onboarding: bool = False,
    ) -> None:
        self._source = source
        self.tracker = tracker or EngagementTracker()
        self._handoff = handoff or LoggingConversationHandoff()
        self._poll_interval = poll_interval_seconds
        self._connected_reset = connected_reset_seconds
        self._state = BubbleState.IDLE
        self._held: StoredInsight | None = None
        self._focus_mode = False
        self._onboarding = onboarding
        self._poll_in_flight = False
        self._session_checked = False
        self._running = False
        self._poll_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> BubbleState:
        return self._state

    @property
    def held(self) -> StoredInsight | None:
        return self._held

    @property
    def focus_mode(self) -> bool:
        return self._focus_mode

    async def start(self) -> None:
        """Summary: Begin polling and run the one-time session-start check.

        Importance: Session start is the natural moment to offer held-over insights.
        Alternatives: Wait for the first poll interval.
        """

        if self._running:
            logger.debug("Bubble session already running")
            return
        self._running = True
        self._spawn(self._initial_check())
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Bubble session started")

    async def stop(self) -> None:
        """Summary: Cancel every task owned by the session.

        Importance: No timer may outlive the session that created it.
        Alternatives: Let timers fire and ignore their results.
        """

        self._running = False
        tasks = list(self._tasks)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        logger.info("Bubble session stopped")

    def set_onboarding(self, active: bool) -> None:
        self._onboarding = active

    def set_focus_mode(self, active: bool) -> None:
        """Summary: Apply the host's exclusive focus signal.

        Importance: Focus mode hides the bubble from any state.
        Alternatives: Only suppress new polls during focus mode.
        """

        self._focus_mode = active
        if active:
            self._state = BubbleState.HIDDEN
        elif self._state is BubbleState.HIDDEN:
            self._state = BubbleState.HOLDING if self._held is not None else BubbleState.IDLE

    async def poll_once(self) -> bool:
        """Summary: Run one poll tick.

        Importance: At most one poll is in flight and deep focus is never interrupted.
        Alternatives: Poll unconditionally and filter on the server.
        """

        if not self._may_poll():
            return False
        level = self.tracker.level()
        if level is EngagementLevel.DEEP:
            return False
        return await self._fetch(level, deliver=False)

    async def session_start_check(self) -> bool:
        """Summary: Non-marking peek run once when the session starts.

        Importance: Offers insights only to users who are not mid-task.
        Alternatives: Treat session start like any other poll.
        """

        if self._session_checked:
            return False
        self._session_checked = True
        if not self._may_poll():
            return False
        level = self.tracker.level()
        if level not in SESSION_START_LEVELS:
            return False
        return await self._fetch(level, deliver=False)

    async def show(self) -> str:
        """Summary: Expand the held insight and mark it delivered.

        Importance: Delivery is recorded only when the user actually looks.
        Alternatives: Mark insights delivered when they are fetched.
        """

        entry = self._require(BubbleState.HOLDING, "show")
        self._state = BubbleState.EXPANDED
        await asyncio.to_thread(self._source.resolve, entry.id, Resolution.DELIVERED)
        return entry.expanded_content

    async def tell_me_more(self) -> None:
        """Summary: Engage with the expanded insight and hand off to a conversation.

        Importance: Turns a reminder into an actionable follow-up.
        Alternatives: Expand inline without a handoff.
        """

        entry = self._require(BubbleState.EXPANDED, "tell_me_more")
        await asyncio.to_thread(self._source.resolve, entry.id, Resolution.ENGAGED)
        if self._state is not BubbleState.EXPANDED:
            # Focus mode hid the bubble while the outcome was being recorded.
            self._held = None
            return
        self._state = BubbleState.CONNECTED
        try:
            self._handoff.open_conversation(entry)
        except Exception:
            logger.exception("Conversation handoff failed for insight %s", entry.id)
        finally:
            self._spawn(self._reset_after_connect())

    async def dismiss(self) -> None:
        entry = self._require(BubbleState.EXPANDED, "dismiss")
        await asyncio.to_thread(self._source.resolve, entry.id, Resolution.DISMISSED)
        self._held = None
        if self._state is BubbleState.EXPANDED:
            self._state = BubbleState.IDLE

    def _may_poll(self) -> bool:
        return (
            not self._onboarding
            and not self._focus_mode
            and self._state is BubbleState.IDLE
            and not self._poll_in_flight
        )

    async def _fetch(self, level: EngagementLevel, deliver: bool) -> bool:
        self._poll_in_flight = True
        try:
            entry = await asyncio.to_thread(
                self._source.check,
                self.tracker.idle_seconds(),
                level,
                self._focus_mode,
                deliver,
            )
        finally:
            self._poll_in_flight = False
        if entry is None or self._focus_mode or self._state is not BubbleState.IDLE:
            return False
        self._held = entry
        self._state = BubbleState.HOLDING
        logger.info("Holding insight %s (%s)", entry.id, entry.category.value)
        return True

    async def _initial_check(self) -> None:
        try:
            await asyncio.to_thread(self._source.begin_session)
            await self.session_start_check()
        except Exception:
            logger.exception("Session start check failed")

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Insight poll failed")

    async def _reset_after_connect(self) -> None:
        await asyncio.sleep(self._connected_reset)
        self._held = None
        if self._state is BubbleState.CONNECTED and not self._focus_mode:
            self._state = BubbleState.IDLE

    def _require(self, expected: BubbleState, action: str) -> StoredInsight:
        if self._state is not expected or self._held is None:
            raise InvalidTransition(f"Cannot {action} while bubble is {self._state.value}")
        return self._held

    def _spawn(self, coroutine) -> None:
        task = asyncio.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
