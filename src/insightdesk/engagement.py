"""Summary: Typing-cadence engagement tracking for one client session.

Importance: Lets the delivery bubble avoid interrupting a user who is deep in thought.
Alternatives: Interrupt on a fixed idle timer only.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

from insightdesk.models import EngagementLevel

KEYSTROKE_WINDOW = 10
DEEP_VELOCITY = 2.0
DEEP_RECENCY_SECONDS = 2.0
ACTIVE_RECENCY_SECONDS = 10.0
IDLE_RECENCY_SECONDS = 60.0


class EngagementTracker:
    """Summary: Rolling window of keystroke instants plus the last activity instant.

    Importance: Owned by a single session so engagement state never leaks between users.
    Alternatives: Keep module-level globals updated by event handlers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._keystrokes: deque[float] = deque(maxlen=KEYSTROKE_WINDOW)
        self._last_keystroke: float | None = None
        self._last_activity = clock()

    def record_keystroke(self) -> None:
        now = self._clock()
        self._keystrokes.append(now)
        self._last_keystroke = now
        self._last_activity = now

    def record_activity(self) -> None:
        """Pointer moves and clicks count as presence but not typing."""

        self._last_activity = self._clock()

    def velocity(self) -> float:
        """Summary: Keystrokes per second across the window.

        Importance: Fast typing is the main sign of deep engagement.
        Alternatives: Count keystrokes in a fixed trailing interval.
        """

        if len(self._keystrokes) < 2:
            return 0.0
        span = self._keystrokes[-1] - self._keystrokes[0]
        if span <= 0:
            return 0.0
        return (len(self._keystrokes) - 1) / span

    def level(self) -> EngagementLevel:
        """Summary: Classify current engagement.

        Importance: Drives whether the bubble may pick up an insight.
        Alternatives: Expose the raw velocity and let callers decide.
        """

        now = self._clock()
        if self._last_keystroke is not None:
            since_keystroke = now - self._last_keystroke
            if self.velocity() > DEEP_VELOCITY and since_keystroke < DEEP_RECENCY_SECONDS:
                return EngagementLevel.DEEP
            if since_keystroke < ACTIVE_RECENCY_SECONDS:
                return EngagementLevel.ACTIVE
        if now - self._last_activity < IDLE_RECENCY_SECONDS:
            return EngagementLevel.IDLE
        return EngagementLevel.AWAY

    def idle_seconds(self) -> int:
        return int(self._clock() - self._last_activity)
