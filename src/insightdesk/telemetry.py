"""Summary: Feedback telemetry sinks for surfaced insights.

Importance: Mirrors queue resolutions to analytics without coupling the queue to a backend.
Alternatives: Write analytics rows directly inside the queue service.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from insightdesk.models import FeedbackEvent
from insightdesk.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


class TelemetrySink(ABC):
    """Summary: Abstract interface for recording feedback events.

    Importance: Lets deployments choose where engagement analytics land.
    Alternatives: Hardcode a single analytics destination.
    """

    @abstractmethod
    def record(self, event: FeedbackEvent) -> None:
        """Summary: Record one feedback event.

        Importance: Called after every successful resolution.
        Alternatives: Batch events and flush periodically.
        """


class StoreTelemetrySink(TelemetrySink):
    """Summary: Persists feedback events in the local SQLite database.

    Importance: Keeps an analyzable history next to the queue itself.
    Alternatives: Ship events to a hosted analytics product.
    """

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def record(self, event: FeedbackEvent) -> None:
        self._store.log_feedback_event(event)


class LoggingTelemetrySink(TelemetrySink):
    """Writes feedback events to the application log."""

    def record(self, event: FeedbackEvent) -> None:
        logger.info(
            "Feedback workspace=%s entry=%s outcome=%s category=%s",
            event.workspace_id,
            event.entry_id,
            event.outcome.value,
            event.category.value,
        )
