"""Summary: Tests for telemetry sinks and conversation handoff.

Importance: Ensures resolutions reach analytics and handoffs are recorded.
Alternatives: Inspect logs manually after a session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from insightdesk.models import FeedbackEvent, Resolution, SignalCategory, Workspace
from insightdesk.storage.sqlite_store import SqliteStore
from insightdesk.telemetry import LoggingTelemetrySink, StoreTelemetrySink

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _event(workspace_id: int = 1) -> FeedbackEvent:
    return FeedbackEvent(
        workspace_id=workspace_id,
        entry_id=7,
        outcome=Resolution.ENGAGED,
        category=SignalCategory.DEADLINE,
        recorded_at=NOW,
        context_tags=["deadline", "report"],
    )


def test_store_sink_persists_events(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    workspace_id = store.ensure_workspace(Workspace(name="Personal", slug="personal"))

    StoreTelemetrySink(store).record(_event(workspace_id))

    (stored,) = store.list_feedback_events(workspace_id)
    assert stored.entry_id == 7
    assert stored.outcome == "engaged"
    assert stored.category == "deadline"
    assert stored.context_tags == ["deadline", "report"]


def test_logging_sink_writes_log(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="insightdesk.telemetry"):
        LoggingTelemetrySink().record(_event())
    assert "outcome=engaged" in caplog.text
    assert "category=deadline" in caplog.text
