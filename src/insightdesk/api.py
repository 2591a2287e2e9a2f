"""Summary: FastAPI application for InsightDesk.

Importance: Exposes detection, queue polling, and feedback endpoints for delivery clients.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from insightdesk.app import build_services
from insightdesk.config import AppConfig
from insightdesk.models import (
    BubbleMode,
    DeliveryPreferences,
    EngagementLevel,
    Resolution,
    ScheduledInsight,
    SignalCategory,
)

FEEDBACK_ACTIONS = {
    "deliver": Resolution.DELIVERED,
    "dismiss": Resolution.DISMISSED,
    "engage": Resolution.ENGAGED,
}


class WorkspaceCreateRequest(BaseModel):
    """Summary: Request payload for workspace creation.

    Importance: Lets the host product register tenants over HTTP.
    Alternatives: Create workspaces only through the CLI.
    """

    name: str
    slug: str = Field(min_length=1, max_length=80)


class DetectRequest(BaseModel):
    """Summary: Request payload for stateless detection.

    Importance: Lets clients preview signals without queueing them.
    Alternatives: Only expose the enqueueing exchange endpoint.
    """

    text: str
    conversation_id: str = ""
    message_id: str | None = None


class ExchangeRequest(BaseModel):
    """Summary: Request payload for a completed conversation exchange.

    Importance: The conversation source feeds every message through this endpoint.
    Alternatives: Push messages through a queue consumer.
    """

    text: str
    conversation_id: str = ""
    message_id: str | None = None
    workspace_id: int | None = None


class FeedbackRequest(BaseModel):
    action: str


class PreferencesRequest(BaseModel):
    """Summary: Request payload for workspace delivery preferences.

    Importance: Lets a workspace opt into interrupt budgets and muting.
    Alternatives: Configure throttling only through environment defaults.
    """

    bubble_mode: BubbleMode = BubbleMode.ON
    max_per_hour: int = Field(default=0, ge=0)
    max_per_session: int = Field(default=0, ge=0)
    min_interval_minutes: int = Field(default=0, ge=0)
    muted_categories: list[SignalCategory] = Field(default_factory=list)
    expire_stale: bool = False
    refuse_deep_engagement: bool = False

    def to_preferences(self) -> DeliveryPreferences:
        return DeliveryPreferences(
            bubble_mode=self.bubble_mode,
            max_per_hour=self.max_per_hour,
            max_per_session=self.max_per_session,
            min_interval_minutes=self.min_interval_minutes,
            muted_categories=frozenset(self.muted_categories),
            expire_stale=self.expire_stale,
            refuse_deep_engagement=self.refuse_deep_engagement,
        )


def preferences_to_dict(preferences: DeliveryPreferences) -> dict[str, Any]:
    return {
        "bubble_mode": preferences.bubble_mode.value,
        "max_per_hour": preferences.max_per_hour,
        "max_per_session": preferences.max_per_session,
        "min_interval_minutes": preferences.min_interval_minutes,
        "muted_categories": sorted(category.value for category in preferences.muted_categories),
        "expire_stale": preferences.expire_stale,
        "refuse_deep_engagement": preferences.refuse_deep_engagement,
    }


def scheduled_to_dict(scheduled: ScheduledInsight) -> dict[str, Any]:
    signal = scheduled.signal
    return {
        "category": signal.category.value,
        "content": signal.content,
        "context_snippet": signal.context_snippet,
        "confidence": signal.confidence,
        "base_priority": signal.base_priority,
        "detected_at": signal.detected_at.isoformat(),
        "deadline_at": signal.deadline_at.isoformat() if signal.deadline_at else None,
        "deadline_kind": signal.deadline_kind.value if signal.deadline_kind else None,
        "surface_at": scheduled.surface_at.isoformat(),
    }


def create_app(config: AppConfig) -> FastAPI:
    """Summary: Create a FastAPI app wired to InsightDesk services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, config.log_level.upper(), logging.INFO),
            format="%(levelname)s %(name)s: %(message)s",
        )
    app = FastAPI(title="InsightDesk API", version="0.1.0")
    services = build_services(config)

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def _workspace_id(workspace_id: int | None) -> int:
        try:
            workspace = services.workspaces.require_workspace(
                workspace_id or services.default_workspace_id
            )
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return workspace.id

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok"}

    @app.post("/workspaces", dependencies=[Depends(require_api_key)])
    def create_workspace(payload: WorkspaceCreateRequest) -> dict[str, int]:
        try:
            workspace_id = services.workspaces.create_workspace(payload.name, payload.slug)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"id": workspace_id}

    @app.get("/workspaces", dependencies=[Depends(require_api_key)])
    def list_workspaces() -> list[dict[str, Any]]:
        return [
            {"id": workspace.id, "name": workspace.name, "slug": workspace.slug}
            for workspace in services.workspaces.list_workspaces()
        ]

    @app.get("/workspaces/{workspace_id}/preferences", dependencies=[Depends(require_api_key)])
    def get_preferences(workspace_id: int) -> dict[str, Any]:
        return preferences_to_dict(services.queue.preferences(_workspace_id(workspace_id)))

    @app.put("/workspaces/{workspace_id}/preferences", dependencies=[Depends(require_api_key)])
    def update_preferences(workspace_id: int, payload: PreferencesRequest) -> dict[str, Any]:
        """Summary: Replace the delivery preferences of a workspace.

        Importance: Every field defaults to no restriction, so omitted fields clear limits.
        Alternatives: Patch individual fields.
        """

        resolved_id = _workspace_id(workspace_id)
        services.queue.update_preferences(resolved_id, payload.to_preferences())
        return preferences_to_dict(services.queue.preferences(resolved_id))

    @app.post("/workspaces/{workspace_id}/sessions", dependencies=[Depends(require_api_key)])
    def start_session(workspace_id: int) -> dict[str, str]:
        started_at = services.queue.begin_session(_workspace_id(workspace_id))
        return {"started_at": started_at.isoformat()}

    @app.post("/detect", dependencies=[Depends(require_api_key)])
    def detect_signals(payload: DetectRequest) -> dict[str, Any]:
        """Summary: Detect and schedule signals without queueing them.

        Importance: Useful for tuning patterns against real conversations.
        Alternatives: Inspect the queue after ingesting an exchange.
        """

        scheduled = services.detection.scan(
            payload.text, payload.conversation_id, payload.message_id
        )
        return {"signals": [scheduled_to_dict(item) for item in scheduled]}

    @app.post("/exchanges", dependencies=[Depends(require_api_key)])
    def ingest_exchange(payload: ExchangeRequest) -> dict[str, Any]:
        """Summary: Detect, schedule, and enqueue insights from one message.

        Importance: The write path the conversation source calls after each reply.
        Alternatives: Batch messages on a timer.
        """

        workspace_id = _workspace_id(payload.workspace_id)
        entry_ids = services.detection.process_exchange(
            workspace_id, payload.text, payload.conversation_id, payload.message_id
        )
        return {"entry_ids": entry_ids, "queued": len(entry_ids)}

    @app.get("/insights", dependencies=[Depends(require_api_key)])
    def list_insights(
        workspace_id: int | None = None, include_resolved: bool = False, limit: int = 50
    ) -> list[dict[str, Any]]:
        resolved_id = _workspace_id(workspace_id)
        entries = services.queue.list_entries(
            resolved_id, include_resolved=include_resolved, limit=limit
        )
        return [entry.to_dict() for entry in entries]

    @app.get("/insights/pending", dependencies=[Depends(require_api_key)])
    def pending_insight(
        workspace_id: int | None = None,
        idle_seconds: float = 0,
        engagement: EngagementLevel | None = None,
        focus_mode: bool = False,
        deliver: bool = False,
    ) -> dict[str, Any]:
        """Summary: Poll for the next insight a client may hold.

        Importance: Marks delivery only when the client asks for it.
        Alternatives: Push insights over a websocket.
        """

        resolved_id = _workspace_id(workspace_id)
        return services.queue.check(
            resolved_id,
            idle_seconds=idle_seconds,
            engagement_level=engagement,
            focus_mode_active=focus_mode,
            deliver=deliver,
        )

    @app.get("/insights/{entry_id}", dependencies=[Depends(require_api_key)])
    def get_insight(entry_id: int, workspace_id: int | None = None) -> dict[str, Any]:
        resolved_id = _workspace_id(workspace_id)
        entry = services.queue.get_entry(entry_id, workspace_id=resolved_id)
        if entry is None:
            raise HTTPException(status_code=404, detail="Insight not found")
        return entry.to_dict()

    @app.post("/insights/{entry_id}/feedback", dependencies=[Depends(require_api_key)])
    def insight_feedback(
        entry_id: int, payload: FeedbackRequest, workspace_id: int | None = None
    ) -> dict[str, bool]:
        """Summary: Record a user reaction to an insight.

        Importance: Unknown or already-resolved ids report false instead of failing.
        Alternatives: Return 404 for unknown ids.
        """

        outcome = FEEDBACK_ACTIONS.get(payload.action.strip().lower())
        if outcome is None:
            raise HTTPException(status_code=400, detail="Unsupported feedback action")
        resolved_id = _workspace_id(workspace_id)
        return {"resolved": services.queue.resolve(entry_id, outcome, workspace_id=resolved_id)}

    @app.get("/stats", dependencies=[Depends(require_api_key)])
    def stats(workspace_id: int | None = None) -> dict[str, Any]:
        return services.stats.snapshot(_workspace_id(workspace_id))

    return app
