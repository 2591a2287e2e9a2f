"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from insightdesk.config import AppConfig
from insightdesk.delivery import BubbleSession, QueueInsightSource
from insightdesk.engagement import EngagementTracker
from insightdesk.handoff import ConversationHandoff, LoggingConversationHandoff
from insightdesk.models import Workspace
from insightdesk.services import (
    CrossPassDedupPolicy,
    DetectionService,
    InsightQueueService,
    StatsService,
    WorkspaceService,
)
from insightdesk.storage.sqlite_store import SqliteStore
from insightdesk.telemetry import StoreTelemetrySink, TelemetrySink


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for building services.

    Importance: Reuses storage and telemetry across workspaces and sessions.
    Alternatives: Rebuild dependencies for every request.
    """

    store: SqliteStore
    telemetry: TelemetrySink
    config: AppConfig

    def build_services(self, default_workspace_id: int) -> "AppServices":
        """Summary: Build the service bundle from shared context.

        Importance: Every entrypoint sees the same queue semantics.
        Alternatives: Use a dependency injection container.
        """

        queue = InsightQueueService(
            store=self.store,
            telemetry=self.telemetry,
            default_min_idle_seconds=self.config.default_min_idle_seconds,
            default_preferences=self.config.delivery_preferences(),
        )
        dedup_policy = CrossPassDedupPolicy(store=self.store) if self.config.cross_pass_dedup else None
        return AppServices(
            workspaces=WorkspaceService(store=self.store),
            queue=queue,
            detection=DetectionService(queue=queue, dedup_policy=dedup_policy),
            stats=StatsService(store=self.store),
            store=self.store,
            config=self.config,
            default_workspace_id=default_workspace_id,
        )


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for InsightDesk.

    Importance: Simplifies passing dependencies to the CLI and API layers.
    Alternatives: Pass the store around and build services on demand.
    """

    workspaces: WorkspaceService
    queue: InsightQueueService
    detection: DetectionService
    stats: StatsService
    store: SqliteStore
    config: AppConfig
    default_workspace_id: int

    def bubble_session(
        self,
        workspace_id: int | None = None,
        handoff: ConversationHandoff | None = None,
        tracker: EngagementTracker | None = None,
    ) -> BubbleSession:
        """Summary: Build a delivery session bound to one workspace.

        Importance: Applies configured poll and reset timings consistently.
        Alternatives: Construct sessions by hand in each client.
        """

        source = QueueInsightSource(self.queue, workspace_id or self.default_workspace_id)
        return BubbleSession(
            source=source,
            tracker=tracker,
            handoff=handoff or LoggingConversationHandoff(),
            poll_interval_seconds=self.config.poll_interval_seconds,
            connected_reset_seconds=self.config.connected_reset_seconds,
        )


def build_context(config: AppConfig) -> AppContext:
    """Summary: Build shared context from configuration.

    Importance: Initializes the schema once per process.
    Alternatives: Construct dependencies separately per request.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    return AppContext(store=store, telemetry=StoreTelemetrySink(store), config=config)


def build_services(config: AppConfig) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path for the application.
    Alternatives: Instantiate services directly within the CLI entrypoint.
    """

    context = build_context(config)
    workspace = Workspace(
        name=config.default_workspace_name, slug=config.default_workspace_slug
    )
    workspace_id = context.store.ensure_workspace(workspace)
    return context.build_services(workspace_id)
