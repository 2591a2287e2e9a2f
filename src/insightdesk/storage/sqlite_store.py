"""Summary: SQLite storage implementation for InsightDesk.

Importance: Provides a local-first persistence layer for the per-workspace insight queue.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from insightdesk.models import (
    BubbleMode,
    DeliveryPreferences,
    DeliveryTrigger,
    FeedbackEvent,
    Resolution,
    ScheduledInsight,
    SignalCategory,
    Workspace,
)

_INSIGHT_COLUMNS = """
    id, workspace_id, category, content, context_snippet, source_conversation_id,
    source_message_id, detected_at, confidence, base_priority, priority_score,
    deadline_at, deadline_kind, surface_at, delivery_trigger, min_idle_seconds,
    context_tags, expanded_content, title, message, delivered_at, resolved,
    resolved_at, resolution, expires_at
"""

_RANKING = "base_priority DESC, confidence DESC, detected_at ASC, id ASC"


@dataclass(frozen=True)
class StoredWorkspace:
    """Summary: Workspace record with database identifier.

    Importance: Gives every queue entry a tenant to belong to.
    Alternatives: Use the slug as the only identifier.
    """

    id: int
    name: str
    slug: str


@dataclass(frozen=True)
class StoredInsight:
    """Summary: Queue entry record with database identifier.

    Importance: The unit the queue exposes to delivery clients and the API.
    Alternatives: Return raw rows and decode them in each caller.
    """

    id: int
    workspace_id: int
    category: SignalCategory
    content: str
    context_snippet: str
    source_conversation_id: str
    source_message_id: str | None
    detected_at: str
    confidence: float
    base_priority: int
    priority_score: float
    deadline_at: str | None
    deadline_kind: str | None
    surface_at: str
    delivery_trigger: DeliveryTrigger
    min_idle_seconds: int
    context_tags: list[str]
    expanded_content: str
    title: str
    message: str
    delivered_at: str | None
    resolved: bool
    resolved_at: str | None
    resolution: Resolution | None
    expires_at: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Summary: Serialize the entry for JSON responses.

        Importance: Keeps the API and CLI output format identical.
        Alternatives: Use a Pydantic response model.
        """

        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "category": self.category.value,
            "content": self.content,
            "context_snippet": self.context_snippet,
            "source_conversation_id": self.source_conversation_id,
            "source_message_id": self.source_message_id,
            "detected_at": self.detected_at,
            "confidence": self.confidence,
            "base_priority": self.base_priority,
            "priority_score": self.priority_score,
            "deadline_at": self.deadline_at,
            "deadline_kind": self.deadline_kind,
            "surface_at": self.surface_at,
            "delivery_trigger": self.delivery_trigger.value,
            "min_idle_seconds": self.min_idle_seconds,
            "context_tags": list(self.context_tags),
            "expanded_content": self.expanded_content,
            "title": self.title,
            "message": self.message,
            "delivered_at": self.delivered_at,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
            "resolution": self.resolution.value if self.resolution else None,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True)
class NewInsight:
    """Summary: Everything needed to insert a queue entry.

    Importance: Keeps the enqueue signature stable as delivery metadata grows.
    Alternatives: Pass a long list of positional arguments to the store.
    """

    workspace_id: int
    scheduled: ScheduledInsight
    priority_score: float
    delivery_trigger: DeliveryTrigger
    min_idle_seconds: int
    context_tags: list[str]
    expanded_content: str
    title: str
    message: str
    dedup_key: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class StoredFeedbackEvent:
    """Summary: Telemetry record with database identifier.

    Importance: Allows reviewing how users respond to surfaced insights.
    Alternatives: Ship events only to an external analytics service.
    """

    id: int
    workspace_id: int
    entry_id: int
    outcome: str
    category: str
    context_tags: list[str]
    recorded_at: str


class SqliteStore:
    """Summary: SQLite-backed storage for InsightDesk.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready for detection output and queue reads.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS workspaces (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT NOT NULL UNIQUE
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS insights (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workspace_id INTEGER NOT NULL,
                    category TEXT NOT NULL,
                    content TEXT NOT NULL,
                    context_snippet TEXT NOT NULL,
                    source_conversation_id TEXT NOT NULL,
                    source_message_id TEXT,
                    detected_at TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    base_priority INTEGER NOT NULL,
                    priority_score REAL NOT NULL,
                    deadline_at TEXT,
                    deadline_kind TEXT,
                    surface_at TEXT NOT NULL,
                    delivery_trigger TEXT NOT NULL,
                    min_idle_seconds INTEGER NOT NULL,
                    context_tags TEXT NOT NULL,
                    expanded_content TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    delivered_at TEXT,
                    resolved INTEGER NOT NULL DEFAULT 0,
                    resolved_at TEXT,
                    resolution TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_insights_pending
                ON insights (workspace_id, resolved, surface_at)
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS feedback_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workspace_id INTEGER NOT NULL,
                    entry_id INTEGER NOT NULL,
                    outcome TEXT NOT NULL,
                    category TEXT NOT NULL,
                    context_tags TEXT NOT NULL,
                    recorded_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS delivery_preferences (
                    workspace_id INTEGER PRIMARY KEY,
                    bubble_mode TEXT NOT NULL,
                    max_per_hour INTEGER NOT NULL,
                    max_per_session INTEGER NOT NULL,
                    min_interval_minutes INTEGER NOT NULL,
                    muted_categories TEXT NOT NULL,
                    expire_stale INTEGER NOT NULL,
                    refuse_deep_engagement INTEGER NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS delivery_sessions (
                    workspace_id INTEGER PRIMARY KEY,
                    started_at TEXT NOT NULL
                )
                """
            )
            connection.commit()
        self._ensure_column("insights", "dedup_key", "TEXT")
        self._ensure_column("insights", "expires_at", "TEXT")

    def ensure_workspace(self, workspace: Workspace) -> int:
        """Summary: Ensure a workspace exists and return its ID.

        Importance: Provides a stable tenant record for queue ownership.
        Alternatives: Accept arbitrary workspace identifiers without records.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO workspaces (name, slug) VALUES (?, ?)",
                (workspace.name, workspace.slug),
            )
            if cursor.rowcount:
                workspace_id = cursor.lastrowid
            else:
                cursor.execute("SELECT id FROM workspaces WHERE slug = ?", (workspace.slug,))
                row = cursor.fetchone()
                workspace_id = int(row[0]) if row else 0
            connection.commit()
        return int(workspace_id)

    def list_workspaces(self) -> list[StoredWorkspace]:
        """Summary: List all workspaces.

        Importance: Supports admin listing and CLI discovery.
        Alternatives: Store workspaces in the surrounding product only.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, name, slug FROM workspaces ORDER BY id ASC")
            rows = cursor.fetchall()
        return [StoredWorkspace(*row) for row in rows]

    def get_workspace(self, workspace_id: int) -> StoredWorkspace | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, name, slug FROM workspaces WHERE id = ?", (workspace_id,))
            row = cursor.fetchone()
        return StoredWorkspace(*row) if row else None

    def get_workspace_by_slug(self, slug: str) -> StoredWorkspace | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, name, slug FROM workspaces WHERE slug = ?", (slug,))
            row = cursor.fetchone()
        return StoredWorkspace(*row) if row else None

    def add_insight(self, insight: NewInsight) -> int:
        """Summary: Persist a queue entry and return its ID.

        Importance: Entries are append-only; later changes only mark resolution.
        Alternatives: Upsert on content to collapse repeats.
        """

        signal = insight.scheduled.signal
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO insights (
                    workspace_id, category, content, context_snippet, source_conversation_id,
                    source_message_id, detected_at, confidence, base_priority, priority_score,
                    deadline_at, deadline_kind, surface_at, delivery_trigger, min_idle_seconds,
                    context_tags, expanded_content, title, message, dedup_key, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    insight.workspace_id,
                    signal.category.value,
                    signal.content,
                    signal.context_snippet,
                    signal.source_conversation_id,
                    signal.source_message_id,
                    to_timestamp(signal.detected_at),
                    signal.confidence,
                    signal.base_priority,
                    insight.priority_score,
                    to_timestamp(signal.deadline_at) if signal.deadline_at else None,
                    signal.deadline_kind.value if signal.deadline_kind else None,
                    to_timestamp(insight.scheduled.surface_at),
                    insight.delivery_trigger.value,
                    insight.min_idle_seconds,
                    json.dumps(insight.context_tags),
                    insight.expanded_content,
                    insight.title,
                    insight.message,
                    insight.dedup_key,
                    to_timestamp(insight.expires_at) if insight.expires_at else None,
                ),
            )
            insight_id = cursor.lastrowid
            connection.commit()
        return int(insight_id)

    def get_insight(self, insight_id: int, workspace_id: int | None = None) -> StoredInsight | None:
        """Summary: Retrieve a queue entry by database ID.

        Importance: Supports feedback handling and API lookups.
        Alternatives: Filter entries in memory after listing all.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            if workspace_id is None:
                cursor.execute(f"SELECT {_INSIGHT_COLUMNS} FROM insights WHERE id = ?", (insight_id,))
            else:
                cursor.execute(
                    f"SELECT {_INSIGHT_COLUMNS} FROM insights WHERE id = ? AND workspace_id = ?",
                    (insight_id, workspace_id),
                )
            row = cursor.fetchone()
        return _row_to_insight(row) if row else None

    def list_insights(
        self, workspace_id: int, include_resolved: bool = False, limit: int = 50
    ) -> list[StoredInsight]:
        """Summary: List queue entries for a workspace in ranking order.

        Importance: Powers dashboards and CLI review of what is pending.
        Alternatives: Expose only the single next eligible entry.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            if include_resolved:
                cursor.execute(
                    f"""
                    SELECT {_INSIGHT_COLUMNS} FROM insights
                    WHERE workspace_id = ?
                    ORDER BY resolved ASC, {_RANKING}
                    LIMIT ?
                    """,
                    (workspace_id, limit),
                )
            else:
                cursor.execute(
                    f"""
                    SELECT {_INSIGHT_COLUMNS} FROM insights
                    WHERE workspace_id = ? AND resolved = 0
                    ORDER BY {_RANKING}
                    LIMIT ?
                    """,
                    (workspace_id, limit),
                )
            rows = cursor.fetchall()
        return [_row_to_insight(row) for row in rows]

    def select_eligible(
        self,
        workspace_id: int,
        now: datetime,
        idle_seconds: float,
        mark_delivered: bool,
        excluded_categories: Iterable[SignalCategory] = (),
        min_base_priority: int | None = None,
        skip_expired: bool = False,
    ) -> StoredInsight | None:
        """Summary: Select the top-ranked eligible entry, optionally marking it delivered.

        Importance: Selection and marking happen in one write transaction so a
        concurrent resolve cannot interleave. The optional filters back the
        workspace delivery preferences.
        Alternatives: Lock the workspace in application code.
        """

        now_text = to_timestamp(now)
        clauses = ["workspace_id = ?", "resolved = 0", "surface_at <= ?", "min_idle_seconds <= ?"]
        params: list[object] = [workspace_id, now_text, idle_seconds]
        excluded = sorted(category.value for category in excluded_categories)
        if excluded:
            clauses.append(f"category NOT IN ({', '.join('?' for _ in excluded)})")
            params.extend(excluded)
        if min_base_priority is not None:
            clauses.append("base_priority >= ?")
            params.append(min_base_priority)
        if skip_expired:
            clauses.append("(expires_at IS NULL OR expires_at > ?)")
            params.append(now_text)
        with self._connection() as connection:
            cursor = connection.cursor()
            if mark_delivered:
                cursor.execute("BEGIN IMMEDIATE")
            cursor.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                WHERE {' AND '.join(clauses)}
                ORDER BY {_RANKING}
                LIMIT 1
                """,
                params,
            )
            row = cursor.fetchone()
            if row is None:
                connection.rollback()
                return None
            if not mark_delivered:
                return _row_to_insight(row)
            cursor.execute(
                """
                UPDATE insights
                SET delivered_at = COALESCE(delivered_at, ?), resolution = ?
                WHERE id = ?
                """,
                (now_text, Resolution.DELIVERED.value, row[0]),
            )
            cursor.execute(f"SELECT {_INSIGHT_COLUMNS} FROM insights WHERE id = ?", (row[0],))
            updated = cursor.fetchone()
            connection.commit()
        return _row_to_insight(updated)

    def mark_delivered(
        self, insight_id: int, delivered_at: datetime, workspace_id: int | None = None
    ) -> bool:
        """Summary: Set the non-terminal delivered marker on an unresolved entry.

        Importance: Records that the user has seen an insight without closing it.
        Alternatives: Treat delivery as terminal.
        """

        return self._update_unresolved(
            """
            UPDATE insights
            SET delivered_at = COALESCE(delivered_at, ?), resolution = ?
            WHERE id = ? AND resolved = 0
            """,
            (to_timestamp(delivered_at), Resolution.DELIVERED.value, insight_id),
            workspace_id,
        )

    def mark_resolved(
        self,
        insight_id: int,
        resolution: Resolution,
        resolved_at: datetime,
        workspace_id: int | None = None,
    ) -> bool:
        """Summary: Terminate an unresolved entry with a dismissed or engaged outcome.

        Importance: Resolved entries stay for auditing but leave the queue.
        Alternatives: Delete entries once handled.
        """

        return self._update_unresolved(
            """
            UPDATE insights
            SET resolved = 1, resolved_at = ?, resolution = ?
            WHERE id = ? AND resolved = 0
            """,
            (to_timestamp(resolved_at), resolution.value, insight_id),
            workspace_id,
        )

    def find_unresolved_by_key(
        self, workspace_id: int, category: SignalCategory, dedup_key: str
    ) -> StoredInsight | None:
        """Summary: Find an unresolved entry with the same category and content key.

        Importance: Backs the optional cross-pass deduplication policy.
        Alternatives: Enforce uniqueness with a database constraint.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                WHERE workspace_id = ? AND category = ? AND dedup_key = ? AND resolved = 0
                ORDER BY id ASC
                LIMIT 1
                """,
                (workspace_id, category.value, dedup_key),
            )
            row = cursor.fetchone()
        return _row_to_insight(row) if row else None

    def count_insights_by_category(self, workspace_id: int) -> dict[str, int]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT category, COUNT(*) FROM insights
                WHERE workspace_id = ? AND resolved = 0
                GROUP BY category
                """,
                (workspace_id,),
            )
            rows = cursor.fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def count_insights_by_resolution(self, workspace_id: int) -> dict[str, int]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT COALESCE(resolution, 'pending'), COUNT(*) FROM insights
                WHERE workspace_id = ?
                GROUP BY COALESCE(resolution, 'pending')
                """,
                (workspace_id,),
            )
            rows = cursor.fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def log_feedback_event(self, event: FeedbackEvent) -> int:
        """Summary: Persist a feedback event for analytics.

        Importance: Tracks how users respond to each surfaced category.
        Alternatives: Use structured logs instead of database storage.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO feedback_events (
                    workspace_id, entry_id, outcome, category, context_tags, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.workspace_id,
                    event.entry_id,
                    event.outcome.value,
                    event.category.value,
                    json.dumps(event.context_tags),
                    to_timestamp(event.recorded_at),
                ),
            )
            event_id = cursor.lastrowid
            connection.commit()
        return int(event_id)

    def list_feedback_events(self, workspace_id: int, limit: int = 50) -> list[StoredFeedbackEvent]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, workspace_id, entry_id, outcome, category, context_tags, recorded_at
                FROM feedback_events
                WHERE workspace_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (workspace_id, limit),
            )
            rows = cursor.fetchall()
        return [
            StoredFeedbackEvent(
                id=row[0],
                workspace_id=row[1],
                entry_id=row[2],
                outcome=row[3],
                category=row[4],
                context_tags=json.loads(row[5]),
                recorded_at=row[6],
            )
            for row in rows
        ]

    def count_feedback_events(self, workspace_id: int) -> int:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM feedback_events WHERE workspace_id = ?", (workspace_id,)
            )
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def count_delivered_since(self, workspace_id: int, since: datetime) -> int:
        """Summary: Count entries first delivered at or after an instant.

        Importance: Backs the hourly and per-session interrupt budgets.
        Alternatives: Keep in-memory counters that reset on restart.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT COUNT(*) FROM insights
                WHERE workspace_id = ? AND delivered_at IS NOT NULL AND delivered_at >= ?
                """,
                (workspace_id, to_timestamp(since)),
            )
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def last_delivered_at(self, workspace_id: int) -> str | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT MAX(delivered_at) FROM insights WHERE workspace_id = ?", (workspace_id,)
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def get_preferences(self, workspace_id: int) -> DeliveryPreferences | None:
        """Summary: Load stored delivery preferences for a workspace.

        Importance: Workspaces without a row fall back to configured defaults.
        Alternatives: Store preferences as a JSON blob on the workspace row.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT bubble_mode, max_per_hour, max_per_session, min_interval_minutes,
                       muted_categories, expire_stale, refuse_deep_engagement
                FROM delivery_preferences WHERE workspace_id = ?
                """,
                (workspace_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return DeliveryPreferences(
            bubble_mode=BubbleMode(row[0]),
            max_per_hour=int(row[1]),
            max_per_session=int(row[2]),
            min_interval_minutes=int(row[3]),
            muted_categories=frozenset(SignalCategory(value) for value in json.loads(row[4])),
            expire_stale=bool(row[5]),
            refuse_deep_engagement=bool(row[6]),
        )

    def save_preferences(self, workspace_id: int, preferences: DeliveryPreferences) -> None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO delivery_preferences (
                    workspace_id, bubble_mode, max_per_hour, max_per_session,
                    min_interval_minutes, muted_categories, expire_stale, refuse_deep_engagement
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workspace_id,
                    preferences.bubble_mode.value,
                    preferences.max_per_hour,
                    preferences.max_per_session,
                    preferences.min_interval_minutes,
                    json.dumps(sorted(category.value for category in preferences.muted_categories)),
                    int(preferences.expire_stale),
                    int(preferences.refuse_deep_engagement),
                ),
            )
            connection.commit()

    def start_session(self, workspace_id: int, started_at: datetime) -> None:
        """Summary: Record the start of a delivery session for a workspace.

        Importance: The per-session budget counts deliveries from this instant.
        Alternatives: Track sessions only on the client.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO delivery_sessions (workspace_id, started_at) VALUES (?, ?)",
                (workspace_id, to_timestamp(started_at)),
            )
            connection.commit()

    def session_started_at(self, workspace_id: int) -> str | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT started_at FROM delivery_sessions WHERE workspace_id = ?", (workspace_id,)
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def _update_unresolved(
        self, statement: str, params: tuple[object, ...], workspace_id: int | None
    ) -> bool:
        if workspace_id is not None:
            statement = statement + " AND workspace_id = ?"
            params = params + (workspace_id,)
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(statement, params)
            changed = cursor.rowcount > 0
            connection.commit()
        return changed

    def _ensure_column(self, table: str, column: str, column_type: str = "INTEGER") -> None:
        """Summary: Ensure a column exists in a table.

        Importance: Provides lightweight migration support for new fields.
        Alternatives: Use a migration tool to manage schema changes.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"PRAGMA table_info({table})")
            columns = {row[1] for row in cursor.fetchall()}
            if column in columns:
                return
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path, timeout=10)
        try:
            yield connection
        finally:
            connection.close()


def to_timestamp(moment: datetime) -> str:
    """Summary: Normalize a datetime to a sortable UTC ISO string.

    Importance: Queue eligibility compares timestamps as text inside SQLite.
    Alternatives: Store epoch seconds as integers.
    """

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_insight(row: tuple) -> StoredInsight:
    return StoredInsight(
        id=row[0],
        workspace_id=row[1],
        category=SignalCategory(row[2]),
        content=row[3],
        context_snippet=row[4],
        source_conversation_id=row[5],
        source_message_id=row[6],
        detected_at=row[7],
        confidence=row[8],
        base_priority=row[9],
        priority_score=row[10],
        deadline_at=row[11],
        deadline_kind=row[12],
        surface_at=row[13],
        delivery_trigger=DeliveryTrigger(row[14]),
        min_idle_seconds=row[15],
        context_tags=json.loads(row[16]),
        expanded_content=row[17],
        title=row[18],
        message=row[19],
        delivered_at=row[20],
        resolved=bool(row[21]),
        resolved_at=row[22],
        resolution=Resolution(row[23]) if row[23] else None,
        expires_at=row[24],
    )
