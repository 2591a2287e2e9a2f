"""Summary: Command-line interface for InsightDesk.

Importance: Provides a local-first entry point for feeding text and working the queue.
Alternatives: Drive everything through the HTTP API.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from insightdesk.app import build_services
from insightdesk.config import AppConfig, parse_bool, parse_categories
from insightdesk.models import BubbleMode, EngagementLevel, Resolution
from insightdesk.storage.sqlite_store import StoredInsight


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="InsightDesk CLI")
    parser.add_argument("--workspace", type=int, default=None, help="Workspace ID")
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Show signals found in text")
    detect.add_argument("text", type=str, nargs="?", default=None)

    ingest = subparsers.add_parser("ingest", help="Detect and queue insights from text")
    ingest.add_argument("text", type=str, nargs="?", default=None)
    ingest.add_argument("--conversation", type=str, default="cli")
    ingest.add_argument("--message", type=str, default=None)

    list_insights = subparsers.add_parser("list-insights", help="List queued insights")
    list_insights.add_argument("--all", action="store_true", help="Include resolved entries")
    list_insights.add_argument("--limit", type=int, default=20)

    for name, help_text in (
        ("next", "Deliver the next eligible insight"),
        ("peek", "Show the next eligible insight"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--idle-seconds", type=float, default=0)
        command.add_argument(
            "--engagement",
            type=str,
            choices=[level.value for level in EngagementLevel],
            default=None,
        )

    resolve = subparsers.add_parser("resolve", help="Record an outcome for an insight")
    resolve.add_argument("entry_id", type=int)
    resolve.add_argument("outcome", type=str, choices=[outcome.value for outcome in Resolution])

    subparsers.add_parser("stats", help="Show queue statistics")

    preferences = subparsers.add_parser(
        "preferences", help="Show or update workspace delivery preferences"
    )
    preferences.add_argument(
        "--bubble-mode", type=str, choices=[mode.value for mode in BubbleMode], default=None
    )
    preferences.add_argument("--max-per-hour", type=int, default=None)
    preferences.add_argument("--max-per-session", type=int, default=None)
    preferences.add_argument("--min-interval-minutes", type=int, default=None)
    preferences.add_argument(
        "--muted", type=str, default=None, help="Comma-separated categories, empty to clear"
    )
    preferences.add_argument("--expire-stale", type=str, default=None)
    preferences.add_argument("--refuse-deep-engagement", type=str, default=None)

    subparsers.add_parser("start-session", help="Start a delivery session for the budget")

    add_workspace = subparsers.add_parser("add-workspace", help="Create a workspace")
    add_workspace.add_argument("name", type=str)
    add_workspace.add_argument("slug", type=str)

    subparsers.add_parser("list-workspaces", help="List workspaces")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser


def format_entry(entry: StoredInsight) -> str:
    status = entry.resolution.value if entry.resolution else "pending"
    return (
        f"{entry.id}: [{entry.category.value} p{entry.base_priority} "
        f"c{entry.confidence:.2f}] {entry.content} (surface {entry.surface_at}, {status})"
    )


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives local workflows without a UI.
    Alternatives: Invoke services via an HTTP API.
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )
    services = build_services(config)
    workspace_id = args.workspace or services.default_workspace_id

    if args.command == "detect":
        text = args.text if args.text is not None else sys.stdin.read()
        scheduled = services.detection.scan(text, "cli")
        if not scheduled:
            print("No signals.")
        for item in scheduled:
            signal = item.signal
            print(
                f"{signal.category.value} ({signal.confidence:.2f}, p{signal.base_priority}): "
                f"{signal.content} -> {item.surface_at.isoformat()}"
            )
        return

    if args.command == "ingest":
        text = args.text if args.text is not None else sys.stdin.read()
        entry_ids = services.detection.process_exchange(
            workspace_id, text, args.conversation, args.message
        )
        print(f"Queued {len(entry_ids)} insights.")
        return

    if args.command == "list-insights":
        for entry in services.queue.list_entries(
            workspace_id, include_resolved=args.all, limit=args.limit
        ):
            print(format_entry(entry))
        return

    if args.command in {"next", "peek"}:
        engagement = EngagementLevel(args.engagement) if args.engagement else None
        selector = services.queue.next_eligible if args.command == "next" else services.queue.peek
        entry = selector(workspace_id, idle_seconds=args.idle_seconds, engagement_level=engagement)
        if entry is None:
            print("Nothing eligible.")
            return
        print(format_entry(entry))
        print(f"{entry.title}: {entry.message}")
        return

    if args.command == "resolve":
        changed = services.queue.resolve(
            args.entry_id, Resolution(args.outcome), workspace_id=workspace_id
        )
        print("Resolved." if changed else "No change (unknown or already resolved).")
        return

    if args.command == "stats":
        snapshot = services.stats.snapshot(workspace_id)
        for key, value in snapshot.items():
            print(f"{key}: {value}")
        return

    if args.command == "preferences":
        current = services.queue.preferences(workspace_id)
        changes = {}
        if args.bubble_mode is not None:
            changes["bubble_mode"] = BubbleMode(args.bubble_mode)
        if args.max_per_hour is not None:
            changes["max_per_hour"] = args.max_per_hour
        if args.max_per_session is not None:
            changes["max_per_session"] = args.max_per_session
        if args.min_interval_minutes is not None:
            changes["min_interval_minutes"] = args.min_interval_minutes
        if args.muted is not None:
            changes["muted_categories"] = parse_categories(args.muted)
        if args.expire_stale is not None:
            changes["expire_stale"] = parse_bool(args.expire_stale)
        if args.refuse_deep_engagement is not None:
            changes["refuse_deep_engagement"] = parse_bool(args.refuse_deep_engagement)
        if changes:
            current = dataclasses.replace(current, **changes)
            services.queue.update_preferences(workspace_id, current)
        print(f"bubble_mode: {current.bubble_mode.value}")
        print(f"max_per_hour: {current.max_per_hour}")
        print(f"max_per_session: {current.max_per_session}")
        print(f"min_interval_minutes: {current.min_interval_minutes}")
        muted = ", ".join(sorted(category.value for category in current.muted_categories))
        print(f"muted_categories: {muted or '-'}")
        print(f"expire_stale: {current.expire_stale}")
        print(f"refuse_deep_engagement: {current.refuse_deep_engagement}")
        return

    if args.command == "start-session":
        started_at = services.queue.begin_session(workspace_id)
        print(f"Session started at {started_at.isoformat()}.")
        return

    if args.command == "add-workspace":
        created = services.workspaces.create_workspace(args.name, args.slug)
        print(f"Workspace {created} ({args.slug}).")
        return

    if args.command == "list-workspaces":
        for workspace in services.workspaces.list_workspaces():
            print(f"{workspace.id}: {workspace.name} ({workspace.slug})")
        return

    if args.command == "serve":
        import uvicorn

        from insightdesk.api import create_app

        uvicorn.run(
            create_app(config),
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return


if __name__ == "__main__":
    run_cli()
