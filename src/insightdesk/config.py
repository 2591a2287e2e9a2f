"""Summary: Application configuration for InsightDesk.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass

from insightdesk.models import BubbleMode, DeliveryPreferences, SignalCategory


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for storage, the API, and delivery timing.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    api_host: str
    api_port: int
    api_key: str
    default_workspace_name: str
    default_workspace_slug: str
    poll_interval_seconds: float
    connected_reset_seconds: float
    default_min_idle_seconds: int
    cross_pass_dedup: bool
    log_level: str
    default_bubble_mode: str = "on"
    default_max_per_hour: int = 0
    default_max_per_session: int = 0
    default_min_interval_minutes: int = 0
    default_muted_categories: str = ""
    expire_stale_insights: bool = False
    refuse_deep_engagement: bool = False

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("INSIGHTDESK_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("INSIGHTDESK_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("INSIGHTDESK_API_PORT", defaults["api_port"])),
            api_key=os.getenv("INSIGHTDESK_API_KEY", defaults["api_key"]),
            default_workspace_name=os.getenv(
                "INSIGHTDESK_DEFAULT_WORKSPACE_NAME", defaults["default_workspace_name"]
            ),
            default_workspace_slug=os.getenv(
                "INSIGHTDESK_DEFAULT_WORKSPACE_SLUG", defaults["default_workspace_slug"]
            ),
            poll_interval_seconds=float(
                os.getenv("INSIGHTDESK_POLL_INTERVAL_SECONDS", defaults["poll_interval_seconds"])
            ),
            connected_reset_seconds=float(
                os.getenv(
                    "INSIGHTDESK_CONNECTED_RESET_SECONDS", defaults["connected_reset_seconds"]
                )
            ),
            default_min_idle_seconds=int(
                os.getenv(
                    "INSIGHTDESK_DEFAULT_MIN_IDLE_SECONDS", defaults["default_min_idle_seconds"]
                )
            ),
            cross_pass_dedup=parse_bool(
                os.getenv("INSIGHTDESK_CROSS_PASS_DEDUP", defaults["cross_pass_dedup"])
            ),
            log_level=os.getenv("INSIGHTDESK_LOG_LEVEL", defaults["log_level"]),
            default_bubble_mode=os.getenv(
                "INSIGHTDESK_DEFAULT_BUBBLE_MODE", defaults["default_bubble_mode"]
            ),
            default_max_per_hour=int(
                os.getenv("INSIGHTDESK_DEFAULT_MAX_PER_HOUR", defaults["default_max_per_hour"])
            ),
            default_max_per_session=int(
                os.getenv(
                    "INSIGHTDESK_DEFAULT_MAX_PER_SESSION", defaults["default_max_per_session"]
                )
            ),
            default_min_interval_minutes=int(
                os.getenv(
                    "INSIGHTDESK_DEFAULT_MIN_INTERVAL_MINUTES",
                    defaults["default_min_interval_minutes"],
                )
            ),
            default_muted_categories=os.getenv(
                "INSIGHTDESK_DEFAULT_MUTED_CATEGORIES", defaults["default_muted_categories"]
            ),
            expire_stale_insights=parse_bool(
                os.getenv("INSIGHTDESK_EXPIRE_STALE_INSIGHTS", defaults["expire_stale_insights"])
            ),
            refuse_deep_engagement=parse_bool(
                os.getenv(
                    "INSIGHTDESK_REFUSE_DEEP_ENGAGEMENT", defaults["refuse_deep_engagement"]
                )
            ),
        )

    def delivery_preferences(self) -> DeliveryPreferences:
        """Summary: Delivery preferences for workspaces that never stored their own.

        Importance: The shipped defaults impose no throttling at all.
        Alternatives: Require every workspace to save preferences explicitly.
        """

        return DeliveryPreferences(
            bubble_mode=BubbleMode(self.default_bubble_mode.strip().lower()),
            max_per_hour=self.default_max_per_hour,
            max_per_session=self.default_max_per_session,
            min_interval_minutes=self.default_min_interval_minutes,
            muted_categories=parse_categories(self.default_muted_categories),
            expire_stale=self.expire_stale_insights,
            refuse_deep_engagement=self.refuse_deep_engagement,
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_bool(value: str | bool) -> bool:
    """Interpret common truthy strings from env files."""

    if isinstance(value, bool):
        return value
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_categories(value: str) -> frozenset[SignalCategory]:
    """Parse a comma-separated list of category tags."""

    return frozenset(
        SignalCategory(part.strip().lower()) for part in value.split(",") if part.strip()
    )
