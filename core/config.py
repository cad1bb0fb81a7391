"""Runtime settings, read from CARTPILOT_* environment variables (and .env)."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "CARTPILOT_"


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    db_url: str = "sqlite+aiosqlite:///cartpilot.db"
    timezone: str = "UTC"

    # ── Trigger engine ───────────────────────────────────────────────────────
    poll_interval_seconds: float = 30.0
    due_window_seconds: float = 30.0
    # Independent of the due window: how far back a host-visible scan reaches.
    recovery_window_seconds: float = 300.0
    default_snooze_minutes: int = 5

    # ── Automation engine ────────────────────────────────────────────────────
    auth_timeout_seconds: float = 120.0
    modal_timeout_seconds: float = 2.0
    search_settle_seconds: float = 5.0
    scroll_steps: int = 5
    page_load_timeout_seconds: float = 30.0
    headless: bool = False
    profile_dir: Path = Field(default_factory=lambda: Path.home() / ".cartpilot" / "profiles")

    # ── Logging / API ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True
    debug: bool = False

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> Settings:
        """Build settings from the process environment, loading .env first."""
        if dotenv:
            load_dotenv()
        defaults = cls()
        return cls(
            db_url=_env("DB_URL", defaults.db_url),
            timezone=_env("TIMEZONE", defaults.timezone),
            poll_interval_seconds=float(_env("POLL_INTERVAL_SECONDS", str(defaults.poll_interval_seconds))),
            due_window_seconds=float(_env("DUE_WINDOW_SECONDS", str(defaults.due_window_seconds))),
            recovery_window_seconds=float(
                _env("RECOVERY_WINDOW_SECONDS", str(defaults.recovery_window_seconds))
            ),
            default_snooze_minutes=int(_env("DEFAULT_SNOOZE_MINUTES", str(defaults.default_snooze_minutes))),
            auth_timeout_seconds=float(_env("AUTH_TIMEOUT_SECONDS", str(defaults.auth_timeout_seconds))),
            modal_timeout_seconds=float(_env("MODAL_TIMEOUT_SECONDS", str(defaults.modal_timeout_seconds))),
            search_settle_seconds=float(_env("SEARCH_SETTLE_SECONDS", str(defaults.search_settle_seconds))),
            scroll_steps=int(_env("SCROLL_STEPS", str(defaults.scroll_steps))),
            page_load_timeout_seconds=float(
                _env("PAGE_LOAD_TIMEOUT_SECONDS", str(defaults.page_load_timeout_seconds))
            ),
            headless=_env_bool("HEADLESS", defaults.headless),
            profile_dir=Path(_env("PROFILE_DIR", str(defaults.profile_dir))).expanduser(),
            log_level=_env("LOG_LEVEL", defaults.log_level),
            log_json=_env_bool("LOG_JSON", defaults.log_json),
            debug=_env_bool("DEBUG", defaults.debug),
        )
