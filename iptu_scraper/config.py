from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .failure_tracker import DEFAULT_COOLDOWN_SECS, DEFAULT_FAILURE_THRESHOLD, DEFAULT_WINDOW_SECS
from .session import DEFAULT_WEBDRIVER_URL


@dataclass(frozen=True)
class ScraperConfig:
    """Engine tuning. Durations are in seconds."""

    concurrency: int = 1
    rate_limit_per_hour: int = 100
    headless: bool = True
    timeout_secs: int = 60
    block_size: int = 12
    machine_id: str = "cli"
    failure_window_secs: float = DEFAULT_WINDOW_SECS
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    cooldown_secs: float = DEFAULT_COOLDOWN_SECS
    cooldown_progress_secs: float = 120.0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.block_size < 1:
            raise ValueError("block_size must be at least 1")
        if self.rate_limit_per_hour < 0:
            raise ValueError("rate_limit_per_hour cannot be negative")


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str]
    supabase_anon_key: Optional[str]
    supabase_service_role_key: Optional[str]
    webdriver_url: str = DEFAULT_WEBDRIVER_URL
    machine_id: str = "cli"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Read settings from the environment, loading a ``.env`` file first."""
        if dotenv:
            load_dotenv()
        return cls(
            supabase_url=_env("SUPABASE_URL"),
            supabase_anon_key=_env("SUPABASE_ANON_KEY"),
            supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            webdriver_url=_env("WEBDRIVER_URL") or DEFAULT_WEBDRIVER_URL,
            machine_id=_env("MACHINE_ID") or "cli",
            log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        )

    def require_supabase(self) -> None:
        missing = [
            name
            for name, value in (
                ("SUPABASE_URL", self.supabase_url),
                ("SUPABASE_ANON_KEY", self.supabase_anon_key),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} must be set")


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()
