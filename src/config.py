"""Runtime configuration for the review text collector.

All knobs come from environment variables so the same image can run a small
smoke batch locally or the full nightly job.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from src.models.retrieval import ChannelId

logger = logging.getLogger(__name__)

SEARCH_API_KEY = "search_api"

_TRUTHY = ("1", "true", "yes", "on")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}; using {default}")
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}; using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class ChannelCeiling:
    """Spend limits for one metered resource. ``None`` means unlimited."""

    daily_sessions: int | None = None
    run_sessions: int | None = None
    daily_minutes: float | None = None

    @property
    def metered(self) -> bool:
        return any(
            v is not None
            for v in (self.daily_sessions, self.run_sessions, self.daily_minutes)
        )


@dataclass(frozen=True)
class SelectionConfig:
    """Inputs to the channel selector that do not come from the target."""

    forced_channel: ChannelId | None = None
    aggressive: bool = False


@dataclass(frozen=True)
class CollectorSettings:
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    ceilings: dict[str, ChannelCeiling] = field(default_factory=dict)

    # Orchestrator
    max_attempts_per_channel: int = 3
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 60.0
    target_time_budget_seconds: float = 300.0

    # Per-channel timeouts
    direct_browser_timeout: float = 45.0
    remote_browser_timeout: float = 90.0
    rendering_proxy_timeout: float = 60.0
    unblock_proxy_timeout: float = 30.0
    snapshot_timeout: float = 30.0

    # Run loop
    batch_size: int = 10
    inter_target_delay_seconds: float = 2.0
    run_budget_seconds: float | None = None
    state_freshness_hours: float = 24.0
    retry_failed: bool = False

    # Browser health
    max_browser_crashes: int = 3
    max_recreate_attempts: int = 2

    # Ledger
    budget_history_days: int = 30

    # Rediscovery
    rediscovery_enabled: bool = True
    search_min_interval_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> "CollectorSettings":
        forced = os.getenv("FORCE_CHANNEL", "").strip().lower() or None
        forced_channel = None
        if forced:
            try:
                forced_channel = ChannelId(forced)
            except ValueError:
                logger.warning(f"Unknown FORCE_CHANNEL={forced!r}; ignoring")

        ceilings = {
            ChannelId.REMOTE_BROWSER.value: ChannelCeiling(
                daily_sessions=_env_int("BROWSERBASE_DAILY_SESSIONS", 30),
                run_sessions=_env_int("BROWSERBASE_RUN_SESSIONS", 15),
                daily_minutes=_env_float("BROWSERBASE_DAILY_MINUTES", None),
            ),
            ChannelId.RENDERING_PROXY.value: ChannelCeiling(
                daily_sessions=_env_int("SCRAPINGBEE_DAILY_REQUESTS", 200),
                run_sessions=_env_int("SCRAPINGBEE_RUN_REQUESTS", None),
            ),
            ChannelId.UNBLOCK_PROXY.value: ChannelCeiling(
                daily_sessions=_env_int("UNBLOCK_DAILY_REQUESTS", 200),
                run_sessions=_env_int("UNBLOCK_RUN_REQUESTS", None),
            ),
            SEARCH_API_KEY: ChannelCeiling(
                daily_sessions=_env_int("SEARCH_DAILY_QUERIES", 100),
                run_sessions=_env_int("SEARCH_RUN_QUERIES", 25),
            ),
        }

        return cls(
            selection=SelectionConfig(
                forced_channel=forced_channel,
                aggressive=_env_bool("AGGRESSIVE_MODE", False),
            ),
            ceilings=ceilings,
            max_attempts_per_channel=_env_int("MAX_ATTEMPTS_PER_CHANNEL", 3) or 1,
            backoff_base_seconds=_env_float("BACKOFF_BASE_SECONDS", 2.0) or 0.0,
            backoff_max_seconds=_env_float("BACKOFF_MAX_SECONDS", 60.0) or 0.0,
            target_time_budget_seconds=_env_float("TARGET_TIME_BUDGET_SECONDS", 300.0)
            or 300.0,
            direct_browser_timeout=_env_float("DIRECT_BROWSER_TIMEOUT", 45.0) or 45.0,
            remote_browser_timeout=_env_float("REMOTE_BROWSER_TIMEOUT", 90.0) or 90.0,
            rendering_proxy_timeout=_env_float("RENDERING_PROXY_TIMEOUT", 60.0)
            or 60.0,
            unblock_proxy_timeout=_env_float("UNBLOCK_PROXY_TIMEOUT", 30.0) or 30.0,
            snapshot_timeout=_env_float("SNAPSHOT_TIMEOUT", 30.0) or 30.0,
            batch_size=max(_env_int("BATCH_SIZE", 10) or 10, 1),
            inter_target_delay_seconds=_env_float("INTER_TARGET_DELAY", 2.0) or 0.0,
            run_budget_seconds=_env_float("RUN_BUDGET_SECONDS", None),
            state_freshness_hours=_env_float("STATE_FRESHNESS_HOURS", 24.0) or 24.0,
            retry_failed=_env_bool("RETRY_FAILED", False),
            max_browser_crashes=_env_int("MAX_BROWSER_CRASHES", 3) or 0,
            max_recreate_attempts=_env_int("MAX_BROWSER_RECREATE_ATTEMPTS", 2) or 1,
            budget_history_days=_env_int("BUDGET_HISTORY_DAYS", 30) or 30,
            rediscovery_enabled=_env_bool("ENABLE_REDISCOVERY", True),
            search_min_interval_seconds=_env_float("SEARCH_MIN_INTERVAL", 1.0)
            or 0.0,
        )
