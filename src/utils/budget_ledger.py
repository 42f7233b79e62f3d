"""Budget Ledger - admission control and spend accounting for metered channels.

Remote browser sessions, rendering proxy calls and search queries all cost
money. The ledger keeps one JSON document in the state store:

    {
        "date": "2026-10-19",
        "per_channel": {
            "remote_browser": {"sessions_today": 4, "sessions_this_run": 2,
                               "minutes_today": 7.5},
            ...
        },
        "history": [{"date": "2026-10-18", "per_channel": {...}}, ...]
    }

Counters move when an attempt *starts*; a failed attempt costs the same as a
successful one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from src.config import ChannelCeiling
from src.crawler import BudgetExceededError
from src.models.retrieval import BudgetState
from src.models.store import StateStore

logger = logging.getLogger(__name__)

STORE_KEY = "budget_ledger"


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _key(channel_id: Any) -> str:
    return str(getattr(channel_id, "value", channel_id))


def _empty_counters() -> dict[str, Any]:
    return {"sessions_today": 0, "sessions_this_run": 0, "minutes_today": 0.0}


class BudgetLedger:
    """Tracks spend against per-channel ceilings."""

    def __init__(
        self,
        store: StateStore,
        ceilings: dict[str, ChannelCeiling] | None = None,
        history_days: int = 30,
        today: Callable[[], str] = _utc_today,
    ):
        self.store = store
        self.ceilings = {_key(k): v for k, v in (ceilings or {}).items()}
        self.history_days = history_days
        self._today = today
        self._doc: dict[str, Any] = {}
        self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        doc = self.store.get(STORE_KEY) or {}
        today = self._today()
        per_channel = doc.get("per_channel") or {}
        history = list(doc.get("history") or [])

        persisted_date = doc.get("date")
        if persisted_date and persisted_date != today:
            if per_channel:
                history.append({"date": persisted_date, "per_channel": per_channel})
                logger.info(
                    f"💰 Budget day rolled over {persisted_date} -> {today}; "
                    f"archived {len(per_channel)} channel counters"
                )
            per_channel = {}

        self._doc = {
            "date": today,
            "per_channel": per_channel,
            "history": history[-self.history_days :] if self.history_days else [],
        }

    def flush(self) -> None:
        self.store.put(STORE_KEY, self._doc)
        logger.debug("Budget ledger flushed")

    def begin_run(self, resume: bool = False) -> None:
        """Start a new run: per-run counters reset unless resuming one."""
        if resume:
            return
        for counters in self._doc["per_channel"].values():
            counters["sessions_this_run"] = 0

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def _counters(self, channel_id: str) -> dict[str, Any]:
        per_channel = self._doc["per_channel"]
        if channel_id not in per_channel:
            per_channel[channel_id] = _empty_counters()
        return per_channel[channel_id]

    def _limit_hit(self, channel_id: str, cost: float) -> tuple[str, float] | None:
        ceiling = self.ceilings.get(channel_id)
        if ceiling is None or not ceiling.metered:
            return None
        counters = self._doc["per_channel"].get(channel_id) or _empty_counters()
        if (
            ceiling.daily_sessions is not None
            and counters["sessions_today"] + cost > ceiling.daily_sessions
        ):
            return "daily_sessions", ceiling.daily_sessions
        if (
            ceiling.run_sessions is not None
            and counters["sessions_this_run"] + cost > ceiling.run_sessions
        ):
            return "run_sessions", ceiling.run_sessions
        if (
            ceiling.daily_minutes is not None
            and counters["minutes_today"] >= ceiling.daily_minutes
        ):
            return "daily_minutes", ceiling.daily_minutes
        return None

    def admit(self, channel_id: Any) -> bool:
        return self._limit_hit(_key(channel_id), 1) is None

    def charge(self, channel_id: Any, cost: int = 1) -> None:
        """Record the start of a metered call.

        Raises:
            BudgetExceededError: if the charge would pass a ceiling. Nothing
                is recorded in that case.
        """
        key = _key(channel_id)
        hit = self._limit_hit(key, cost)
        if hit is not None:
            raise BudgetExceededError(key, *hit)
        counters = self._counters(key)
        counters["sessions_today"] += cost
        counters["sessions_this_run"] += cost

    def record_minutes(self, channel_id: Any, minutes: float) -> None:
        if minutes <= 0:
            return
        counters = self._counters(_key(channel_id))
        counters["minutes_today"] = round(counters["minutes_today"] + minutes, 3)

    def exhausted_channels(self) -> set[str]:
        return {key for key in self.ceilings if not self.admit(key)}

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def state(self, channel_id: Any) -> BudgetState:
        key = _key(channel_id)
        counters = self._doc["per_channel"].get(key) or _empty_counters()
        return BudgetState(
            channel_id=key,
            date=self._doc["date"],
            sessions_used_today=counters["sessions_today"],
            sessions_used_this_run=counters["sessions_this_run"],
            minutes_used=counters["minutes_today"],
        )

    def snapshot(self) -> dict[str, Any]:
        """Usage and remaining headroom per known channel."""
        channels = sorted(set(self.ceilings) | set(self._doc["per_channel"]))
        out: dict[str, Any] = {"date": self._doc["date"], "channels": {}}
        for key in channels:
            state = self.state(key)
            ceiling = self.ceilings.get(key, ChannelCeiling())
            out["channels"][key] = {
                "sessions_today": state.sessions_used_today,
                "sessions_this_run": state.sessions_used_this_run,
                "minutes_today": state.minutes_used,
                "daily_ceiling": ceiling.daily_sessions,
                "run_ceiling": ceiling.run_sessions,
                "minutes_ceiling": ceiling.daily_minutes,
                "admitted": self.admit(key),
            }
        return out

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._doc["history"])
