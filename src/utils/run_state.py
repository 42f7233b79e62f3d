"""Resumable per-target processing ledger."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from dateutil import parser as dateparser

from src.models.retrieval import RunState, utcnow
from src.models.store import StateStore

logger = logging.getLogger(__name__)

STORE_KEY = "run_state"


class RunStateStore:
    """Tracks which target ids reached a terminal state.

    Persisted state is honored only when its ``started_at`` falls inside the
    freshness window; anything older is discarded and the run starts clean.
    """

    def __init__(
        self,
        store: StateStore,
        freshness_hours: float = 24.0,
        retry_failed: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.freshness = timedelta(hours=freshness_hours)
        self.retry_failed = retry_failed
        self._clock = clock
        self.state = RunState(started_at=clock())
        self.resumed = False
        self._processed: set[str] = set()
        self._failed: set[str] = set()

    def load(self) -> RunState:
        doc = self.store.get(STORE_KEY)
        now = self._clock()
        if doc:
            try:
                started_at = dateparser.isoparse(doc["started_at"])
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Discarding unreadable run state: {exc}")
                started_at = None

            if started_at is not None and now - started_at <= self.freshness:
                self.state = RunState(
                    processed_ids=list(doc.get("processed_ids") or []),
                    failed_ids=list(doc.get("failed_ids") or []),
                    started_at=started_at,
                )
                self.resumed = True
                logger.info(
                    f"🔄 Resuming run from {started_at.isoformat()}: "
                    f"{len(self.state.processed_ids)} processed, "
                    f"{len(self.state.failed_ids)} failed"
                )
            elif started_at is not None:
                logger.info(
                    f"Run state from {started_at.isoformat()} is older than "
                    f"{self.freshness}; starting fresh"
                )

        if not self.resumed:
            self.state = RunState(started_at=now)

        self._processed = set(self.state.processed_ids)
        self._failed = set(self.state.failed_ids)
        return self.state

    def should_process(self, target_id: str) -> bool:
        if target_id in self._processed:
            return False
        if target_id in self._failed:
            return self.retry_failed
        return True

    def mark_processed(self, target_id: str) -> None:
        if target_id in self._failed:
            self._failed.discard(target_id)
            self.state.failed_ids.remove(target_id)
        if target_id not in self._processed:
            self._processed.add(target_id)
            self.state.processed_ids.append(target_id)

    def mark_failed(self, target_id: str) -> None:
        if target_id in self._processed or target_id in self._failed:
            return
        self._failed.add(target_id)
        self.state.failed_ids.append(target_id)

    def flush(self) -> None:
        self.store.put(
            STORE_KEY,
            {
                "processed_ids": list(self.state.processed_ids),
                "failed_ids": list(self.state.failed_ids),
                "started_at": self.state.started_at.isoformat(),
            },
        )
        logger.debug(
            f"Run state flushed ({len(self._processed)} processed, "
            f"{len(self._failed)} failed)"
        )

    def counts(self) -> dict[str, int]:
        return {"processed": len(self._processed), "failed": len(self._failed)}
