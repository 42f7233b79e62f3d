"""Attempt Orchestrator - walks the channel order for one target.

After every failed channel the selector is consulted again with the attempts
made so far, so a bot challenge seen during this run can make the remote
browser eligible for the same target.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from src.config import SelectionConfig
from src.models.retrieval import (
    AttemptOutcome,
    AttemptRecord,
    ChannelId,
    FailureKind,
    RetrievalResult,
    Target,
)
from src.utils.budget_ledger import BudgetLedger

from . import BudgetExceededError, ChannelFailure, RetrievalExhausted
from .channel_selector import select_channels
from .channels.base import Channel

logger = logging.getLogger(__name__)


@dataclass
class RetrievalOutcome:
    result: RetrievalResult
    attempts: list[AttemptRecord] = field(default_factory=list)


class AttemptOrchestrator:
    def __init__(
        self,
        channels: Iterable[Channel],
        ledger: BudgetLedger,
        selection: SelectionConfig | None = None,
        max_attempts_per_channel: int = 3,
        backoff_base_seconds: float = 2.0,
        backoff_max_seconds: float = 60.0,
        target_time_budget_seconds: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channels: dict[ChannelId, Channel] = {c.channel_id: c for c in channels}
        self.ledger = ledger
        self.selection = selection or SelectionConfig()
        self.max_attempts_per_channel = max(1, max_attempts_per_channel)
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.target_time_budget_seconds = target_time_budget_seconds
        self._sleep = sleep
        self._clock = clock

    def unavailable_channels(self) -> set[ChannelId]:
        """Channels the selector must leave out right now."""
        unavailable = set()
        for channel_id in ChannelId:
            channel = self.channels.get(channel_id)
            if (
                channel is None
                or not channel.is_configured()
                or not channel.is_available()
                or not self.ledger.admit(channel_id)
            ):
                unavailable.add(channel_id)
        return unavailable

    def backoff_delay(self, retry_number: int) -> float:
        delay = self.backoff_base_seconds * (2 ** (retry_number - 1))
        return min(delay, self.backoff_max_seconds)

    def retrieve(self, target: Target) -> RetrievalOutcome:
        """Try channels in order until one succeeds.

        Raises:
            RetrievalExhausted: when every eligible channel failed, with the
                terminal kind and the full attempt log.
        """
        attempts: list[AttemptRecord] = []
        tried: set[ChannelId] = set()
        started = self._clock()
        dead_link = False

        while not self._out_of_time(started):
            order = select_channels(
                target, self.selection, attempts, self.unavailable_channels()
            )
            if dead_link:
                # A live channel confirmed the link is dead; only an archive can help
                order = [c for c in order if c is ChannelId.SNAPSHOT]
            pending = [c for c in order if c not in tried]
            if not pending:
                break

            channel_id = pending[0]
            tried.add(channel_id)
            result = self._run_channel(
                channel_id, target, attempts, started, single_attempt=dead_link
            )
            if result is not None:
                logger.info(
                    f"✅ {target.id} retrieved via {channel_id.value} "
                    f"after {len(attempts)} attempt(s)"
                )
                return RetrievalOutcome(result=result, attempts=attempts)

            last = attempts[-1] if attempts else None
            if (
                last is not None
                and last.channel is channel_id
                and last.error_kind is FailureKind.NOT_FOUND
                and channel_id is not ChannelId.SNAPSHOT
            ):
                dead_link = True
                logger.info(f"🔗 {target.url} confirmed dead by {channel_id.value}")

        if self._out_of_time(started):
            logger.warning(
                f"⏱️ {target.id} hit the {self.target_time_budget_seconds}s attempt budget"
            )

        if dead_link:
            kind = FailureKind.NOT_FOUND
        elif any(a.error_kind is FailureKind.GARBAGE for a in attempts):
            kind = FailureKind.GARBAGE
        else:
            kind = FailureKind.EXHAUSTED
        logger.warning(
            f"❌ {target.id} exhausted ({kind.value}) after {len(attempts)} attempt(s)"
        )
        raise RetrievalExhausted(kind, attempts)

    def _out_of_time(self, started: float) -> bool:
        return self._clock() - started >= self.target_time_budget_seconds

    def _run_channel(
        self,
        channel_id: ChannelId,
        target: Target,
        attempts: list[AttemptRecord],
        started: float,
        single_attempt: bool = False,
    ) -> Optional[RetrievalResult]:
        channel = self.channels.get(channel_id)
        if channel is None:
            logger.debug(f"No {channel_id.value} channel registered; skipping")
            return None

        max_attempts = 1 if single_attempt else self.max_attempts_per_channel
        for attempt_number in range(1, max_attempts + 1):
            if attempt_number > 1:
                if self._out_of_time(started):
                    return None
                self._sleep(self.backoff_delay(attempt_number - 1))

            if not channel.is_configured() or not channel.is_available():
                return None
            if not self.ledger.admit(channel_id):
                logger.debug(f"Budget denied {channel_id.value} for {target.id}")
                return None
            try:
                self.ledger.charge(channel_id)
            except BudgetExceededError as e:
                logger.debug(f"Budget denied {channel_id.value}: {e}")
                return None

            kind: FailureKind
            detail: str
            try:
                result = channel.attempt(target)
            except ChannelFailure as e:
                kind, detail = e.kind, e.message
            except Exception as e:
                logger.warning(
                    f"Unexpected {type(e).__name__} from {channel_id.value} on {target.id}: {e}"
                )
                kind, detail = FailureKind.TRANSIENT, f"{type(e).__name__}: {e}"
            else:
                attempts.append(AttemptRecord(channel_id, AttemptOutcome.SUCCESS))
                return result
            finally:
                minutes = channel.session_minutes()
                if minutes:
                    self.ledger.record_minutes(channel_id, minutes)

            if kind is FailureKind.TRANSIENT and attempt_number == max_attempts:
                kind = FailureKind.EXHAUSTED_RETRIES
            attempts.append(
                AttemptRecord(channel_id, AttemptOutcome.FAILURE, kind, detail=detail)
            )
            logger.info(
                f"{channel_id.value} attempt {attempt_number} on {target.id} failed: "
                f"{kind.value} ({detail})"
            )
            if kind is not FailureKind.TRANSIENT:
                return None
        return None
