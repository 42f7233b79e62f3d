"""Multi-channel retrieval engine for review text."""

import logging

from src.models.retrieval import AttemptRecord, FailureKind

logger = logging.getLogger(__name__)


class ChannelFailure(Exception):
    """Raised by a channel when a single attempt fails.

    ``kind`` drives the orchestrator: transient failures are retried on the
    same channel, everything else escalates.
    """

    def __init__(self, kind: FailureKind, message: str = ""):
        self.kind = FailureKind(kind)
        self.message = message or self.kind.value
        super().__init__(f"{self.kind.value}: {self.message}")


class RetrievalExhausted(Exception):
    """Every admitted channel failed for a target."""

    def __init__(self, kind: FailureKind, attempts: list[AttemptRecord]):
        self.kind = FailureKind(kind)
        self.attempts = list(attempts)
        super().__init__(
            f"Retrieval exhausted ({self.kind.value}) after {len(self.attempts)} attempts"
        )


class BudgetExceededError(Exception):
    """A charge would push a metered channel past one of its ceilings."""

    def __init__(self, channel_id: str, ceiling: str, limit: float):
        self.channel_id = channel_id
        self.ceiling = ceiling
        self.limit = limit
        super().__init__(f"{channel_id}: {ceiling} ceiling of {limit} reached")


class RediscoveryError(Exception):
    """Search backend failure during URL rediscovery."""

    pass


__all__ = [
    "BudgetExceededError",
    "ChannelFailure",
    "RediscoveryError",
    "RetrievalExhausted",
]
