"""Uniform contract shared by every retrieval channel."""

from __future__ import annotations

import logging
from typing import Any

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target
from src.utils.content_validator import ContentGate

from .. import ChannelFailure
from ..content_extraction import ExtractionStrategy, SelectorExtractionStrategy

logger = logging.getLogger(__name__)


class Channel:
    """One retrieval backend.

    Subclasses implement :meth:`attempt`, which either returns a
    :class:`RetrievalResult` or raises :class:`ChannelFailure`. Results go
    through :meth:`_finalize` so the content gate runs before success is
    reported.
    """

    channel_id: ChannelId

    def __init__(
        self,
        extractor: ExtractionStrategy | None = None,
        gate: ContentGate | None = None,
        timeout: float = 30.0,
    ):
        self.extractor = extractor or SelectorExtractionStrategy()
        self.gate = gate or ContentGate()
        self.timeout = timeout

    def is_configured(self) -> bool:
        """False when credentials for the backing service are missing."""
        return True

    def is_available(self) -> bool:
        """False when the channel cannot take attempts for the rest of the run."""
        return True

    def session_minutes(self) -> float:
        """Billable minutes used by the last attempt, for metered sessions."""
        return 0.0

    def attempt(self, target: Target) -> RetrievalResult:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _finalize(
        self, raw: str, target: Target, provenance: dict[str, Any] | None = None
    ) -> RetrievalResult:
        text = self.extractor.extract(raw, target.url)
        verdict = self.gate.check(raw, text)
        if not verdict.passed:
            logger.info(
                f"{self.channel_id.value} rejected content for {target.id}: {verdict.reason}"
            )
            raise ChannelFailure(verdict.kind, verdict.reason)
        return RetrievalResult(
            raw_content=raw,
            extracted_text=text,
            channel_used=self.channel_id,
            provenance={"url": target.url, **(provenance or {})},
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.channel_id.value}>"


def classify_http_status(status: int) -> FailureKind | None:
    """Map an HTTP status from a fetch to a failure kind (None for 2xx)."""
    if 200 <= status < 300:
        return None
    if status in (404, 410):
        return FailureKind.NOT_FOUND
    if status in (401, 403):
        return FailureKind.BLOCKED
    return FailureKind.TRANSIENT
