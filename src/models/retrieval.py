"""Value types shared by the retrieval engine.

Targets, attempt records and verdicts are plain dataclasses so they can be
handed between the orchestrator, the validator and the run loop without any
database session attached.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ChannelId(str, Enum):
    """Retrieval backends, in default escalation order."""

    DIRECT_BROWSER = "direct_browser"
    REMOTE_BROWSER = "remote_browser"
    RENDERING_PROXY = "rendering_proxy"
    UNBLOCK_PROXY = "unblock_proxy"
    SNAPSHOT = "snapshot"


class FailureKind(str, Enum):
    """Why a single channel attempt (or a whole target) failed."""

    TRANSIENT = "transient"
    BLOCKED = "blocked"
    PAYWALLED = "paywalled"
    NOT_FOUND = "not_found"
    GARBAGE = "garbage_content"
    EXHAUSTED_RETRIES = "exhausted_retries"
    EXHAUSTED = "exhausted"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Tier(str, Enum):
    """Completeness classification for retrieved text."""

    FULL = "full"
    PARTIAL = "partial"
    EXCERPT = "excerpt"
    TRUNCATED = "truncated"
    MISSING = "missing"


class TargetStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SiteHints:
    """What we know about a target's site before fetching it."""

    paywalled: bool = False
    known_blocked: bool = False
    archive_preferred: bool = False
    realm: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class AttemptRecord:
    """One channel attempt against one target."""

    channel: ChannelId
    outcome: AttemptOutcome
    error_kind: FailureKind | None = None
    timestamp: datetime = field(default_factory=utcnow)
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "outcome": self.outcome.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "timestamp": self.timestamp.isoformat(),
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttemptRecord":
        from dateutil import parser as dateparser

        error_kind = data.get("error_kind")
        timestamp = data.get("timestamp")
        return cls(
            channel=ChannelId(data["channel"]),
            outcome=AttemptOutcome(data["outcome"]),
            error_kind=FailureKind(error_kind) if error_kind else None,
            timestamp=dateparser.isoparse(timestamp) if timestamp else utcnow(),
            detail=data.get("detail"),
        )


@dataclass(frozen=True)
class Target:
    """A URL-bearing unit of retrieval and classification work.

    Everything but ``url`` is fixed for the life of the target; the url may be
    swapped exactly once through :meth:`with_replacement_url`.
    """

    id: str
    url: str
    site_hints: SiteHints = field(default_factory=SiteHints)
    topic_keyword: str = ""
    prior_attempts: tuple[AttemptRecord, ...] = ()
    excerpt: str | None = None
    original_url: str | None = None

    @property
    def url_replaced(self) -> bool:
        return self.original_url is not None

    def with_replacement_url(self, url: str) -> "Target":
        if self.url_replaced:
            raise ValueError(f"Target {self.id} url was already replaced once")
        return dataclasses.replace(self, url=url, original_url=self.url)


@dataclass
class RetrievalResult:
    """Successful channel output, consumed once by the classifier."""

    raw_content: str
    extracted_text: str
    channel_used: ChannelId
    provenance: dict[str, Any] = field(default_factory=dict)


@dataclass
class QualityVerdict:
    tier: Tier
    signals: list[str] = field(default_factory=list)
    cleaned_text: str = ""
    word_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "signals": list(self.signals),
            "word_count": self.word_count,
            "char_count": len(self.cleaned_text),
        }


@dataclass
class BudgetState:
    """Spend counters for one metered channel on one day."""

    channel_id: str
    date: str
    sessions_used_today: int = 0
    sessions_used_this_run: int = 0
    minutes_used: float = 0.0


@dataclass
class RunState:
    processed_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
