"""Run loop for review text collection.

A :class:`RunContext` bundles everything a run touches (settings, ledger,
run state, browser health, channels, orchestrator, validator, rediscovery)
and is owned by the caller; nothing here lives in module globals.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from src.config import CollectorSettings
from src.crawler import RetrievalExhausted
from src.crawler.auth import CredentialProvider, EnvCredentialProvider
from src.crawler.browser_health import BrowserHealthMonitor
from src.crawler.channels import (
    Channel,
    DirectBrowserChannel,
    RemoteBrowserChannel,
    RenderingProxyChannel,
    SnapshotChannel,
    UnblockProxyChannel,
)
from src.crawler.channels.direct_browser import create_browser_driver
from src.crawler.content_extraction import ExtractionStrategy
from src.crawler.orchestrator import AttemptOrchestrator
from src.crawler.rediscovery import BraveSearchClient, UrlRediscovery
from src.crawler.site_directory import SiteDirectory
from src.models.retrieval import (
    AttemptRecord,
    ChannelId,
    FailureKind,
    QualityVerdict,
    RetrievalResult,
    SiteHints,
    Target,
    TargetStatus,
)
from src.models.store import StateStore
from src.utils.budget_ledger import BudgetLedger
from src.utils.content_validator import ContentGate, QualityClassifier
from src.utils.run_state import RunStateStore

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    settings: CollectorSettings
    ledger: BudgetLedger
    run_state: RunStateStore
    orchestrator: AttemptOrchestrator
    classifier: QualityClassifier
    channels: list[Channel] = field(default_factory=list)
    health: Optional[BrowserHealthMonitor] = None
    rediscovery: Optional[UrlRediscovery] = None
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def close(self) -> None:
        for channel in self.channels:
            try:
                channel.close()
            except Exception as e:
                logger.warning(f"Error closing {channel!r}: {e}")


def build_context(
    settings: CollectorSettings,
    store: StateStore,
    sites: SiteDirectory | None = None,
    credentials: CredentialProvider | None = None,
    extractor: ExtractionStrategy | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> RunContext:
    """Wire up the production channels and collaborators from settings."""
    ledger = BudgetLedger(
        store, settings.ceilings, history_days=settings.budget_history_days
    )
    run_state = RunStateStore(
        store,
        freshness_hours=settings.state_freshness_hours,
        retry_failed=settings.retry_failed,
    )
    health = BrowserHealthMonitor(
        lambda: create_browser_driver(settings.direct_browser_timeout),
        max_crashes=settings.max_browser_crashes,
        max_recreate_attempts=settings.max_recreate_attempts,
        sleep=sleep,
    )
    gate = ContentGate()
    channels: list[Channel] = [
        DirectBrowserChannel(
            health,
            credentials=credentials,
            sleep=sleep,
            extractor=extractor,
            gate=gate,
            timeout=settings.direct_browser_timeout,
        ),
        RemoteBrowserChannel(
            extractor=extractor, gate=gate, timeout=settings.remote_browser_timeout
        ),
        RenderingProxyChannel(
            extractor=extractor, gate=gate, timeout=settings.rendering_proxy_timeout
        ),
        UnblockProxyChannel(
            sleep=sleep,
            extractor=extractor,
            gate=gate,
            timeout=settings.unblock_proxy_timeout,
        ),
        SnapshotChannel(extractor=extractor, gate=gate, timeout=settings.snapshot_timeout),
    ]
    orchestrator = AttemptOrchestrator(
        channels,
        ledger,
        selection=settings.selection,
        max_attempts_per_channel=settings.max_attempts_per_channel,
        backoff_base_seconds=settings.backoff_base_seconds,
        backoff_max_seconds=settings.backoff_max_seconds,
        target_time_budget_seconds=settings.target_time_budget_seconds,
        sleep=sleep,
        clock=clock,
    )
    rediscovery = None
    if settings.rediscovery_enabled:
        rediscovery = UrlRediscovery(
            BraveSearchClient(),
            ledger,
            sites=sites,
            min_interval_seconds=settings.search_min_interval_seconds,
            sleep=sleep,
            clock=clock,
        )

    for channel in channels:
        if not channel.is_configured():
            logger.info(f"{channel.channel_id.value} not configured; it will be skipped")
    if sites is not None:
        provider = credentials or EnvCredentialProvider()
        for realm in sorted(sites.realms()):
            if provider.get(realm) is None:
                logger.info(f"No credentials for login realm {realm}; reading anonymously")

    return RunContext(
        settings=settings,
        ledger=ledger,
        run_state=run_state,
        orchestrator=orchestrator,
        classifier=QualityClassifier(),
        channels=channels,
        health=health,
        rediscovery=rediscovery,
        sleep=sleep,
        clock=clock,
    )


def target_from_dict(data: Mapping[str, Any], sites: SiteDirectory) -> Target:
    """Build a Target from a catalog row, filling hints from the site table."""
    url = str(data["url"]).strip()
    hints = sites.hints_for(url)
    overrides = data.get("site_hints") or {}
    if overrides:
        hints = SiteHints(
            paywalled=bool(overrides.get("paywalled", hints.paywalled)),
            known_blocked=bool(overrides.get("known_blocked", hints.known_blocked)),
            archive_preferred=bool(
                overrides.get("archive_preferred", hints.archive_preferred)
            ),
            realm=overrides.get("realm", hints.realm),
        )
    prior = tuple(AttemptRecord.from_dict(a) for a in data.get("prior_attempts") or [])
    return Target(
        id=str(data["id"]),
        url=url,
        site_hints=hints,
        topic_keyword=str(data.get("topic_keyword") or data.get("topic") or ""),
        prior_attempts=prior,
        excerpt=data.get("excerpt"),
    )


@dataclass
class TargetReport:
    target: Target
    status: TargetStatus
    attempts: list[AttemptRecord] = field(default_factory=list)
    result: Optional[RetrievalResult] = None
    verdict: Optional[QualityVerdict] = None
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.target.id,
            "url": self.target.url,
            "original_url": self.target.original_url,
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "error": self.error,
        }
        if self.result is not None:
            data["channel"] = self.result.channel_used.value
            data["provenance"] = self.result.provenance
        if self.verdict is not None:
            data["quality"] = self.verdict.to_dict()
            data["text"] = self.verdict.cleaned_text
        return data


@dataclass
class RunSummary:
    """Per-run counts for reporting.

    Every target that was attempted ends the run as processed or failed in
    the run state. ``skipped`` targets are the exception: no channel was
    admitted, nothing was tried, and they stay in neither list so the next
    run picks them up.
    """

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    already_done: int = 0
    rediscovered: int = 0
    stopped_early: bool = False
    channel_attempts: Counter = field(default_factory=Counter)
    channel_successes: Counter = field(default_factory=Counter)
    tiers: Counter = field(default_factory=Counter)
    failure_kinds: Counter = field(default_factory=Counter)
    budget: dict[str, Any] = field(default_factory=dict)
    browser_health: dict[str, Any] = field(default_factory=dict)

    def record(self, report: TargetReport) -> None:
        self.processed += 1
        for attempt in report.attempts:
            self.channel_attempts[attempt.channel.value] += 1
            if attempt.succeeded:
                self.channel_successes[attempt.channel.value] += 1
        if report.status is TargetStatus.SUCCESS:
            self.succeeded += 1
            if report.verdict is not None:
                self.tiers[report.verdict.tier.value] += 1
            if report.target.url_replaced:
                self.rediscovered += 1
        elif report.status is TargetStatus.FAILED:
            self.failed += 1
            if report.failure_kind is not None:
                self.failure_kinds[report.failure_kind.value] += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "already_done": self.already_done,
            "rediscovered": self.rediscovered,
            "stopped_early": self.stopped_early,
            "channels": {
                channel.value: {
                    "attempts": self.channel_attempts.get(channel.value, 0),
                    "successes": self.channel_successes.get(channel.value, 0),
                }
                for channel in ChannelId
            },
            "tiers": dict(self.tiers),
            "failure_kinds": dict(self.failure_kinds),
            "budget": self.budget,
            "browser_health": self.browser_health,
        }


class CollectionRunner:
    """Processes targets one at a time and checkpoints every batch."""

    def __init__(
        self,
        context: RunContext,
        on_report: Callable[[TargetReport], None] | None = None,
    ):
        self.ctx = context
        self.on_report = on_report

    def run(self, targets: Iterable[Target]) -> tuple[list[TargetReport], RunSummary]:
        ctx = self.ctx
        settings = ctx.settings
        ctx.run_state.load()
        ctx.ledger.begin_run(resume=ctx.run_state.resumed)

        reports: list[TargetReport] = []
        summary = RunSummary()
        run_started = ctx.clock()
        since_checkpoint = 0

        try:
            for target in targets:
                if not ctx.run_state.should_process(target.id):
                    summary.already_done += 1
                    continue

                elapsed = ctx.clock() - run_started
                if settings.run_budget_seconds is not None and elapsed >= settings.run_budget_seconds:
                    logger.warning(
                        f"⏱️ Run budget of {settings.run_budget_seconds}s used "
                        f"after {summary.processed} targets; stopping"
                    )
                    summary.stopped_early = True
                    break

                if summary.processed and settings.inter_target_delay_seconds:
                    ctx.sleep(settings.inter_target_delay_seconds)

                report = self.process_target(target)
                reports.append(report)
                summary.record(report)
                if report.status is TargetStatus.SUCCESS:
                    ctx.run_state.mark_processed(target.id)
                elif report.status is TargetStatus.FAILED:
                    ctx.run_state.mark_failed(target.id)

                if self.on_report is not None:
                    self.on_report(report)

                since_checkpoint += 1
                if since_checkpoint >= settings.batch_size:
                    self.checkpoint()
                    since_checkpoint = 0
        finally:
            self.checkpoint()

        summary.budget = ctx.ledger.snapshot()
        if ctx.health is not None:
            summary.browser_health = ctx.health.stats()
        logger.info(
            f"Run finished: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.skipped} skipped, {summary.already_done} already done"
        )
        return reports, summary

    def process_target(self, target: Target) -> TargetReport:
        """Retrieve and classify one target. Never raises."""
        ctx = self.ctx
        attempts: list[AttemptRecord] = []
        try:
            try:
                outcome = ctx.orchestrator.retrieve(target)
            except RetrievalExhausted as exhausted:
                attempts.extend(exhausted.attempts)
                recovered = None
                if exhausted.kind is FailureKind.NOT_FOUND and ctx.rediscovery is not None:
                    try:
                        recovered = ctx.rediscovery.recover(target, ctx.orchestrator)
                    except RetrievalExhausted as second:
                        attempts.extend(second.attempts)

                if recovered is None:
                    if not attempts:
                        logger.info(f"⏭️ {target.id} skipped: no channel admitted")
                        return TargetReport(target, TargetStatus.SKIPPED)
                    return TargetReport(
                        target,
                        TargetStatus.FAILED,
                        attempts=attempts,
                        failure_kind=exhausted.kind,
                    )
                target, outcome = recovered

            attempts.extend(outcome.attempts)
            verdict = ctx.classifier.classify(
                outcome.result.extracted_text, target.topic_keyword, target.excerpt
            )
            logger.info(
                f"📝 {target.id}: {verdict.tier.value} "
                f"({verdict.word_count} words, signals={verdict.signals})"
            )
            return TargetReport(
                target,
                TargetStatus.SUCCESS,
                attempts=attempts,
                result=outcome.result,
                verdict=verdict,
            )
        except Exception as e:
            logger.error(f"Unexpected error processing {target.id}: {e}", exc_info=True)
            return TargetReport(
                target,
                TargetStatus.FAILED,
                attempts=attempts,
                failure_kind=FailureKind.EXHAUSTED,
                error=f"{type(e).__name__}: {e}",
            )

    def checkpoint(self) -> None:
        """Flush ledger and run state; failures cost granularity, not the run."""
        for name, flush in (
            ("budget ledger", self.ctx.ledger.flush),
            ("run state", self.ctx.run_state.flush),
        ):
            try:
                flush()
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Failed to checkpoint {name}: {e}")
