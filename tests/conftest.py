"""Pytest-wide fixtures for collector tests."""

from __future__ import annotations

import pytest

from src.config import ChannelCeiling
from src.models.retrieval import ChannelId, SiteHints, Target
from src.models.store import InMemoryStateStore
from src.utils.budget_ledger import BudgetLedger


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep real credentials and databases out of tests."""
    for key in (
        "FORCE_CHANNEL",
        "AGGRESSIVE_MODE",
        "BROWSERBASE_API_KEY",
        "BROWSERBASE_PROJECT_ID",
        "SCRAPINGBEE_API_KEY",
        "UNBLOCK_PROXY_USER",
        "UNBLOCK_PROXY_PASS",
        "BRAVE_SEARCH_API_KEY",
        "NYT_EMAIL",
        "NYT_PASSWORD",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'state.db'}")


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def fixed_today():
    return lambda: "2026-10-19"


@pytest.fixture
def ledger(store, fixed_today):
    return BudgetLedger(
        store,
        {
            ChannelId.REMOTE_BROWSER.value: ChannelCeiling(daily_sessions=30, run_sessions=15),
            ChannelId.RENDERING_PROXY.value: ChannelCeiling(daily_sessions=200),
        },
        today=fixed_today,
    )


@pytest.fixture
def make_target():
    def _make(
        url="https://www.example.com/theater/review-hamlet.html",
        target_id="t1",
        topic="Hamlet",
        **hints,
    ):
        return Target(
            id=target_id,
            url=url,
            site_hints=SiteHints(**hints),
            topic_keyword=topic,
        )

    return _make


REVIEW_PARAGRAPH = (
    "The production of Hamlet at the Delacorte is a brisk and intelligent evening, "
    "anchored by a lead performance of real wit and surprising tenderness. "
)


@pytest.fixture
def review_text():
    """A long, cleanly ending review body about Hamlet."""
    return (REVIEW_PARAGRAPH * 25).strip() + " It is a triumph."


@pytest.fixture
def review_html(review_text):
    paragraphs = "".join(
        f"<p>{REVIEW_PARAGRAPH.strip()}</p>" for _ in range(25)
    )
    return (
        "<html><head><title>Review: Hamlet</title></head><body>"
        "<nav>Home | Theater | Subscribe</nav>"
        f"<article>{paragraphs}<p>It is a triumph of the season.</p></article>"
        "<footer>Copyright 2026</footer></body></html>"
    )
