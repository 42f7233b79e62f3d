"""URL Rediscovery - one search for a replacement after a confirmed dead link."""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import unquote, urlparse

import requests

from src.config import SEARCH_API_KEY
from src.models.retrieval import Target
from src.utils.budget_ledger import BudgetLedger

from . import BudgetExceededError, RediscoveryError
from .orchestrator import AttemptOrchestrator, RetrievalOutcome
from .site_directory import SiteDirectory
from .utils import host_matches, registered_host

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

REVIEW_HINTS = ("review", "critic", "theater", "theatre", "stage", "broadway", "arts")

_STOPWORDS = {"the", "a", "an", "of", "and", "on", "in", "at", "to", "for"}


@dataclass(frozen=True)
class SearchHit:
    url: str
    title: str = ""


class BraveSearchClient:
    """Brave Search web API, one page of results per query."""

    def __init__(self, api_key: str | None = None, http: Any = None, timeout: float = 15.0):
        self.api_key = api_key if api_key is not None else os.getenv("BRAVE_SEARCH_API_KEY")
        self.http = http or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str, count: int = 10) -> list[SearchHit]:
        try:
            resp = self.http.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": count},
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key or "",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RediscoveryError(f"search failed for {query!r}: {e}") from e

        results = ((data or {}).get("web") or {}).get("results") or []
        return [
            SearchHit(url=r["url"], title=r.get("title") or "")
            for r in results
            if r.get("url")
        ]


def topic_words(topic: str) -> list[str]:
    words = re.findall(r"[a-z0-9]+", topic.lower())
    significant = [w for w in words if w not in _STOPWORDS]
    return significant or words


class UrlRediscovery:
    def __init__(
        self,
        search: BraveSearchClient,
        ledger: BudgetLedger,
        sites: SiteDirectory | None = None,
        min_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.search = search
        self.ledger = ledger
        self.sites = sites or SiteDirectory()
        self.min_interval_seconds = min_interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._last_call: Optional[float] = None

    def build_query(self, target: Target) -> str:
        domain = self.sites.domain_for(target.url) or registered_host(target.url)
        return f'"{target.topic_keyword}" site:{domain} review'

    def is_plausible(self, hit: SearchHit, target: Target) -> bool:
        domain = self.sites.domain_for(target.url) or registered_host(target.url)
        if not host_matches(registered_host(hit.url), domain):
            return False
        if hit.url.rstrip("/") == target.url.rstrip("/"):
            return False

        path = unquote(urlparse(hit.url).path).lower().replace("-", " ").replace("_", " ")
        title = hit.title.lower()
        words = topic_words(target.topic_keyword)
        if not words:
            return False
        mentions_topic = all(w in title for w in words) or all(w in path for w in words)
        looks_like_review = any(h in title or h in path for h in REVIEW_HINTS)
        return mentions_topic and looks_like_review

    def find_replacement(self, target: Target) -> Optional[str]:
        """Return a candidate url, or None. Search failures are logged only."""
        if not self.search.configured or not target.topic_keyword:
            return None
        if not self.ledger.admit(SEARCH_API_KEY):
            logger.info("Search budget exhausted; skipping rediscovery")
            return None

        if self._last_call is not None:
            wait = self.min_interval_seconds - (self._clock() - self._last_call)
            if wait > 0:
                self._sleep(wait)

        try:
            self.ledger.charge(SEARCH_API_KEY)
        except BudgetExceededError as e:
            logger.info(f"Search budget exhausted: {e}")
            return None

        query = self.build_query(target)
        self._last_call = self._clock()
        try:
            hits = self.search.search(query)
        except RediscoveryError as e:
            logger.warning(f"Rediscovery search failed for {target.id}: {e}")
            return None

        for hit in hits:
            if self.is_plausible(hit, target):
                logger.info(f"🔎 Rediscovered {target.id}: {target.url} -> {hit.url}")
                return hit.url
        logger.info(f"No plausible replacement among {len(hits)} results for {target.id}")
        return None

    def recover(
        self, target: Target, orchestrator: AttemptOrchestrator
    ) -> Optional[tuple[Target, RetrievalOutcome]]:
        """Search once and re-enter the orchestrator once with the new url.

        Returns the updated target and outcome on success, or None when no
        plausible replacement was found.

        Raises:
            RetrievalExhausted: the replacement url failed too. The caller
                keeps the original target.
        """
        if target.url_replaced:
            return None
        replacement = self.find_replacement(target)
        if replacement is None:
            return None

        candidate = target.with_replacement_url(replacement)
        outcome = orchestrator.retrieve(candidate)
        return candidate, outcome
