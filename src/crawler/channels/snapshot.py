"""Snapshot channel: closest Wayback Machine capture of the target url."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import cloudscraper
import requests

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target

from .. import ChannelFailure
from .base import Channel, classify_http_status

logger = logging.getLogger(__name__)

WAYBACK_BASE = "https://web.archive.org"
WAYBACK_AVAILABILITY_URL = "https://archive.org/wayback/available"

_TOOLBAR_PATTERNS = [
    r"<!-- BEGIN WAYBACK TOOLBAR INSERT -->.*?<!-- END WAYBACK TOOLBAR INSERT -->",
    r"<script[^>]*>.*?wm\.wombat\.js.*?</script>",
    r"<script[^>]*>.*?archive_sparkline.*?</script>",
]


@dataclass(frozen=True)
class Capture:
    original_url: str
    timestamp: str
    archive_url: str

    @property
    def raw_url(self) -> str:
        """Capture url with the ``id_`` flag, which skips the Wayback toolbar."""
        return f"{WAYBACK_BASE}/web/{self.timestamp}id_/{self.original_url}"


def remove_wayback_toolbar(html: str) -> str:
    for pattern in _TOOLBAR_PATTERNS:
        html = re.sub(pattern, "", html, flags=re.DOTALL | re.IGNORECASE)
    return html


class SnapshotChannel(Channel):
    channel_id = ChannelId.SNAPSHOT

    def __init__(self, http: Any = None, **kwargs):
        super().__init__(**kwargs)
        self._http = http

    @property
    def http(self) -> Any:
        if self._http is None:
            self._http = cloudscraper.create_scraper()
        return self._http

    def closest_capture(self, url: str) -> Optional[Capture]:
        try:
            resp = self.http.get(
                WAYBACK_AVAILABILITY_URL, params={"url": url}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"availability lookup failed: {e}")
        if resp.status_code != 200:
            raise ChannelFailure(
                FailureKind.TRANSIENT, f"availability API HTTP {resp.status_code}"
            )
        try:
            data = resp.json()
        except ValueError:
            raise ChannelFailure(FailureKind.TRANSIENT, "availability API returned bad JSON")

        closest = (data.get("archived_snapshots") or {}).get("closest") or {}
        if not closest.get("available", True) or not closest.get("url"):
            return None
        return Capture(
            original_url=url,
            timestamp=str(closest.get("timestamp", "")),
            archive_url=closest["url"],
        )

    def attempt(self, target: Target) -> RetrievalResult:
        capture = self.closest_capture(target.url)
        if capture is None:
            raise ChannelFailure(FailureKind.NOT_FOUND, "no archived capture")

        fetch_url = capture.raw_url if capture.timestamp else capture.archive_url
        logger.info(f"📼 Fetching Wayback capture {capture.timestamp} for {target.url}")
        try:
            resp = self.http.get(fetch_url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"capture fetch failed: {e}")

        kind = classify_http_status(resp.status_code)
        if kind is not None:
            # A capture listed by the index but unfetchable is a hiccup, not a dead link
            if kind is FailureKind.NOT_FOUND:
                kind = FailureKind.TRANSIENT
            raise ChannelFailure(kind, f"capture HTTP {resp.status_code}")

        html = remove_wayback_toolbar(resp.text or "")
        return self._finalize(
            html,
            target,
            {"archive_url": capture.archive_url, "archive_timestamp": capture.timestamp},
        )
