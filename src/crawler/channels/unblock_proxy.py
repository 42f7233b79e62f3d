"""Unblocking Proxy channel (Decodo site unblocker over a CONNECT proxy)."""

from __future__ import annotations

import hashlib
import logging
import os
import random
import threading
import time
import uuid
import warnings
from typing import Any, Callable

import requests

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target

from .. import ChannelFailure
from ..utils import mask_proxy_url
from .base import Channel, classify_http_status

logger = logging.getLogger(__name__)

UNBLOCK_MIN_HTML_BYTES = 3000
UNBLOCK_CHALLENGE_MARKER = "Access to this page has been denied"

USER_AGENT_POOL = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

CLIENT_HINT_POOL = [
    {
        "sec-ch-ua": '"Chromium";v="120", "Google Chrome";v="120", "Not?A Brand";v="24"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
    },
    {
        "sec-ch-ua": '"Chromium";v="120", "Microsoft Edge";v="120", "Not?A Brand";v="24"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
    },
    {
        "sec-ch-ua": '"Not.A/Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"macOS"',
    },
]

ACCEPT_LANGUAGE_POOL = ["en-US,en;q=0.9", "en-US,en;q=0.8", "en-GB,en;q=0.9,en-US;q=0.8"]

# Shared across channel instances: the proxy account is rate limited per process
_rate_limit_lock = threading.Lock()
_last_request_ts = 0.0


def _env_rate_limit() -> float:
    try:
        return float(os.getenv("UNBLOCK_RATE_LIMIT_SECONDS", "1.0"))
    except ValueError:
        return 1.0


def fingerprint_headers() -> dict[str, str]:
    """Randomized headers so each unblock request looks like a new device."""
    session_id = uuid.uuid4().hex
    device_id = uuid.uuid4().hex
    fingerprint = hashlib.sha256(
        f"{session_id}:{device_id}:{random.random()}".encode()
    ).hexdigest()
    forwarded_for = ".".join(str(random.randint(1, 254)) for _ in range(4))

    headers = {
        "X-SU-Session-Id": session_id,
        "X-SU-Device-Id": device_id,
        "X-SU-Fingerprint": fingerprint,
        "X-SU-Forwarded-For": forwarded_for,
        "X-SU-Geo": "United States",
        "X-SU-Locale": "en-us",
        "X-SU-Headless": "html",
        "User-Agent": random.choice(USER_AGENT_POOL),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": random.choice(ACCEPT_LANGUAGE_POOL),
        # Identity encoding so the full HTML payload comes back
        "Accept-Encoding": "identity",
        "Cache-Control": "max-age=0",
    }
    headers.update(random.choice(CLIENT_HINT_POOL))
    return headers


class UnblockProxyChannel(Channel):
    channel_id = ChannelId.UNBLOCK_PROXY

    def __init__(
        self,
        proxy_url: str | None = None,
        user: str | None = None,
        password: str | None = None,
        rate_limit_seconds: float | None = None,
        http: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.proxy_endpoint = proxy_url or os.getenv(
            "UNBLOCK_PROXY_URL", "https://unblock.decodo.com:60000"
        )
        self.user = user if user is not None else os.getenv("UNBLOCK_PROXY_USER")
        self.password = password if password is not None else os.getenv("UNBLOCK_PROXY_PASS")
        self.rate_limit_seconds = (
            _env_rate_limit() if rate_limit_seconds is None else rate_limit_seconds
        )
        self.http = http or requests
        self._sleep = sleep

    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    @property
    def proxy_url(self) -> str:
        if "://" in self.proxy_endpoint:
            scheme, remainder = self.proxy_endpoint.split("://", 1)
        else:
            scheme, remainder = "https", self.proxy_endpoint
        return f"{scheme}://{self.user}:{self.password}@{remainder}"

    def _respect_rate_limit(self) -> None:
        global _last_request_ts
        with _rate_limit_lock:
            now = time.time()
            if _last_request_ts > 0.0:
                wait = self.rate_limit_seconds - (now - _last_request_ts)
                if wait > 0:
                    logger.debug(f"Sleeping {wait:.2f}s to satisfy unblock proxy rate limit")
                    self._sleep(wait)
            _last_request_ts = time.time()

    def attempt(self, target: Target) -> RetrievalResult:
        self._respect_rate_limit()
        proxy_url = self.proxy_url
        logger.info(
            f"Fetching {target.url} via unblock proxy {mask_proxy_url(proxy_url)}"
        )
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", message="Unverified HTTPS request")
                resp = self.http.get(
                    target.url,
                    headers=fingerprint_headers(),
                    proxies={"http": proxy_url, "https": proxy_url},
                    verify=False,
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"CONNECT attempt failed: {e}")

        kind = classify_http_status(resp.status_code)
        if kind is not None:
            raise ChannelFailure(kind, f"HTTP {resp.status_code}")

        html = resp.text or ""
        logger.info(f"Unblock proxy returned {len(html)} bytes for {target.url}")
        if UNBLOCK_CHALLENGE_MARKER in html:
            raise ChannelFailure(FailureKind.BLOCKED, "challenge page from unblock proxy")
        if len(html) < UNBLOCK_MIN_HTML_BYTES:
            raise ChannelFailure(
                FailureKind.BLOCKED, f"response too small ({len(html)} bytes)"
            )

        return self._finalize(
            html,
            target,
            {"http_status": resp.status_code, "proxy_host": self.proxy_endpoint},
        )
