"""Rendering Proxy channel (ScrapingBee HTML API)."""

from __future__ import annotations

import logging
import os
from typing import Any

import requests

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target

from .. import ChannelFailure
from .base import Channel, classify_http_status

logger = logging.getLogger(__name__)

SCRAPINGBEE_API_URL = "https://app.scrapingbee.com/api/v1/"


class RenderingProxyChannel(Channel):
    channel_id = ChannelId.RENDERING_PROXY

    def __init__(self, api_key: str | None = None, http: Any = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else os.getenv("SCRAPINGBEE_API_KEY")
        self.http = http or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def attempt(self, target: Target) -> RetrievalResult:
        params = {
            "api_key": self.api_key,
            "url": target.url,
            "render_js": "true",
            "premium_proxy": "true",
            "country_code": "us",
            "block_resources": "false",
        }
        try:
            resp = self.http.get(SCRAPINGBEE_API_URL, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"network error: {e}")

        # ScrapingBee relays the target's status when it differs from its own
        status = resp.status_code
        initial = resp.headers.get("Spb-Initial-Status-Code")
        if initial and initial.isdigit():
            status = int(initial) if 200 <= status < 300 else status

        kind = classify_http_status(status)
        if kind is not None:
            logger.info(f"Rendering proxy returned {status} for {target.url}")
            raise ChannelFailure(kind, f"HTTP {status}")

        html = resp.text or ""
        logger.info(f"Rendering proxy returned {len(html)} bytes for {target.url}")
        return self._finalize(html, target, {"http_status": status})
