"""Managed Remote Browser channel (Browserbase sessions over Selenium Remote)."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

import requests
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.remote.remote_connection import RemoteConnection

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target

from .. import ChannelFailure
from .base import Channel
from .browser_page import BrowserPageRoutine

logger = logging.getLogger(__name__)

BROWSERBASE_API_URL = os.getenv("BROWSERBASE_API_URL", "https://api.browserbase.com/v1")


class BrowserbaseConnection(RemoteConnection):
    """Adds the per-session signing key to every WebDriver command."""

    def __init__(self, signing_key: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.signing_key = signing_key

    def get_remote_connection_headers(self, parsed_url, keep_alive=False):
        headers = super().get_remote_connection_headers(parsed_url, keep_alive)
        headers.update({"x-bb-signing-key": self.signing_key})
        return headers


class BrowserbaseClient:
    """Minimal REST client for creating and releasing remote sessions."""

    def __init__(
        self,
        api_key: str | None = None,
        project_id: str | None = None,
        http: Any = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("BROWSERBASE_API_KEY")
        self.project_id = (
            project_id if project_id is not None else os.getenv("BROWSERBASE_PROJECT_ID")
        )
        self.http = http or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.project_id)

    def _headers(self) -> dict[str, str]:
        return {"X-BB-API-Key": self.api_key or "", "Content-Type": "application/json"}

    def create_session(self) -> dict[str, Any]:
        resp = self.http.post(
            f"{BROWSERBASE_API_URL}/sessions",
            json={"projectId": self.project_id, "browserSettings": {"solveCaptchas": True}},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def release_session(self, session_id: str) -> None:
        resp = self.http.post(
            f"{BROWSERBASE_API_URL}/sessions/{session_id}",
            json={"projectId": self.project_id, "status": "REQUEST_RELEASE"},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()


def connect_remote_driver(session: dict[str, Any]) -> Any:
    options = ChromeOptions()
    options.page_load_strategy = "eager"
    connection = BrowserbaseConnection(
        session.get("signingKey", ""), session["seleniumRemoteUrl"]
    )
    return webdriver.Remote(command_executor=connection, options=options)


class RemoteBrowserChannel(Channel):
    channel_id = ChannelId.REMOTE_BROWSER

    def __init__(
        self,
        client: BrowserbaseClient | None = None,
        driver_connector: Callable[[dict[str, Any]], Any] = connect_remote_driver,
        routine: BrowserPageRoutine | None = None,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client = client or BrowserbaseClient()
        self.driver_connector = driver_connector
        self.routine = routine or BrowserPageRoutine(timeout=self.timeout)
        self._clock = clock
        self._last_minutes = 0.0

    def is_configured(self) -> bool:
        return self.client.configured

    def session_minutes(self) -> float:
        minutes, self._last_minutes = self._last_minutes, 0.0
        return minutes

    def attempt(self, target: Target) -> RetrievalResult:
        try:
            session = self.client.create_session()
        except requests.RequestException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"session create failed: {e}")

        session_id = session.get("id", "")
        started = self._clock()
        driver = None
        try:
            driver = self.driver_connector(session)
            raw = self.routine.load(driver, target.url)
        except WebDriverException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"remote browser error: {e.msg}")
        finally:
            self._release(driver, session_id)
            self._last_minutes = max(0.0, (self._clock() - started) / 60.0)
            logger.debug(
                f"Remote session {session_id} used {self._last_minutes:.2f} minutes"
            )

        return self._finalize(raw, target, {"remote_session_id": session_id})

    def _release(self, driver: Any, session_id: str) -> None:
        if driver is not None:
            try:
                driver.quit()
            except WebDriverException as e:
                logger.debug(f"Ignoring error while quitting remote driver: {e}")
        if session_id:
            try:
                self.client.release_session(session_id)
            except requests.RequestException as e:
                logger.warning(f"Failed to release remote session {session_id}: {e}")
