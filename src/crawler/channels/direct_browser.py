"""Direct Browser channel: a local, stealth-configured Chrome session."""

from __future__ import annotations

import logging
import os
import random
import time
from typing import Any, Callable

import undetected_chromedriver as uc
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.webdriver.common.by import By
from selenium_stealth import stealth

from src.models.retrieval import ChannelId, FailureKind, RetrievalResult, Target

from .. import ChannelFailure
from ..auth import LOGIN_RECIPES, CredentialProvider, EnvCredentialProvider, LoginRecipe
from ..browser_health import BrowserHealthMonitor
from .base import Channel
from .browser_page import BrowserPageRoutine

logger = logging.getLogger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

_FINGERPRINT_JS = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
"""


def _apply_fingerprint_overrides(driver: Any, user_agent: str) -> None:
    driver.execute_cdp_cmd("Network.setUserAgentOverride", {"userAgent": user_agent})
    driver.execute_cdp_cmd(
        "Page.addScriptToEvaluateOnNewDocument", {"source": _FINGERPRINT_JS}
    )


def create_undetected_driver(page_load_timeout: float = 15.0) -> Any:
    """undetected-chromedriver with a realistic UA and viewport."""
    options = uc.ChromeOptions()
    options.page_load_strategy = "eager"
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    width = random.randint(1366, 1920)
    height = random.randint(768, 1080)
    options.add_argument(f"--window-size={width},{height}")
    user_agent = random.choice(USER_AGENTS)
    options.add_argument(f"--user-agent={user_agent}")

    chrome_bin = os.getenv("CHROME_BIN") or os.getenv("GOOGLE_CHROME_BIN")
    driver_path = os.getenv("CHROMEDRIVER_PATH")
    kwargs: dict[str, Any] = {"options": options, "use_subprocess": True}
    if chrome_bin:
        kwargs["browser_executable_path"] = chrome_bin
    if driver_path:
        kwargs["driver_executable_path"] = driver_path

    driver = uc.Chrome(**kwargs)
    _apply_fingerprint_overrides(driver, user_agent)
    driver.set_page_load_timeout(page_load_timeout)
    driver.implicitly_wait(5)
    return driver


def create_stealth_driver(page_load_timeout: float = 15.0) -> Any:
    """Plain Selenium Chrome with selenium-stealth patches."""
    options = ChromeOptions()
    options.page_load_strategy = "eager"
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--disable-blink-features=AutomationControlled")
    width = random.randint(1366, 1920)
    height = random.randint(768, 1080)
    options.add_argument(f"--window-size={width},{height}")
    user_agent = random.choice(USER_AGENTS)
    options.add_argument(f"--user-agent={user_agent}")
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option("useAutomationExtension", False)

    selenium_proxy = os.getenv("SELENIUM_PROXY")
    if selenium_proxy:
        options.add_argument(f"--proxy-server={selenium_proxy}")

    chrome_bin = os.getenv("CHROME_BIN") or os.getenv("GOOGLE_CHROME_BIN")
    if chrome_bin:
        options.binary_location = chrome_bin

    driver_path = os.getenv("CHROMEDRIVER_PATH")
    if driver_path:
        driver = webdriver.Chrome(
            service=ChromeService(executable_path=driver_path), options=options
        )
    else:
        driver = webdriver.Chrome(options=options)

    stealth(
        driver,
        languages=["en-US", "en"],
        vendor="Google Inc.",
        platform="Win32",
        webgl_vendor="Intel Inc.",
        renderer="Intel Iris OpenGL Engine",
        fix_hairline=True,
    )
    _apply_fingerprint_overrides(driver, user_agent)
    driver.set_page_load_timeout(page_load_timeout)
    driver.implicitly_wait(5)
    return driver


def create_browser_driver(page_load_timeout: float = 15.0) -> Any:
    """Prefer undetected-chromedriver; fall back to the stealth driver."""
    try:
        return create_undetected_driver(page_load_timeout)
    except Exception as e:
        logger.warning(f"undetected-chromedriver failed ({e}); using stealth driver")
        return create_stealth_driver(page_load_timeout)


class DirectBrowserChannel(Channel):
    channel_id = ChannelId.DIRECT_BROWSER

    def __init__(
        self,
        health: BrowserHealthMonitor,
        credentials: CredentialProvider | None = None,
        recipes: dict[str, LoginRecipe] | None = None,
        routine: BrowserPageRoutine | None = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.health = health
        self.credentials = credentials or EnvCredentialProvider()
        self.recipes = LOGIN_RECIPES if recipes is None else recipes
        self.routine = routine or BrowserPageRoutine(timeout=self.timeout, sleep=sleep)
        self._sleep = sleep

    def is_available(self) -> bool:
        return not self.health.exhausted

    def attempt(self, target: Target) -> RetrievalResult:
        driver = self.health.ensure_healthy()
        realm = target.site_hints.realm
        try:
            if realm and realm not in self.health.session_realms:
                self.authenticate(driver, realm)
            raw = self.routine.load(driver, target.url)
        except ChannelFailure:
            raise
        except WebDriverException as e:
            # A page-level error leaves the session usable; only a dead driver is a crash
            if not self.health.probe():
                self.health.record_crash(f"{type(e).__name__}: {e.msg}")
            raise ChannelFailure(FailureKind.TRANSIENT, f"browser error: {e.msg}")

        return self._finalize(
            raw,
            target,
            {
                "authenticated_realm": realm
                if realm in self.health.session_realms
                else None,
            },
        )

    def authenticate(self, driver: Any, realm: str) -> bool:
        """Run the login recipe for ``realm``; failures are logged, not raised."""
        creds = self.credentials.get(realm)
        recipe = self.recipes.get(realm)
        if creds is None or recipe is None:
            logger.debug(f"No credentials or recipe for realm {realm}; reading anonymously")
            return False

        logger.info(f"🔐 Logging in to {realm}")
        try:
            driver.get(recipe.login_url)
            for step in recipe.steps:
                element = driver.find_element(By.CSS_SELECTOR, step.selector)
                if step.value == "email":
                    element.send_keys(creds.email)
                elif step.value == "password":
                    element.send_keys(creds.password)
                else:
                    element.click()
                if step.pause:
                    self._sleep(step.pause)
        except WebDriverException as e:
            logger.warning(f"Login to {realm} failed: {e.msg}")
            return False

        self.health.session_realms.add(realm)
        return True

    def close(self) -> None:
        self.health.teardown()
