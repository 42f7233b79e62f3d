"""Page routine shared by the local and remote browser channels."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from src.models.retrieval import FailureKind

from .. import ChannelFailure
from ..content_extraction import OVERLAY_SELECTORS

logger = logging.getLogger(__name__)

# Any of these means the article body has rendered
CONTENT_READY_SELECTORS = [
    "article",
    '[class*="article"]',
    '[class*="review"]',
    '[class*="content"]',
    "main p",
]

CLOSE_SELECTORS = [
    "button[aria-label*='close' i]",
    "button[title*='close' i]",
    "button[aria-label*='dismiss' i]",
    "[data-dismiss='modal']",
    ".modal-close",
    ".close-button",
    "button.close",
    "button[aria-label*='no thanks' i]",
    ".tp-close",
    "#close-modal",
]

NOT_FOUND_TITLES = ("404", "page not found", "not found |", "| not found")

_REMOVE_OVERLAYS_JS = """
var selectors = arguments[0];
var removed = 0;
selectors.forEach(function (sel) {
    try {
        document.querySelectorAll(sel).forEach(function (el) { el.remove(); removed++; });
    } catch (e) {}
});
document.documentElement.style.overflow = 'auto';
document.body && (document.body.style.overflow = 'auto');
return removed;
"""


class BrowserPageRoutine:
    """Load a url in a live driver and return the cleaned page source."""

    def __init__(
        self,
        timeout: float = 45.0,
        ready_timeout: float = 10.0,
        max_scrolls: int = 6,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = timeout
        self.ready_timeout = min(ready_timeout, timeout)
        self.max_scrolls = max_scrolls
        self._sleep = sleep

    def load(self, driver: Any, url: str) -> str:
        """Navigate, wait, scroll and clean.

        Raises:
            ChannelFailure: transient on a page load timeout, not_found when
                the rendered page is an error page.
            WebDriverException: any other driver error, for the caller to
                treat as a crash.
        """
        driver.set_page_load_timeout(self.timeout)
        try:
            driver.get(url)
        except TimeoutException as e:
            raise ChannelFailure(FailureKind.TRANSIENT, f"page load timeout: {e.msg}")

        title = (driver.title or "").strip().lower()
        if any(marker in title for marker in NOT_FOUND_TITLES):
            raise ChannelFailure(FailureKind.NOT_FOUND, f"error page title {title!r}")

        self.wait_for_content(driver)
        self.trigger_lazy_load(driver)
        self.close_modals(driver, url)
        removed = driver.execute_script(_REMOVE_OVERLAYS_JS, OVERLAY_SELECTORS)
        if removed:
            logger.debug(f"Removed {removed} overlay nodes on {url}")
        return driver.page_source or ""

    def wait_for_content(self, driver: Any) -> bool:
        conditions = [
            EC.presence_of_element_located((By.CSS_SELECTOR, selector))
            for selector in CONTENT_READY_SELECTORS
        ]
        try:
            WebDriverWait(driver, self.ready_timeout).until(EC.any_of(*conditions))
            return True
        except TimeoutException:
            logger.debug("No content-bearing selector appeared; continuing anyway")
            return False

    def trigger_lazy_load(self, driver: Any) -> None:
        """Scroll down in reading-sized steps so lazy blocks render."""
        last_height = driver.execute_script("return document.body.scrollHeight") or 0
        position = 0
        for _ in range(self.max_scrolls):
            position += random.randint(600, 1000)
            driver.execute_script(f"window.scrollTo(0, {position});")
            self._sleep(random.uniform(0.3, 0.8))
            height = driver.execute_script("return document.body.scrollHeight") or 0
            if position >= height and height == last_height:
                break
            last_height = height
        driver.execute_script("window.scrollTo(0, 0);")

    def close_modals(self, driver: Any, url: str) -> bool:
        for selector in CLOSE_SELECTORS:
            try:
                elements = driver.find_elements(By.CSS_SELECTOR, selector)
            except WebDriverException:
                continue
            for element in elements[:2]:
                try:
                    if element.is_displayed() and element.is_enabled():
                        element.click()
                        self._sleep(0.5)
                        logger.info(f"Closed modal on {url} using selector: {selector}")
                        return True
                except WebDriverException as e:
                    logger.debug(f"Failed to close with {selector}: {e}")
        return False
