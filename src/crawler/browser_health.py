"""Liveness and crash recovery for the local browser session.

The monitor owns the driver used by the direct browser channel. Before each
attempt the channel calls :meth:`BrowserHealthMonitor.ensure_healthy`, which
probes the session and rebuilds it when the probe fails. Every failed probe
or mid-attempt driver error counts as a crash; once crashes exceed the
ceiling the monitor is Exhausted and the channel stays disabled for the rest
of the run.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable

from src.models.retrieval import FailureKind

from . import ChannelFailure

logger = logging.getLogger(__name__)


class HealthState(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    EXHAUSTED = "exhausted"


class BrowserHealthMonitor:
    def __init__(
        self,
        driver_factory: Callable[[], Any],
        max_crashes: int = 3,
        max_recreate_attempts: int = 2,
        recreate_pause: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver_factory = driver_factory
        self.max_crashes = max_crashes
        self.max_recreate_attempts = max(1, max_recreate_attempts)
        self.recreate_pause = recreate_pause
        self._sleep = sleep

        self.state = HealthState.HEALTHY
        self.crash_count = 0
        self.recreations = 0
        self.driver: Any = None
        # Login realms authenticated in the current browser session
        self.session_realms: set[str] = set()

    @property
    def exhausted(self) -> bool:
        return self.state is HealthState.EXHAUSTED

    def probe(self) -> bool:
        if self.driver is None:
            return False
        try:
            _ = self.driver.current_url
            self.driver.execute_script("return document.readyState")
            return True
        except Exception as e:
            logger.warning(f"Browser liveness probe failed: {e}")
            return False

    def ensure_healthy(self) -> Any:
        """Return a live driver, recreating the session if needed.

        Raises:
            ChannelFailure: (transient) when the monitor is, or becomes,
                Exhausted.
        """
        if self.exhausted:
            raise ChannelFailure(FailureKind.TRANSIENT, "browser health exhausted")

        if self.driver is None:
            if self.crash_count == 0 and self.recreations == 0:
                # First use in this run; a failed launch is handled like a crash
                self.driver = self._try_create()
                if self.driver is not None:
                    return self.driver
                self._register_crash("initial browser launch failed")
            # Otherwise the crash was already counted by record_crash()
        elif self.probe():
            self.state = HealthState.HEALTHY
            return self.driver
        else:
            self._register_crash("liveness probe failed")

        if self.exhausted:
            raise ChannelFailure(FailureKind.TRANSIENT, "browser health exhausted")

        self._recreate()
        if self.exhausted:
            raise ChannelFailure(FailureKind.TRANSIENT, "browser health exhausted")
        return self.driver

    def record_crash(self, reason: str = "driver error") -> None:
        """Called by the channel when the driver dies mid-attempt."""
        self._register_crash(reason)
        self.teardown()

    def _register_crash(self, reason: str) -> None:
        self.crash_count += 1
        if self.crash_count > self.max_crashes:
            self.state = HealthState.EXHAUSTED
            logger.error(
                f"🛑 Browser crashed {self.crash_count} times ({reason}); "
                "disabling direct browser for this run"
            )
            self.teardown()
        else:
            self.state = HealthState.UNHEALTHY
            logger.warning(
                f"Browser unhealthy ({reason}); crash {self.crash_count}/{self.max_crashes}"
            )

    def _recreate(self) -> None:
        self.teardown()
        for attempt in range(1, self.max_recreate_attempts + 1):
            if attempt > 1 and self.recreate_pause:
                self._sleep(self.recreate_pause)
            self.driver = self._try_create()
            if self.driver is not None and self.probe():
                self.recreations += 1
                self.state = HealthState.HEALTHY
                logger.info(f"Browser session recreated (attempt {attempt})")
                return
            self.teardown()

        self.state = HealthState.EXHAUSTED
        logger.error(
            f"🛑 Could not recreate browser after {self.max_recreate_attempts} attempts"
        )

    def _try_create(self) -> Any:
        try:
            return self.driver_factory()
        except Exception as e:
            logger.warning(f"Browser launch failed: {e}")
            return None

    def teardown(self) -> None:
        driver, self.driver = self.driver, None
        self.session_realms.clear()
        if driver is None:
            return
        try:
            driver.quit()
        except Exception as e:
            logger.debug(f"Ignoring error while quitting browser: {e}")

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "crash_count": self.crash_count,
            "max_crashes": self.max_crashes,
            "recreations": self.recreations,
        }
