from unittest.mock import Mock

import pytest

from src.crawler import ChannelFailure
from src.crawler.browser_health import BrowserHealthMonitor, HealthState

pytestmark = pytest.mark.unit


def _driver(alive=True):
    driver = Mock()
    if not alive:
        driver.execute_script.side_effect = RuntimeError("session deleted")
    return driver


def _monitor(factory, **kwargs):
    kwargs.setdefault("sleep", lambda _s: None)
    return BrowserHealthMonitor(factory, **kwargs)


def test_first_use_launches_driver():
    driver = _driver()
    monitor = _monitor(Mock(return_value=driver))
    assert monitor.ensure_healthy() is driver
    assert monitor.state is HealthState.HEALTHY
    assert monitor.crash_count == 0


def test_healthy_driver_is_reused():
    factory = Mock(return_value=_driver())
    monitor = _monitor(factory)
    first = monitor.ensure_healthy()
    assert monitor.ensure_healthy() is first
    assert factory.call_count == 1


def test_failed_probe_recreates_session():
    dead, fresh = _driver(alive=False), _driver()
    monitor = _monitor(Mock(side_effect=[dead, fresh]))
    monitor.ensure_healthy()

    assert monitor.ensure_healthy() is fresh
    assert monitor.crash_count == 1
    assert monitor.recreations == 1
    dead.quit.assert_called_once()


def test_record_crash_counts_once_and_recreates():
    first, second = _driver(), _driver()
    monitor = _monitor(Mock(side_effect=[first, second]))
    monitor.ensure_healthy()
    monitor.session_realms.add("NYT")

    monitor.record_crash("renderer died")
    assert monitor.driver is None
    assert monitor.session_realms == set()

    assert monitor.ensure_healthy() is second
    assert monitor.crash_count == 1


def test_crashes_past_ceiling_exhaust_monitor():
    monitor = _monitor(lambda: _driver(), max_crashes=3)
    monitor.ensure_healthy()
    for _ in range(3):
        monitor.record_crash()
        monitor.ensure_healthy()
    assert not monitor.exhausted

    monitor.record_crash()
    assert monitor.exhausted
    with pytest.raises(ChannelFailure):
        monitor.ensure_healthy()


def test_recreate_gives_up_after_bounded_attempts():
    factory = Mock(side_effect=[_driver(), RuntimeError("no chrome"), RuntimeError("no chrome")])
    monitor = _monitor(factory, max_recreate_attempts=2)
    monitor.ensure_healthy()
    monitor.record_crash()

    with pytest.raises(ChannelFailure):
        monitor.ensure_healthy()
    assert monitor.exhausted
    assert factory.call_count == 3


def test_stats():
    monitor = _monitor(lambda: _driver())
    monitor.ensure_healthy()
    assert monitor.stats() == {
        "state": "healthy",
        "crash_count": 0,
        "max_crashes": 3,
        "recreations": 0,
    }
