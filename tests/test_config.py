import pytest

from src.config import SEARCH_API_KEY, CollectorSettings
from src.models.retrieval import ChannelId

pytestmark = pytest.mark.unit


def test_defaults_from_empty_env():
    settings = CollectorSettings.from_env()

    assert settings.selection.forced_channel is None
    assert not settings.selection.aggressive
    remote = settings.ceilings[ChannelId.REMOTE_BROWSER.value]
    assert (remote.daily_sessions, remote.run_sessions) == (30, 15)
    assert settings.ceilings[SEARCH_API_KEY].metered
    assert ChannelId.SNAPSHOT.value not in settings.ceilings
    assert settings.max_attempts_per_channel == 3
    assert settings.run_budget_seconds is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("FORCE_CHANNEL", "Rendering_Proxy")
    monkeypatch.setenv("AGGRESSIVE_MODE", "yes")
    monkeypatch.setenv("BROWSERBASE_DAILY_SESSIONS", "5")
    monkeypatch.setenv("RUN_BUDGET_SECONDS", "600")

    settings = CollectorSettings.from_env()

    assert settings.selection.forced_channel is ChannelId.RENDERING_PROXY
    assert settings.selection.aggressive
    assert settings.ceilings[ChannelId.REMOTE_BROWSER.value].daily_sessions == 5
    assert settings.run_budget_seconds == 600


def test_bad_values_fall_back_to_defaults(monkeypatch, caplog):
    monkeypatch.setenv("FORCE_CHANNEL", "carrier_pigeon")
    monkeypatch.setenv("MAX_ATTEMPTS_PER_CHANNEL", "lots")

    settings = CollectorSettings.from_env()

    assert settings.selection.forced_channel is None
    assert settings.max_attempts_per_channel == 3
    assert "carrier_pigeon" in caplog.text
