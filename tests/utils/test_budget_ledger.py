"""Budget ledger admission, persistence and day rollover."""

import pytest

from src.config import ChannelCeiling
from src.crawler import BudgetExceededError
from src.models.retrieval import ChannelId
from src.utils.budget_ledger import STORE_KEY, BudgetLedger

pytestmark = pytest.mark.unit

REMOTE = ChannelId.REMOTE_BROWSER


def _ledger(store, today="2026-10-19", **ceiling):
    return BudgetLedger(
        store,
        {REMOTE.value: ChannelCeiling(**ceiling)},
        today=lambda: today,
    )


def test_admit_until_daily_ceiling_reached(store):
    ledger = _ledger(store, daily_sessions=3)
    for _ in range(3):
        assert ledger.admit(REMOTE)
        ledger.charge(REMOTE)
    assert not ledger.admit(REMOTE)
    assert REMOTE.value in ledger.exhausted_channels()


def test_refused_charge_records_nothing(store):
    ledger = _ledger(store, daily_sessions=1)
    ledger.charge(REMOTE)
    with pytest.raises(BudgetExceededError):
        ledger.charge(REMOTE)
    assert ledger.state(REMOTE).sessions_used_today == 1


def test_run_ceiling_resets_on_new_run_but_not_on_resume(store):
    ledger = _ledger(store, daily_sessions=30, run_sessions=2)
    ledger.charge(REMOTE)
    ledger.charge(REMOTE)
    assert not ledger.admit(REMOTE)

    ledger.begin_run(resume=True)
    assert not ledger.admit(REMOTE)

    ledger.begin_run()
    assert ledger.admit(REMOTE)
    assert ledger.state(REMOTE).sessions_used_today == 2


def test_counts_survive_restart_same_day(store):
    ledger = _ledger(store, daily_sessions=30)
    for _ in range(30):
        ledger.charge(REMOTE)
    ledger.flush()

    restarted = _ledger(store, daily_sessions=30)
    assert restarted.state(REMOTE).sessions_used_today == 30
    assert not restarted.admit(REMOTE)


def test_day_rollover_archives_and_resets(store):
    ledger = _ledger(store, today="2026-10-18", daily_sessions=30)
    ledger.charge(REMOTE, cost=5)
    ledger.flush()

    next_day = _ledger(store, today="2026-10-19", daily_sessions=30)
    assert next_day.state(REMOTE).sessions_used_today == 0
    assert next_day.history == [
        {
            "date": "2026-10-18",
            "per_channel": {
                REMOTE.value: {
                    "sessions_today": 5,
                    "sessions_this_run": 5,
                    "minutes_today": 0.0,
                }
            },
        }
    ]


def test_history_is_trimmed(store):
    store.put(
        STORE_KEY,
        {
            "date": "2026-10-18",
            "per_channel": {REMOTE.value: {"sessions_today": 1, "sessions_this_run": 1, "minutes_today": 0.0}},
            "history": [{"date": f"2026-09-{d:02d}", "per_channel": {}} for d in range(1, 11)],
        },
    )
    ledger = BudgetLedger(store, {}, history_days=3, today=lambda: "2026-10-19")
    assert [h["date"] for h in ledger.history] == ["2026-09-09", "2026-09-10", "2026-10-18"]


def test_minutes_ceiling_denies_admission(store):
    ledger = _ledger(store, daily_minutes=10)
    ledger.record_minutes(REMOTE, 6.5)
    assert ledger.admit(REMOTE)
    ledger.record_minutes(REMOTE, 4)
    assert not ledger.admit(REMOTE)


def test_unmetered_channel_is_always_admitted_but_counted(store):
    ledger = _ledger(store, daily_sessions=1)
    for _ in range(5):
        ledger.charge(ChannelId.SNAPSHOT)
    assert ledger.admit(ChannelId.SNAPSHOT)
    assert ledger.state(ChannelId.SNAPSHOT).sessions_used_today == 5


def test_ceiling_without_limits_never_blocks(store):
    ledger = _ledger(store)
    assert not ledger.ceilings[REMOTE.value].metered
    for _ in range(50):
        ledger.charge(REMOTE)
    assert ledger.admit(REMOTE)
    assert REMOTE.value not in ledger.exhausted_channels()


def test_snapshot_reports_headroom(store):
    ledger = _ledger(store, daily_sessions=30, run_sessions=15)
    ledger.charge(REMOTE)
    row = ledger.snapshot()["channels"][REMOTE.value]
    assert row["sessions_today"] == 1
    assert row["daily_ceiling"] == 30
    assert row["run_ceiling"] == 15
    assert row["admitted"] is True
