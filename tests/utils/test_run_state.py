"""Resumable run state."""

from datetime import datetime, timedelta, timezone

import pytest

from src.utils.run_state import STORE_KEY, RunStateStore

pytestmark = pytest.mark.unit

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _persist(store, started_at, processed=(), failed=()):
    store.put(
        STORE_KEY,
        {
            "processed_ids": list(processed),
            "failed_ids": list(failed),
            "started_at": started_at.isoformat(),
        },
    )


def test_fresh_state_is_resumed(store):
    _persist(store, NOW - timedelta(hours=3), processed=["a"], failed=["b"])
    run_state = RunStateStore(store, clock=lambda: NOW)
    run_state.load()

    assert run_state.resumed
    assert not run_state.should_process("a")
    assert not run_state.should_process("b")
    assert run_state.should_process("c")


def test_stale_state_is_discarded(store):
    _persist(store, NOW - timedelta(hours=25), processed=["a"])
    run_state = RunStateStore(store, freshness_hours=24, clock=lambda: NOW)
    state = run_state.load()

    assert not run_state.resumed
    assert state.processed_ids == []
    assert state.started_at == NOW
    assert run_state.should_process("a")


def test_unreadable_state_starts_fresh(store):
    store.put(STORE_KEY, {"processed_ids": ["a"], "started_at": "not a date"})
    run_state = RunStateStore(store, clock=lambda: NOW)
    run_state.load()
    assert not run_state.resumed
    assert run_state.should_process("a")


def test_retry_failed_reprocesses_failed_ids(store):
    _persist(store, NOW - timedelta(hours=1), failed=["b"])
    run_state = RunStateStore(store, retry_failed=True, clock=lambda: NOW)
    run_state.load()
    assert run_state.should_process("b")

    run_state.mark_processed("b")
    assert run_state.counts() == {"processed": 1, "failed": 0}


def test_processed_and_failed_are_disjoint(store):
    run_state = RunStateStore(store, clock=lambda: NOW)
    run_state.load()
    run_state.mark_processed("a")
    run_state.mark_failed("a")
    run_state.mark_failed("b")
    run_state.mark_failed("b")

    assert run_state.state.processed_ids == ["a"]
    assert run_state.state.failed_ids == ["b"]


def test_flush_round_trips_through_store(store):
    run_state = RunStateStore(store, clock=lambda: NOW)
    run_state.load()
    run_state.mark_processed("a")
    run_state.flush()

    reloaded = RunStateStore(store, clock=lambda: NOW + timedelta(minutes=5))
    reloaded.load()
    assert reloaded.resumed
    assert reloaded.state.started_at == NOW
    assert not reloaded.should_process("a")
