"""Run state inspection command for the modular CLI."""

from __future__ import annotations

import logging

from src.config import CollectorSettings
from src.models.database import DatabaseManager
from src.models.store import SQLAlchemyStateStore
from src.utils.run_state import STORE_KEY, RunStateStore

logger = logging.getLogger(__name__)


def add_run_state_parser(subparsers):
    """Add run-state command parser."""
    parser = subparsers.add_parser(
        "run-state",
        help="Show the resumable run state or start the next run fresh",
    )
    parser.add_argument(
        "--database-url",
        help="State database URL (defaults to DATABASE_URL or local sqlite)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Discard processed/failed ids so the next run starts fresh",
    )
    parser.add_argument(
        "--show-failed",
        action="store_true",
        help="List the ids that failed in the current run",
    )


def handle_run_state_command(args) -> int:
    settings = CollectorSettings.from_env()
    store = SQLAlchemyStateStore(DatabaseManager(args.database_url))
    run_state = RunStateStore(store, freshness_hours=settings.state_freshness_hours)
    state = run_state.load()

    if args.reset:
        store.put(STORE_KEY, {})
        logger.info("Run state reset")
        print("🔄 Run state reset; the next run starts fresh")
        return 0

    counts = run_state.counts()
    print()
    print("🔄 Run state")
    print("=" * 70)
    if run_state.resumed:
        print(f"Started: {state.started_at.isoformat()}")
        print(f"Processed: {counts['processed']}")
        print(f"Failed: {counts['failed']}")
        if args.show_failed:
            for target_id in state.failed_ids:
                print(f"  - {target_id}")
    else:
        print("No resumable run within the freshness window")
    return 0
