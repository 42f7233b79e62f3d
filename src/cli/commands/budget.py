"""Budget status command for the modular CLI."""

from __future__ import annotations

import json
import logging

from src.config import CollectorSettings
from src.models.database import DatabaseManager
from src.models.store import SQLAlchemyStateStore
from src.utils.budget_ledger import BudgetLedger

logger = logging.getLogger(__name__)


def add_budget_status_parser(subparsers):
    """Add budget-status command parser."""
    parser = subparsers.add_parser(
        "budget-status",
        help="Show today's spend and headroom for metered channels",
    )
    parser.add_argument(
        "--database-url",
        help="State database URL (defaults to DATABASE_URL or local sqlite)",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="Also list archived daily counters",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON",
    )


def _fmt(value) -> str:
    return "-" if value is None else str(value)


def handle_budget_status_command(args) -> int:
    settings = CollectorSettings.from_env()
    store = SQLAlchemyStateStore(DatabaseManager(args.database_url))
    ledger = BudgetLedger(store, settings.ceilings, history_days=settings.budget_history_days)
    snapshot = ledger.snapshot()

    if args.json:
        if args.history:
            snapshot["history"] = ledger.history
        print(json.dumps(snapshot, indent=2))
        return 0

    print()
    print(f"💰 Budget status for {snapshot['date']} (UTC)")
    print("=" * 70)
    for channel, row in snapshot["channels"].items():
        marker = "✅" if row["admitted"] else "⛔"
        print(
            f"{marker} {channel:<16} today {row['sessions_today']}/{_fmt(row['daily_ceiling'])}"
            f"  run {row['sessions_this_run']}/{_fmt(row['run_ceiling'])}"
            f"  minutes {row['minutes_today']}/{_fmt(row['minutes_ceiling'])}"
        )

    if args.history:
        print()
        print("History")
        print("-" * 70)
        for day in ledger.history:
            used = ", ".join(
                f"{channel}={counters.get('sessions_today', 0)}"
                for channel, counters in sorted(day["per_channel"].items())
            )
            print(f"  {day['date']}: {used}")
    return 0
