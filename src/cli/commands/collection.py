"""Review text collection command for the modular CLI."""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

from src.config import CollectorSettings, SelectionConfig
from src.crawler.content_extraction import (
    NewspaperExtractionStrategy,
    SelectorExtractionStrategy,
)
from src.crawler.site_directory import SiteDirectory
from src.models.database import DatabaseManager
from src.models.retrieval import ChannelId
from src.models.store import SQLAlchemyStateStore
from src.pipeline.collection import CollectionRunner, build_context, target_from_dict

logger = logging.getLogger(__name__)


def add_collect_parser(subparsers):
    """Add collect command parser."""
    parser = subparsers.add_parser(
        "collect",
        help="Retrieve review texts for a catalog of targets and classify them",
    )
    parser.add_argument(
        "catalog",
        help="JSON file with a list of targets (id, url, topic_keyword, excerpt)",
    )
    parser.add_argument(
        "--output",
        default="data/review_texts.jsonl",
        help="JSONL file that receives one report per processed target",
    )
    parser.add_argument(
        "--summary",
        help="Optional path for the run summary JSON",
    )
    parser.add_argument(
        "--sites",
        help="JSON file with a site table replacing the built-in one",
    )
    parser.add_argument(
        "--database-url",
        help="State database URL (defaults to DATABASE_URL or local sqlite)",
    )
    parser.add_argument(
        "--force-channel",
        choices=[c.value for c in ChannelId],
        help="Use only this channel for every target",
    )
    parser.add_argument(
        "--aggressive",
        action="store_true",
        help="Skip the direct browser for sites known to block automation",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Reprocess targets that failed earlier in the same run",
    )
    parser.add_argument(
        "--no-rediscovery",
        action="store_true",
        help="Do not search for replacement urls after a dead link",
    )
    parser.add_argument(
        "--extractor",
        choices=["newspaper", "selectors"],
        default="newspaper",
        help="Article text extraction strategy (default: newspaper)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        help="Process at most this many catalog entries",
    )


def _load_json(path: str) -> Any:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def _settings_from_args(args) -> CollectorSettings:
    settings = CollectorSettings.from_env()
    selection = settings.selection
    if args.force_channel or args.aggressive:
        selection = SelectionConfig(
            forced_channel=(
                ChannelId(args.force_channel)
                if args.force_channel
                else selection.forced_channel
            ),
            aggressive=args.aggressive or selection.aggressive,
        )
    return dataclasses.replace(
        settings,
        selection=selection,
        retry_failed=args.retry_failed or settings.retry_failed,
        rediscovery_enabled=settings.rediscovery_enabled and not args.no_rediscovery,
    )


def handle_collect_command(args) -> int:
    """Run a collection pass over the catalog. Returns an exit code."""
    try:
        rows = _load_json(args.catalog)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read catalog {args.catalog}: {e}")
        return 1
    if not isinstance(rows, list):
        logger.error("Catalog must be a JSON list of target objects")
        return 1

    sites = SiteDirectory(_load_json(args.sites)) if args.sites else SiteDirectory()

    targets = []
    for row in rows[: args.limit] if args.limit else rows:
        try:
            targets.append(target_from_dict(row, sites))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed catalog row {row!r}: {e}")

    settings = _settings_from_args(args)
    extractor = (
        NewspaperExtractionStrategy()
        if args.extractor == "newspaper"
        else SelectorExtractionStrategy()
    )
    store = SQLAlchemyStateStore(DatabaseManager(args.database_url))
    ctx = build_context(settings, store, sites=sites, extractor=extractor)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    print()
    print("📚 Review Text Collection")
    print("=" * 70)
    print(f"Targets in catalog: {len(targets)}")
    if settings.selection.forced_channel:
        print(f"Forced channel: {settings.selection.forced_channel.value}")
    print(f"Aggressive mode: {settings.selection.aggressive}")
    print()

    try:
        with output.open("a", encoding="utf-8") as out:

            def write_report(report):
                out.write(json.dumps(report.to_dict(), ensure_ascii=False) + "\n")
                out.flush()

            _, summary = CollectionRunner(ctx, on_report=write_report).run(targets)
    except KeyboardInterrupt:
        logger.warning("Interrupted; progress up to the last target was saved")
        return 130
    finally:
        ctx.close()

    data = summary.to_dict()
    if args.summary:
        Path(args.summary).write_text(json.dumps(data, indent=2), encoding="utf-8")

    print()
    print("Summary")
    print("-" * 70)
    print(f"  Processed:     {data['processed']}")
    print(f"  Succeeded:     {data['succeeded']}")
    print(f"  Failed:        {data['failed']}")
    print(f"  Skipped:       {data['skipped']} (no channel admitted; retried next run)")
    print(f"  Already done:  {data['already_done']}")
    print(f"  Rediscovered:  {data['rediscovered']}")
    if data["stopped_early"]:
        print("  ⏱️ Run budget reached before the catalog was finished")
    for tier, count in sorted(data["tiers"].items()):
        print(f"  Tier {tier}: {count}")
    for channel, stats in data["channels"].items():
        if stats["attempts"]:
            print(f"  {channel}: {stats['successes']}/{stats['attempts']} attempts succeeded")
    print(f"Reports written to {output}")
    return 0
