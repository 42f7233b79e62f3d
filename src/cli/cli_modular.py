"""Streamlined CLI interface with modular command structure."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable

# Command modules are lazy-loaded so browser and parser imports only happen
# for the command that needs them.

logger = logging.getLogger(__name__)


CommandHandler = Callable[[argparse.Namespace], int]

COMMAND_MODULES: dict[str, str] = {
    "collect": "collection",
    "budget-status": "budget",
    "run-state": "run_state",
}

COMMAND_HANDLER_ATTRS: dict[str, str] = {
    "collect": "handle_collect_command",
    "budget-status": "handle_budget_status_command",
    "run-state": "handle_run_state_command",
}


def create_parser() -> argparse.ArgumentParser:
    """Create minimal parser - commands loaded on-demand in main()."""
    parser = argparse.ArgumentParser(
        prog="review-collector",
        description="Review text collection across fallback retrieval channels",
        add_help=False,
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. INFO, DEBUG)",
    )

    parser.add_argument(
        "command",
        nargs="?",
        help="Command to run (use 'COMMAND --help' for command-specific help)",
    )

    return parser


def _load_command_parser(command: str) -> tuple[Callable, Callable] | None:
    """Load parser and handler for a specific command on-demand.

    Returns: (add_parser_func, handle_command_func) or None if not found
    """
    module_name = COMMAND_MODULES.get(command)
    if not module_name:
        return None

    try:
        module = __import__(f"src.cli.commands.{module_name}", fromlist=["*"])
    except ImportError as e:
        logger.warning(f"Failed to load command '{command}': {e}")
        return None

    parser_func = getattr(module, f"add_{command.replace('-', '_')}_parser", None)
    handler_func = getattr(module, COMMAND_HANDLER_ATTRS[command], None)
    if parser_func and handler_func:
        return parser_func, handler_func
    return None


def main(
    argv: list[str] | None = None,
    *,
    setup_logging_func: Callable[[str], None] | None = None,
    handler_overrides: dict[str, CommandHandler] | None = None,
) -> int:
    """Main CLI entry point with on-demand command loading."""
    parser = create_parser()
    args, remaining = parser.parse_known_args(argv)

    log_level = getattr(args, "log_level", "INFO") or "INFO"
    if setup_logging_func is None:
        from .context import setup_logging as default_setup_logging

        setup_logging_func = default_setup_logging

    setup_logging_func(log_level)

    command = args.command
    if not command:
        print("Available commands:", file=sys.stderr)
        print("  collect        - Retrieve and classify review texts", file=sys.stderr)
        print("  budget-status  - Show metered channel spend", file=sys.stderr)
        print("  run-state      - Show or reset resumable run state", file=sys.stderr)
        print("Use: review-collector COMMAND --help for more info", file=sys.stderr)
        return 1

    if handler_overrides and command in handler_overrides:
        full_parser = argparse.ArgumentParser()
        full_parser.add_argument("command")
        full_args, _ = full_parser.parse_known_args([command] + remaining)
        return handler_overrides[command](full_args)

    result = _load_command_parser(command)
    if result is None:
        print(f"Unknown command: {command}", file=sys.stderr)
        return 1

    add_parser_func, handle_func = result

    full_parser = argparse.ArgumentParser(
        prog=f"review-collector {command}",
        description=f"Run {command} command",
    )
    full_parser.add_argument("--log-level", default="INFO")

    subparsers = full_parser.add_subparsers(dest="command")
    add_parser_func(subparsers)

    full_args = full_parser.parse_args([command] + remaining)
    return handle_func(full_args)


if __name__ == "__main__":
    sys.exit(main())
