import builtins
import json
import types
from unittest.mock import Mock

import pytest

from src.cli import cli_modular
from src.cli.commands import collection as collection_command
from src.config import CollectorSettings
from src.crawler.orchestrator import RetrievalOutcome
from src.models.retrieval import AttemptOutcome, AttemptRecord, ChannelId, RetrievalResult
from src.models.store import InMemoryStateStore
from src.pipeline.collection import RunContext
from src.utils.budget_ledger import BudgetLedger
from src.utils.content_validator import QualityClassifier
from src.utils.run_state import RunStateStore

pytestmark = pytest.mark.unit


def _noop_setup_logging(_level: str) -> None:
    return None


def test_main_no_command_shows_help(capsys):
    exit_code = cli_modular.main([], setup_logging_func=_noop_setup_logging)
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "Available commands" in captured.err


def test_main_unknown_command(capsys):
    exit_code = cli_modular.main(["unknown"], setup_logging_func=_noop_setup_logging)
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "Unknown command" in captured.err


def test_main_uses_handler_override():
    def custom_handler(args):
        assert args.command == "collect"
        return 42

    exit_code = cli_modular.main(
        ["collect"],
        setup_logging_func=_noop_setup_logging,
        handler_overrides={"collect": custom_handler},
    )
    assert exit_code == 42


def test_main_loads_command_module_dynamically(monkeypatch):
    module_name = "src.cli.commands.budget"
    fake_module = types.ModuleType(module_name)

    def add_budget_status_parser(subparsers):
        subparsers.add_parser("budget-status")

    def handle_budget_status_command(args):
        assert args.command == "budget-status"
        return 13

    fake_module.add_budget_status_parser = add_budget_status_parser
    fake_module.handle_budget_status_command = handle_budget_status_command

    original_import = builtins.__import__

    def fake_import(name, globals=None, locals=None, fromlist=(), level=0):
        if name == module_name:
            return fake_module
        return original_import(name, globals, locals, fromlist, level)

    monkeypatch.setattr(builtins, "__import__", fake_import)

    exit_code = cli_modular.main(["budget-status"], setup_logging_func=_noop_setup_logging)
    assert exit_code == 13


def test_load_command_parser_import_error(monkeypatch):
    def fake_import(name, globals=None, locals=None, fromlist=(), level=0):
        raise ModuleNotFoundError("missing module")

    monkeypatch.setattr(builtins, "__import__", fake_import)
    assert cli_modular._load_command_parser("collect") is None


def test_budget_status_json(capsys):
    exit_code = cli_modular.main(
        ["budget-status", "--json"], setup_logging_func=_noop_setup_logging
    )
    output = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert output["channels"]["remote_browser"]["daily_ceiling"] == 30
    assert output["channels"]["remote_browser"]["admitted"] is True


def test_run_state_without_resumable_run(capsys):
    exit_code = cli_modular.main(["run-state"], setup_logging_func=_noop_setup_logging)
    assert exit_code == 0
    assert "No resumable run" in capsys.readouterr().out


def test_collect_writes_reports(tmp_path, monkeypatch, review_text):
    catalog = tmp_path / "catalog.json"
    catalog.write_text(
        json.dumps(
            [
                {"id": "r1", "url": "https://www.example.com/hamlet-review", "topic": "Hamlet"},
                {"url": "https://www.example.com/missing-id"},
            ]
        )
    )
    output = tmp_path / "out" / "reports.jsonl"
    summary_path = tmp_path / "summary.json"

    orchestrator = Mock()
    orchestrator.retrieve.return_value = RetrievalOutcome(
        result=RetrievalResult("<p/>", review_text, ChannelId.SNAPSHOT),
        attempts=[AttemptRecord(ChannelId.SNAPSHOT, AttemptOutcome.SUCCESS)],
    )
    captured = {}

    def fake_build_context(settings, store, sites=None, extractor=None):
        captured["settings"] = settings
        memory = InMemoryStateStore()
        return RunContext(
            settings=settings,
            ledger=BudgetLedger(memory, settings.ceilings),
            run_state=RunStateStore(memory),
            orchestrator=orchestrator,
            classifier=QualityClassifier(),
            sleep=lambda _s: None,
        )

    monkeypatch.setattr(collection_command, "build_context", fake_build_context)

    exit_code = cli_modular.main(
        [
            "collect",
            str(catalog),
            "--output",
            str(output),
            "--summary",
            str(summary_path),
            "--force-channel",
            "snapshot",
        ],
        setup_logging_func=_noop_setup_logging,
    )

    assert exit_code == 0
    assert captured["settings"].selection.forced_channel is ChannelId.SNAPSHOT
    lines = [json.loads(line) for line in output.read_text().splitlines()]
    assert len(lines) == 1
    assert lines[0]["id"] == "r1"
    assert lines[0]["quality"]["tier"] == "full"
    assert json.loads(summary_path.read_text())["succeeded"] == 1


def test_collect_rejects_unreadable_catalog(tmp_path):
    exit_code = cli_modular.main(
        ["collect", str(tmp_path / "nope.json")], setup_logging_func=_noop_setup_logging
    )
    assert exit_code == 1


def test_settings_from_args_overrides_env(monkeypatch):
    monkeypatch.setenv("AGGRESSIVE_MODE", "false")
    args = types.SimpleNamespace(
        force_channel=None, aggressive=True, retry_failed=True, no_rediscovery=True
    )
    settings = collection_command._settings_from_args(args)
    assert isinstance(settings, CollectorSettings)
    assert settings.selection.aggressive
    assert settings.retry_failed
    assert not settings.rediscovery_enabled
