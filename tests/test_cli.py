# ruff: noqa: E402, I001
from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(ROOT / "packages"), str(ROOT / "libs" / "db" / "src"), str(ROOT)]
    if p not in sys.path
]

import expense_parser.cli as cli_mod
import expense_parser.gateway as gateway_mod
from db.client import session_scope
from expense_parser.ledger import list_tracker_logs
from tests.helpers.db import bootstrap_sqlite_db
from tests.helpers.openai_stub import Completion, OpenAIStub

runner = CliRunner()

LUNCH = json.dumps(
    [
        {
            "kind": "expense",
            "amount": 250,
            "categoryName": "Food & Dining",
            "subcategoryName": "Foods",
            "paymentMethod": "Cash",
        }
    ]
)


@pytest.fixture(autouse=True)
def _cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's .env and the process-wide log handler out of CLI output.
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **k: None)


def _stub_openai(monkeypatch: pytest.MonkeyPatch, *outcomes) -> OpenAIStub:
    stub = OpenAIStub(outcomes)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(gateway_mod, "_create_client", lambda settings: stub)
    return stub


def test_parse_prints_transactions_as_json(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_openai(monkeypatch, Completion(LUNCH, prompt_tokens=100, completion_tokens=20))

    result = runner.invoke(cli_mod.app, ["parse", "lunch 250 cash"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    (tx,) = payload["transactions"]
    assert tx["kind"] == "expense"
    assert tx["amount"] == "250"
    assert tx["categoryId"] == "food-dining"
    assert tx["paymentMethod"] == "Cash"
    assert payload["usage"]["total_tokens"] == 120


def test_parse_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_openai(
        monkeypatch,
        json.dumps([{"amount": 50, "categoryName": "xyz", "subcategoryName": "xyz"}]),
    )

    result = runner.invoke(cli_mod.app, ["parse", "50 on xyz"])

    assert result.exit_code == 1
    assert "CategoryNotFound" in result.output
    assert "Missing categories: xyz" in result.output


def test_parse_without_key_reports_configuration_error() -> None:
    result = runner.invoke(cli_mod.app, ["parse", "lunch 250"])

    assert result.exit_code == 1
    assert "ConfigurationError" in result.output


def test_parse_with_tracker_and_user_records_usage(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    url = bootstrap_sqlite_db(tmp_path / "cli.sqlite3")
    _stub_openai(monkeypatch, Completion(LUNCH, prompt_tokens=100, completion_tokens=20))

    seeded = runner.invoke(
        cli_mod.app, ["seed-taxonomy", "--tracker-id", "t1", "--database-url", url]
    )
    parsed = runner.invoke(
        cli_mod.app,
        [
            "parse",
            "lunch 250 cash",
            "--tracker-id",
            "t1",
            "--database-url",
            url,
            "--user-id",
            "u1",
            "--tracker-name",
            "Home",
        ],
    )

    assert seeded.exit_code == 0, seeded.output
    assert "Seeded 14 categories for tracker t1." in seeded.output
    assert parsed.exit_code == 0, parsed.output
    with session_scope(database_url=url) as s:
        page = list_tracker_logs(s, user_id="u1", tracker_id="t1")
    assert page.total_count == 2
    assert {i["token_count"] for i in page.items} == {100, 20}
    assert page.items[0]["tracker"]["tracker_name"] == "Home"


def test_tracker_logs_and_maintenance_commands(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "maint.sqlite3")

    from expense_parser.ledger import record_exchange
    from expense_parser.models import TrackerSnapshot

    with session_scope(database_url=url) as s:
        record_exchange(
            s,
            user_id="u1",
            tracker=TrackerSnapshot(tracker_id="t1", tracker_name="Home"),
            role="user",
            content="lunch 250",
            token_count=5,
        )

    logs = runner.invoke(
        cli_mod.app,
        ["tracker-logs", "--user-id", "u1", "--tracker-id", "t1", "--database-url", url],
    )
    pruned = runner.invoke(cli_mod.app, ["prune-usage-logs", "--database-url", url])
    purged = runner.invoke(
        cli_mod.app, ["purge-user-usage", "--user-id", "u1", "--database-url", url]
    )

    assert logs.exit_code == 0, logs.output
    assert "1 of 1 rows" in logs.output
    assert "Deleted 0 log rows older than 90 days." in pruned.output
    assert "Deleted 1 log rows and 1 daily buckets." in purged.output


def test_usage_command_reports_totals_and_tracker_days(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "usage.sqlite3")

    from expense_parser.ledger import mark_tracker_deleted, record_exchange
    from expense_parser.models import TrackerSnapshot

    with session_scope(database_url=url) as s:
        for tracker, role, tokens in (
            (TrackerSnapshot(tracker_id="t1", tracker_name="Home"), "user", 30),
            (TrackerSnapshot(tracker_id="t1", tracker_name="Home"), "assistant", 12),
            (TrackerSnapshot(tracker_id="t2", tracker_name="Shop"), "user", 8),
        ):
            record_exchange(
                s, user_id="u1", tracker=tracker, role=role, content="x", token_count=tokens
            )
    with session_scope(database_url=url) as s:
        mark_tracker_deleted(s, tracker_id="t2")

    overall = runner.invoke(cli_mod.app, ["usage", "--user-id", "u1", "--database-url", url])
    one = runner.invoke(
        cli_mod.app,
        ["usage", "--user-id", "u1", "--tracker-id", "t1", "--database-url", url],
    )
    missing = runner.invoke(
        cli_mod.app,
        ["usage", "--user-id", "u1", "--tracker-id", "t9", "--database-url", url],
    )

    assert overall.exit_code == 0, overall.output
    assert "Home" in overall.output
    assert "Shop (deleted)" in overall.output
    assert "Total: 3 messages (2 user, 1 assistant), 50 tokens" in overall.output
    assert one.exit_code == 0, one.output
    assert "Daily usage for Home" in one.output
    assert "Total: 2 messages (1 user, 1 assistant), 42 tokens" in one.output
    assert "No usage recorded for tracker t9." in missing.output


def test_no_subcommand_shows_help() -> None:
    result = runner.invoke(cli_mod.app, [])

    assert "Usage" in result.output
