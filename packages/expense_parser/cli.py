# ruff: noqa: I001
"""CLI for the ``expense_parser`` package.

Operator commands for trying the parser against a live model and for the
usage-ledger maintenance hooks. The root callback loads a local ``.env``
(without overriding the environment) and configures logging; business logic
lives in :mod:`expense_parser.api`, :mod:`expense_parser.ledger` and
:mod:`expense_parser.ingest.seed_taxonomy`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .logging_setup import configure_logging

console = Console()
err_console = Console(stderr=True)


# Module-level option objects (no calls in parameter defaults).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
TRACKER_ID_OPTION: OptionInfo = typer.Option(
    "--tracker-id", help="Tracker whose taxonomy to use; omit for the built-in one."
)


def _to_jsonable(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def _print_failure(failure: Any) -> None:
    err_console.print(f"[red]{failure.error}:[/red] {failure.message}")
    if failure.missing_categories:
        err_console.print("Missing categories: " + ", ".join(failure.missing_categories))


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract and categorize transactions from free text with an OpenAI chat model, "
        "and maintain the token-usage ledger. Loads OPENAI_API_KEY and DATABASE_URL "
        "from a local .env."
    ),
)


@app.command("parse")
def parse_cmd(
    text: Annotated[str, typer.Argument(help="Free-text message, e.g. 'lunch 250 by card'.")],
    tracker_id: Annotated[str | None, TRACKER_ID_OPTION] = None,
    currency: Annotated[
        str | None, typer.Option("--currency", help="Tracker currency (default INR).")
    ] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[
        str | None,
        typer.Option("--user-id", help="Record the exchange in the usage ledger for this user."),
    ] = None,
    tracker_name: Annotated[
        str | None, typer.Option("--tracker-name", help="Tracker name stored with usage rows.")
    ] = None,
) -> None:
    """Parse one message and print the validated transactions as JSON."""

    from .api import parse_message
    from .models import Failure, TrackerSnapshot
    from .taxonomy import SqlCategoryStore

    store = SqlCategoryStore(database_url=database_url) if tracker_id and database_url else None
    result = parse_message(text, tracker_id, currency, store=store)

    if user_id:
        from db.client import session_scope

        from .ledger import log_parse_usage

        snapshot = TrackerSnapshot(
            tracker_id=tracker_id or "default",
            tracker_name=tracker_name or tracker_id or "default",
        )
        with session_scope(database_url=database_url) as session:
            recorded = log_parse_usage(
                session, user_id=user_id, tracker=snapshot, message=text, result=result
            )
        err_console.print(f"[cyan]Recorded {len(recorded)} usage row(s).[/cyan]")

    if isinstance(result, Failure):
        _print_failure(result)
        raise typer.Exit(1)

    payload = {
        "transactions": [tx.to_record() for tx in result.transactions],
        "usage": result.usage.model_dump(),
    }
    console.print_json(data=_to_jsonable(payload))


@app.command("chat")
def chat_cmd(
    message: Annotated[str, typer.Argument(help="Message for the assistant.")],
) -> None:
    """Send one message to the expense assistant persona."""

    from .api import chat_reply
    from .models import Failure

    reply = chat_reply(message, [])
    if isinstance(reply, Failure):
        _print_failure(reply)
        raise typer.Exit(1)
    console.print(reply.response)
    err_console.print(f"[dim]tokens: {reply.usage.total_tokens}[/dim]")


@app.command("seed-taxonomy")
def seed_taxonomy_cmd(
    tracker_id: Annotated[str, typer.Option("--tracker-id", help="Tracker to seed.")],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    replace: Annotated[
        bool, typer.Option(help="Delete the tracker's existing categories first.")
    ] = False,
) -> None:
    """Seed a tracker with the built-in categories, payment methods and credit sources."""

    from .ingest.seed_taxonomy import seed_tracker_taxonomy

    created = seed_tracker_taxonomy(
        tracker_id=tracker_id, database_url=database_url, replace=replace
    )
    console.print(f"Seeded {created} categories for tracker {tracker_id}.")


@app.command("tracker-logs")
def tracker_logs_cmd(
    user_id: Annotated[str, typer.Option("--user-id")],
    tracker_id: Annotated[str, typer.Option("--tracker-id")],
    limit: Annotated[int, typer.Option(min=1, max=1000)] = 100,
    offset: Annotated[int, typer.Option(min=0)] = 0,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Show a page of a tracker's usage log, newest first."""

    from db.client import session_scope

    from .ledger import list_tracker_logs

    with session_scope(database_url=database_url) as session:
        page = list_tracker_logs(
            session, user_id=user_id, tracker_id=tracker_id, limit=limit, offset=offset
        )

    table = Table(title=f"Usage log for tracker {tracker_id}")
    table.add_column("When")
    table.add_column("Role")
    table.add_column("Tokens", justify="right")
    table.add_column("Message", overflow="fold")
    for item in page.items:
        table.add_row(
            item["occurred_at"].strftime("%Y-%m-%d %H:%M:%S"),
            item["role"],
            str(item["token_count"]),
            item["content"],
        )
    console.print(table)
    more = " (more available)" if page.has_more else ""
    console.print(f"{len(page.items)} of {page.total_count} rows{more}")


@app.command("usage")
def usage_cmd(
    user_id: Annotated[str, typer.Option("--user-id")],
    tracker_id: Annotated[
        str | None, typer.Option("--tracker-id", help="Show one tracker's daily buckets.")
    ] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Show token usage totals per tracker, or one tracker's daily buckets."""

    from db.client import session_scope

    from .ledger import overall_usage, tracker_usage

    with session_scope(database_url=database_url) as session:
        if tracker_id:
            report = tracker_usage(session, user_id=user_id, tracker_id=tracker_id)
        else:
            report = overall_usage(session, user_id=user_id)

    totals = report.totals
    if tracker_id:
        if report.tracker is None:
            console.print(f"No usage recorded for tracker {tracker_id}.")
            return
        table = Table(title=f"Daily usage for {report.tracker.tracker_name}")
        table.add_column("Date")
        table.add_column("Messages", justify="right")
        table.add_column("Tokens", justify="right")
        for point in report.daily:
            table.add_row(
                point.usage_date.isoformat(), str(point.message_count), str(point.token_count)
            )
    else:
        table = Table(title=f"Usage for user {user_id}")
        table.add_column("Tracker")
        table.add_column("Type")
        table.add_column("Messages", justify="right")
        table.add_column("Tokens", justify="right")
        for item in report.by_tracker:
            name = item.tracker.tracker_name
            if item.tracker.is_deleted:
                name += " (deleted)"
            table.add_row(
                name, item.tracker.tracker_type, str(item.message_count), str(item.token_count)
            )
    console.print(table)
    console.print(
        f"Total: {totals.total_messages} messages "
        f"({totals.user_messages} user, {totals.ai_messages} assistant), "
        f"{totals.total_tokens} tokens"
    )


@app.command("purge-tracker-usage")
def purge_tracker_usage_cmd(
    tracker_id: Annotated[str, typer.Option("--tracker-id")],
    user_id: Annotated[str | None, typer.Option("--user-id")] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Delete every usage log row and daily bucket of a tracker."""

    from db.client import session_scope

    from .ledger import purge_tracker_usage

    with session_scope(database_url=database_url) as session:
        counts = purge_tracker_usage(session, tracker_id=tracker_id, user_id=user_id)
    console.print(f"Deleted {counts.logs} log rows and {counts.daily} daily buckets.")


@app.command("purge-user-usage")
def purge_user_usage_cmd(
    user_id: Annotated[str, typer.Option("--user-id")],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Delete every usage log row and daily bucket of a user."""

    from db.client import session_scope

    from .ledger import purge_user_usage

    with session_scope(database_url=database_url) as session:
        counts = purge_user_usage(session, user_id=user_id)
    console.print(f"Deleted {counts.logs} log rows and {counts.daily} daily buckets.")


@app.command("prune-usage-logs")
def prune_usage_logs_cmd(
    days_old: Annotated[int, typer.Option(min=0, help="Keep rows newer than this.")] = 90,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Delete usage log rows older than ``--days-old`` days (daily buckets are kept)."""

    from db.client import session_scope

    from .ledger import prune_usage_logs

    with session_scope(database_url=database_url) as session:
        deleted = prune_usage_logs(session, days_old=days_old)
    console.print(f"Deleted {deleted} log rows older than {days_old} days.")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    app()
