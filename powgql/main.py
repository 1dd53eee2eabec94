"""CLI entry point for powgql."""

from __future__ import annotations

from collections.abc import Callable
import functools
import sys
from typing import Any

import click
from dotenv import load_dotenv
from rich.markdown import Markdown
from rich.table import Table

from powgql.console import console, err_console, truncate
from powgql.errors import ConfigurationError, ToolFailure

load_dotenv()


def _reports_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Print tool and configuration failures as ``Error: ...`` and exit 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (ToolFailure, ConfigurationError) as exc:
            err_console.print(f"[red]Error:[/red] {exc}", markup=True, highlight=False)
            sys.exit(1)

    return wrapper


def _deps():
    from powgql.config import load_config
    from powgql.deps import build_deps
    from powgql.helpers.log import configure_logging

    config = load_config()
    configure_logging(config.log_level, config.log_file, config.log_max_backups)
    return build_deps(config)


def _print_markdown(text: str, raw: bool) -> None:
    if raw:
        click.echo(text, nl=False)
    else:
        console.print(Markdown(text))


@click.group()
@click.version_option(version="0.1.0", prog_name="powgql")
def cli():
    """Analyse GraphQL traffic captured by powhttp."""


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    show_default=True,
    help="Tool server transport",
)
@_reports_errors
def serve(transport: str):
    """Run the GraphQL analysis tool server."""
    from powgql.server import create_server

    deps = _deps()
    err_console.print(f"[bold]powgql[/bold] serving over {transport} (capture API: {deps.config.base_url})")
    create_server(deps).run(transport=transport)


@cli.command()
@_reports_errors
def sessions():
    """List capture sessions."""
    from powgql.tools import ListSessionsOutput, list_sessions

    result = list_sessions(_deps())
    data = result.data
    if not isinstance(data, ListSessionsOutput) or not data.sessions:
        console.print("No capture sessions found.")
        return

    table = Table(title="Capture sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Entries", justify="right")
    for s in data.sessions:
        table.add_row(s.id, truncate(s.name, 60), str(s.entry_count))
    console.print(table)


@cli.command()
@click.option("--session", "session_id", default="", help="Session ID (default: active)")
@click.option("--host", default="", help="Host filter; '*.example.com' includes subdomains")
@click.option(
    "--type",
    "operation_type",
    type=click.Choice(["query", "mutation", "subscription"]),
    default=None,
    help="Only this operation type",
)
@click.option("--limit", default=50, show_default=True, help="Max clusters to show")
@click.option("--offset", default=0, show_default=True, help="Clusters to skip")
@click.option("--raw", is_flag=True, help="Print markdown source instead of rendering it")
@_reports_errors
def survey(session_id: str, host: str, operation_type: str | None, limit: int, offset: int, raw: bool):
    """Cluster the GraphQL operations of a session."""
    from powgql.tools import SurveyGraphQLInput, SurveyScope, survey_graphql

    params = SurveyGraphQLInput(
        session_id=session_id,
        scope=SurveyScope(host=host),
        operation_type=operation_type or "",
        limit=limit,
        offset=offset,
    )
    result = survey_graphql(_deps(), params)
    _print_markdown(result.markdown, raw)


@cli.command()
@click.option("--session", "session_id", default="", help="Session ID (default: active)")
@click.option("--operation", "operation_name", default="", help="Operation name to inspect")
@click.option("--entry-id", "entry_ids", multiple=True, help="Entry ID to inspect. Can be repeated.")
@click.option("--host", default="", help="Host filter (ignored with --entry-id)")
@click.option(
    "--section",
    "sections",
    multiple=True,
    type=click.Choice(["query", "variables", "response_shape", "errors"]),
    help="Section to include. Can be repeated (default: all).",
)
@click.option("--max-entries", default=20, show_default=True, help="Max entries to inspect (max 100)")
@click.option("--raw", is_flag=True, help="Print markdown source instead of rendering it")
@_reports_errors
def inspect(
    session_id: str,
    operation_name: str,
    entry_ids: tuple[str, ...],
    host: str,
    sections: tuple[str, ...],
    max_entries: int,
    raw: bool,
):
    """Inspect one GraphQL operation."""
    from powgql.tools import InspectGraphQLOperationInput, inspect_graphql_operation

    params = InspectGraphQLOperationInput(
        session_id=session_id,
        entry_ids=list(entry_ids),
        operation_name=operation_name,
        host=host,
        sections=list(sections),
        max_entries=max_entries,
    )
    result = inspect_graphql_operation(_deps(), params)
    _print_markdown(result.markdown, raw)


if __name__ == "__main__":
    cli()
