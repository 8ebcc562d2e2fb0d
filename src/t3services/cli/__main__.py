"""Command-line access to the T3 speech services.

Settings come from ``T3_*`` environment variables (or .env / .env.local);
credentials from options, ``T3_USERNAME`` / ``T3_PASSWORD``, or a prompt.

Usage:
    uv run t3services login -u alice
    uv run t3services search "pay my bill"
    uv run t3services statements -u alice --count 3 --pdf --output bills.pdf
    uv run python -m t3services.cli touchmap --menu
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import httpx
import typer
from pydantic import ValidationError as SettingsError
from rich.console import Console
from rich.table import Table

from t3services.client import SmartCare
from t3services.config import T3Settings, load_settings
from t3services.errors import T3Error
from t3services.models import Action, AuthToken, SearchResult, TouchmapSnapshot

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="t3services",
    help="T3/SmartCare speech services client",
    no_args_is_help=True,
    add_completion=False,
    pretty_exceptions_show_locals=False,
)
console = Console()

Username = Annotated[
    str,
    typer.Option("--username", "-u", envvar="T3_USERNAME", prompt=True),
]
Password = Annotated[
    str,
    typer.Option(
        "--password", "-p", envvar="T3_PASSWORD", prompt=True, hide_input=True
    ),
]
Verbose = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging"),
]


def _build_client(settings: T3Settings) -> SmartCare:
    return SmartCare(settings)


def _setup(verbose: bool) -> T3Settings:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    try:
        return load_settings(verbose=verbose) if verbose else load_settings()
    except SettingsError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(2) from e


T = TypeVar("T")


def _run(
    settings: T3Settings, work: Callable[[SmartCare], Awaitable[T]]
) -> T:
    """Run ``work`` against a fresh client, mapping failures to exit code 1."""

    async def main() -> T:
        async with _build_client(settings) as client:
            try:
                return await work(client)
            finally:
                if settings.verbose:
                    client.metrics.log_summary()

    try:
        return asyncio.run(main())
    except (T3Error, httpx.HTTPError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _print_token(token: AuthToken) -> None:
    table = Table(title="Login", show_header=False)
    table.add_row("User", token.value)
    name = " ".join(p for p in (token.first_name, token.last_name) if p)
    if name:
        table.add_row("Name", name)
    if token.user_data:
        table.add_row("User data", token.user_data)
    if token.additional_values:
        table.add_row("Additional values", token.additional_values_header)
    table.add_row("T3 token", f"{token.t3_token[:8]}…" if token.t3_token else "(none)")
    console.print(table)


def _print_search(query: str, result: SearchResult) -> None:
    table = Table(title=f"Results for {query!r}")
    table.add_column("Action")
    table.add_column("Confidence", justify="right")
    table.add_column("Confirmation")
    for hit in result.results:
        if isinstance(hit.action, Action):
            confidence = hit.action.confidence
            table.add_row(
                hit.action.name,
                f"{confidence:.2f}" if confidence is not None else "",
                hit.action.confirmation_text or "",
            )
        elif hit.action is None:
            table.add_row("[dim](no action)[/dim]", "", "")
        else:
            table.add_row(f"[dim]{hit.action} (unresolved)[/dim]", "", "")
    console.print(table)


def _print_body(body: Any) -> None:
    if isinstance(body, (dict, list)):
        console.print_json(json.dumps(body, default=str))
    else:
        console.print(body)


@app.command()
def login(username: Username, password: Password, verbose: Verbose = False) -> None:
    """Run the login handshake and show the resulting token."""
    settings = _setup(verbose)
    token = _run(settings, lambda client: client.login(username, password))
    _print_token(token)


@app.command()
def touchmap(
    menu: Annotated[
        bool, typer.Option("--menu", help="Show menu items instead of actions")
    ] = False,
    verbose: Verbose = False,
) -> None:
    """Fetch the touchmap and list its actions."""
    settings = _setup(verbose)
    snapshot: TouchmapSnapshot = _run(settings, lambda c: c.refresh_touchmap())

    table = Table(title=f"Touchmap ({snapshot.refresh_time:%Y-%m-%d %H:%M:%S} UTC)")
    table.add_column("Action")
    table.add_column("Text")
    if menu:
        for item in snapshot.menu:
            table.add_row(item.action.name, item.action.text or "")
    else:
        for name, action in sorted(snapshot.actions.items()):
            table.add_row(name, action.text or "")
    console.print(table)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="The user's search text")],
    verbose: Verbose = False,
) -> None:
    """Search for actions matching a query."""
    settings = _setup(verbose)
    result = _run(settings, lambda client: client.search(query))
    _print_search(query, result)


@app.command()
def account(username: Username, password: Password, verbose: Verbose = False) -> None:
    """Log in and show account information."""
    settings = _setup(verbose)

    async def work(client: SmartCare) -> Any:
        await client.login(username, password)
        return await client.get_account()

    _print_body(_run(settings, work))


@app.command()
def statements(
    username: Username,
    password: Password,
    count: Annotated[int, typer.Option("--count", "-n", min=1)] = 1,
    pdf: Annotated[bool, typer.Option("--pdf/--json", help="Statement format")] = False,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the body to a file")
    ] = None,
    verbose: Verbose = False,
) -> None:
    """Log in and fetch the latest statements."""
    settings = _setup(verbose)

    async def work(client: SmartCare) -> Any:
        await client.login(username, password)
        return await client.get_statements(count, pdf)

    body = _run(settings, work)
    if output is None:
        _print_body(body)
        return
    if isinstance(body, bytes):
        output.write_bytes(body)
    elif isinstance(body, str):
        output.write_text(body)
    else:
        output.write_text(json.dumps(body, indent=2, default=str))
    typer.echo(f"Wrote {output}")


@app.command()
def dashboard(
    username: Username, password: Password, verbose: Verbose = False
) -> None:
    """Log in (with sign-in when configured) and fetch the dashboard."""
    settings = _setup(verbose)

    async def work(client: SmartCare) -> Any:
        await client.login(username, password)
        return await client.refresh_dashboard()

    _print_body(_run(settings, work))


if __name__ == "__main__":
    app()
