"""Command line entry point for ghcmodi."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from ghcmodi.config import Settings, get_settings
from ghcmodi.errors import GhcModError
from ghcmodi.logging_utils import configure_logging
from ghcmodi.provider import GhcModProvider
from ghcmodi.session import GhcModSession
from ghcmodi.types import Command, DiagnosticSeverity, Position

app = typer.Typer(
    name="ghcmodi",
    help="Query ghc-mod through a long-lived interactive session.",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


@app.callback()
def main(
    ctx: typer.Context,
    executable: str | None = typer.Option(None, "--executable", "-e", help="ghc-mod executable"),
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Analysis root"),  # noqa: B008
    timeout: float | None = typer.Option(None, "--timeout", help="Per-command timeout in seconds"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    try:
        settings = get_settings(
            executable=executable,
            workspace_root=workspace,
            command_timeout_seconds=timeout,
            log_level=log_level,
        )
    except GhcModError as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc
    configure_logging(settings.log_level, profile=settings.log_profile)
    ctx.obj = settings


def _run(settings: Settings, action: Callable[[GhcModProvider], Awaitable[T]]) -> T:
    async def _main() -> T:
        async with GhcModSession(settings) as session:
            return await action(GhcModProvider(session))

    try:
        return asyncio.run(_main())
    except GhcModError as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        typer.secho(f"error: cannot read {path}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc


def _position(line: int, column: int) -> Position:
    return Position(line - 1, column - 1)


@app.command()
def check(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Haskell source file"),  # noqa: B008
    use_disk: bool = typer.Option(False, "--use-disk", help="Do not send the file contents as an overlay"),
) -> None:
    """Report ghc-mod diagnostics for a file."""

    settings: Settings = ctx.obj
    text = _read(path)
    diagnostics = _run(settings, lambda provider: provider.check(text, path.resolve(), not use_disk))
    if not diagnostics:
        console.print("[green]no problems[/green]")
        return

    table = Table("line", "col", "severity", "message")
    for diagnostic in diagnostics[: settings.max_number_of_problems]:
        severity = "warning" if diagnostic.severity is DiagnosticSeverity.WARNING else "error"
        start = diagnostic.range.start
        table.add_row(str(start.line + 1), str(start.character + 1), severity, diagnostic.message)
    console.print(table)
    raise typer.Exit(1)


@app.command("type")
def type_(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Haskell source file"),  # noqa: B008
    line: int = typer.Argument(..., min=1, help="1-based line"),
    column: int = typer.Argument(..., min=1, help="1-based column"),
) -> None:
    """Show the type of the expression at a position."""

    text = _read(path)
    result = _run(ctx.obj, lambda provider: provider.get_type(text, path.resolve(), _position(line, column)))
    typer.echo(result)


@app.command()
def info(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Haskell source file"),  # noqa: B008
    line: int = typer.Argument(..., min=1, help="1-based line"),
    column: int = typer.Argument(..., min=1, help="1-based column"),
) -> None:
    """Show ghc-mod info for the symbol at a position."""

    text = _read(path)
    result = _run(ctx.obj, lambda provider: provider.get_info(text, path.resolve(), _position(line, column)))
    typer.echo(result)


@app.command()
def definition(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Haskell source file"),  # noqa: B008
    line: int = typer.Argument(..., min=1, help="1-based line"),
    column: int = typer.Argument(..., min=1, help="1-based column"),
) -> None:
    """List where the symbol at a position is defined."""

    text = _read(path)
    locations = _run(
        ctx.obj, lambda provider: provider.definition_location(text, path.resolve(), _position(line, column))
    )
    if not locations:
        typer.echo("(no definition)")
        return
    for location in locations:
        start = location.range.start
        typer.echo(f"{location.uri}:{start.line + 1}:{start.character + 1}")


@app.command("exec")
def exec_(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="ghc-mod command name"),
    args: list[str] | None = typer.Argument(None, help="Command arguments"),  # noqa: B008
    path: str | None = typer.Option(None, "--path", "-p", help="Target file, relative to the workspace"),
) -> None:
    """Send a raw command and print the response lines."""

    command = Command(name=name, args=tuple(args or ()), target_path=path)

    async def _send(provider: GhcModProvider) -> list[str]:
        return await provider.session.run_command(command)

    lines: list[Any] = _run(ctx.obj, _send)
    for line in lines:
        typer.echo(line)


if __name__ == "__main__":
    app()
