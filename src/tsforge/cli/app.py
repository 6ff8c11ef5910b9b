"""
Root Typer application for the tsforge CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from tsforge import __version__
from tsforge.core.logging import configure_logging
from tsforge.core.settings import ForgeSettings

app = Typer(
    name="tsforge",
    help="tsforge — build tree-sitter grammars into per-platform static archives.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"tsforge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ERROR).",
    ),
    json_logs: bool | None = typer.Option(
        None, "--json-logs/--console-logs", help="Force JSON or console log rendering.",
    ),
) -> None:
    """tsforge CLI: fetch, compile, package and verify grammars."""
    settings = ForgeSettings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=json_logs if json_logs is not None else settings.json_logs,
    )


# ── Command registration ─────────────────────────────────────────────────

from tsforge.cli.build import build, platforms, status, verify  # noqa: E402

app.command("build")(build)
app.command("platforms")(platforms)
app.command("status")(status)
app.command("verify")(verify)
