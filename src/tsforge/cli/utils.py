"""
CLI utility helpers: consoles, settings overrides and result tables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tsforge.build.results import BuildRunResult, OverallStatus
from tsforge.core.errors import ForgeError
from tsforge.core.settings import ForgeSettings

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    OverallStatus.PASSED: "green",
    OverallStatus.FAILED: "red",
    OverallStatus.PARTIAL: "yellow",
    OverallStatus.ERROR: "red bold",
    OverallStatus.ABORTED: "red bold",
    OverallStatus.SKIPPED: "dim",
}


# ── Settings / errors ────────────────────────────────────────────────────


def load_settings(
    manifest: Path | None = None,
    cache_dir: Path | None = None,
    dist_dir: Path | None = None,
) -> ForgeSettings:
    """Environment settings with command-line paths layered on top."""
    overrides: dict[str, Any] = {
        "manifest_path": manifest,
        "cache_dir": cache_dir,
        "dist_dir": dist_dir,
    }
    try:
        return ForgeSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as exc:
        fail(f"Invalid settings: {exc}", code=2)


def fail(message: str, *, code: int = 1) -> NoReturn:
    """Print an error to stderr and exit."""
    err_console.print(f"[bold red]Error[/bold red]: {escape(message)}")
    raise typer.Exit(code=code)


def fail_on(exc: ForgeError, *, code: int = 1) -> NoReturn:
    fail(f"({exc.category.value}) {exc.message}", code=code)


# ── Output helpers ───────────────────────────────────────────────────────


def styled_status(status: OverallStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def print_progress(stage: str, completed: int, total: int, result: Any) -> None:
    """Inline ``[i/N] message`` line for one finished unit."""
    style = "green" if getattr(result, "success", False) else "red"
    counter = escape(f"[{completed}/{total}]")
    console.print(f"  [dim]{stage}[/dim] {counter} [{style}]{escape(result.message)}[/{style}]")


def print_build_result(result: BuildRunResult) -> None:
    """Pretty-print a BuildRunResult."""
    if result.fetch is not None:
        fetch = result.fetch
        console.print(
            f"\n[bold]Fetch[/]: {len(fetch.succeeded)} ok "
            f"({len(fetch.cached)} cached), {len(fetch.failed)} failed"
        )
        if fetch.failed:
            console.print(f"  [red]{', '.join(fetch.failed)}[/red]")

    if result.platforms:
        table = Table(title="Platforms")
        table.add_column("Platform", style="bold")
        table.add_column("Toolchain")
        table.add_column("Status")
        table.add_column("Compiled", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("C++", justify="right")
        table.add_column("Archive")

        for pr in result.platforms:
            archive = "—"
            if pr.aggregate is not None:
                if pr.aggregate.combined_archive:
                    archive = Path(pr.aggregate.combined_archive).name
                elif pr.aggregate.error:
                    archive = f"[red]{escape(pr.aggregate.error)}[/red]"
            table.add_row(
                pr.platform,
                pr.toolchain,
                styled_status(pr.overall_status),
                str(len(pr.compiled)),
                str(len(pr.failed)),
                str(len(pr.cpp_grammars)),
                archive,
            )
        console.print(table)

        for pr in result.platforms:
            if pr.failed:
                console.print(f"  [yellow]{pr.platform} failed[/]: {', '.join(pr.failed)}")

    if result.error:
        err_console.print(f"[bold red]Aborted[/]: {escape(result.error)}")

    style = "green" if result.overall_status == OverallStatus.PASSED else "red"
    if result.overall_status == OverallStatus.PARTIAL:
        style = "yellow"
    console.print(f"\n[bold {style}]{result.overall_status.value}[/] — {escape(result.summary)}")
