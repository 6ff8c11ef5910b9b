"""
CLI: ``tsforge build | platforms | status | verify``.

Usage::

    tsforge build                                  # detected host platform
    tsforge build --platform linux-aarch64-musl    # one cross target (zig)
    tsforge build --all-platforms -j 16            # every target (zig)
    tsforge build --fetch-only                     # populate the cache only

    tsforge platforms                              # registry + detected host
    tsforge status --needs-generation --quiet      # cache inspection
    tsforge verify --platform linux-x86_64-glibc   # archive/manifest check
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.table import Table

from tsforge.build.commands import CommandRunner
from tsforge.build.config import BuildConfig
from tsforge.build.inspect import STATE_TITLES, CacheState, inspect_cache
from tsforge.build.manifest import load_manifest
from tsforge.build.orchestrator import BuildRunner
from tsforge.build.platforms import PLATFORMS, detect_host_platform, get_platform
from tsforge.build.toolchain import zig_version
from tsforge.build.verify import OutputVerifier
from tsforge.cli.utils import (
    console,
    fail,
    fail_on,
    load_settings,
    print_build_result,
    print_progress,
)
from tsforge.core.errors import ConfigError, ManifestError

_MANIFEST_OPTION = typer.Option(None, "--manifest", "-m", help="Grammar manifest (grammars.json).")
_CACHE_OPTION = typer.Option(None, "--cache-dir", help="Checkout cache directory.")
_DIST_OPTION = typer.Option(None, "--dist-dir", help="Output directory.")


# ── Build ────────────────────────────────────────────────────────────────


def build(
    fetch_only: bool = typer.Option(False, "--fetch-only", help="Only fetch grammar sources."),
    compile_only: bool = typer.Option(False, "--compile-only", help="Compile the existing cache, skip fetching."),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Target platform name."),
    all_platforms: bool = typer.Option(False, "--all-platforms", help="Build every platform (requires zig)."),
    jobs: int | None = typer.Option(None, "--jobs", "-j", help="Parallel workers (default: CPU count)."),
    manifest: Path | None = _MANIFEST_OPTION,
    cache_dir: Path | None = _CACHE_OPTION,
    dist_dir: Path | None = _DIST_OPTION,
    json_out: bool = typer.Option(False, "--json", help="Output the run result as JSON."),
) -> None:
    """Fetch, compile and package grammars.

    Per-grammar failures are reported but do not fail the command; an
    abort or a failed archive merge does.
    """
    settings = load_settings(manifest, cache_dir, dist_dir)
    try:
        config = BuildConfig.from_env(
            fetch_only=fetch_only or None,
            compile_only=compile_only or None,
            platform=platform,
            all_platforms=all_platforms or None,
            jobs=jobs,
        )
    except ConfigError as exc:
        fail_on(exc, code=2)
    except ValidationError as exc:
        fail(f"Invalid build options: {exc}", code=2)

    if not json_out:
        console.print(f"[bold]tsforge build[/] — run_id: {config.run_id}")
        console.print(f"  manifest: {settings.manifest_path}")
        console.print(f"  jobs: {config.jobs}")

    runner = BuildRunner(config, settings, on_progress=None if json_out else print_progress)
    result = runner.run()

    if json_out:
        typer.echo(result.model_dump_json(indent=2))
    else:
        print_build_result(result)

    raise typer.Exit(code=result.exit_code)


# ── Platforms ────────────────────────────────────────────────────────────


def platforms(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List supported target platforms and the detected host."""
    runner = CommandRunner()
    host = detect_host_platform(runner)
    zig = zig_version(runner)

    if json_out:
        payload = {
            "host": host,
            "zig": zig,
            "platforms": [
                {
                    "name": p.name,
                    "os": p.os,
                    "arch": p.arch,
                    "libc": p.libc,
                    "zig_target": p.zig_target,
                    "rust_target": p.rust_target,
                }
                for p in PLATFORMS.values()
            ],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Target Platforms")
    table.add_column("Name", style="bold")
    table.add_column("OS")
    table.add_column("Arch")
    table.add_column("Libc")
    table.add_column("Zig target")
    table.add_column("Rust target")

    for p in PLATFORMS.values():
        name = f"{p.name} [green](host)[/green]" if p.name == host else p.name
        table.add_row(name, p.os, p.arch, p.libc or "—", p.zig_target or "—", p.rust_target or "—")

    console.print(table)
    console.print(f"\nDetected host: [bold]{host or 'unsupported (generic host build)'}[/]")
    console.print(f"zig: {zig or '[yellow]not found[/yellow] (cross-compilation unavailable)'}")


# ── Status ───────────────────────────────────────────────────────────────


def status(
    needs_generation: bool = typer.Option(
        False, "--needs-generation", help="List grammars missing src/parser.c but having grammar.js.",
    ),
    missing: bool = typer.Option(False, "--missing", help="List grammars with no checkout."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print names."),
    manifest: Path | None = _MANIFEST_OPTION,
    cache_dir: Path | None = _CACHE_OPTION,
) -> None:
    """Report the cache state of every manifest grammar."""
    settings = load_settings(manifest, cache_dir)
    try:
        grammars = load_manifest(settings.manifest_path)
    except ManifestError as exc:
        fail_on(exc)

    report = inspect_cache(grammars, settings.cache_dir)

    if needs_generation:
        sections = [CacheState.NEEDS_GENERATION]
    elif missing:
        sections = [CacheState.MISSING]
    else:
        sections = [s for s in CacheState if s is not CacheState.READY]
        if not quiet:
            console.print(f"Grammars: {report.total}")
            for state, count in report.counts().items():
                console.print(f"{STATE_TITLES[state]}: {count}")

    for state in sections:
        names = report.names(state)
        if not names:
            continue
        if quiet:
            for name in names:
                typer.echo(name)
            continue
        console.print(f"\n[bold]{STATE_TITLES[state]}[/] ({len(names)})")
        for name in names:
            console.print(f"- {name}")


# ── Verify ───────────────────────────────────────────────────────────────


def verify(
    platform: str | None = typer.Option(
        None, "--platform", "-p", help="Platform to verify (default: every built platform).",
    ),
    dist_dir: Path | None = _DIST_OPTION,
) -> None:
    """Check combined archives against their platform manifests."""
    settings = load_settings(dist_dir=dist_dir)
    runner = CommandRunner()
    archiver = ["ar"] if runner.which("ar") else ["zig", "ar"]
    verifier = OutputVerifier(settings.dist_dir, runner, archiver=archiver)

    if platform:
        try:
            names = [get_platform(platform).name]
        except ConfigError as exc:
            fail_on(exc, code=2)
    else:
        names = verifier.built_platforms()
        if not names:
            fail(f"No built platforms found in {settings.dist_dir}")

    all_ok = True
    for name in names:
        report = verifier.verify(name)
        if report.ok:
            console.print(
                f"[green]✓[/green] {name}: {len(report.manifest_names)} grammars, archive and manifest agree"
            )
            continue
        all_ok = False
        console.print(f"[red]✗[/red] {name}")
        for problem in report.problems:
            console.print(f"    {problem}", markup=False)

    if not all_ok:
        raise typer.Exit(code=1)
