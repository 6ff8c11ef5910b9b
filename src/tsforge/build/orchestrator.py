"""Build orchestrator.

``BuildRunner`` drives a complete build: manifest → fetch → per-platform
compile → per-platform aggregate. It returns one structured
``BuildRunResult``::

    Idle ──► Fetching ──► Compiling(platform 1) ──► ... ──► Done
      │          │                 │
      └──────────┴─────────────────┴──► Aborted (manifest/config/toolchain)

Key Concepts:
    Stage isolation: a grammar that fails to fetch is dropped from every
        later stage. A grammar that fails to compile for one platform is
        left out of that platform's archive and nothing else.
    Platform selection: ``all_platforms`` (needs zig), a named platform,
        or the detected host, falling back to the generic ``host`` target.
    Toolchain: zig when it is installed and the platform is not the
        machine we run on; native otherwise.
    Results by name: pool results arrive in completion order and are
        always re-keyed by grammar name before use.
    Progress: ``on_progress(stage, completed, total, result)`` is called
        as every fetch and compile unit finishes.

Architecture Decisions:
    - Platforms run one at a time; grammars within a platform run on the
      bounded pool.
    - Aborts are recorded in ``BuildRunResult.error`` rather than raised,
      so the summary is always written.
    - ``build-summary.json`` lands in ``dist_dir`` next to the archives.

Example::

    from tsforge.build import BuildConfig, BuildRunner

    result = BuildRunner(BuildConfig(platform="linux-x86_64-glibc")).run()
    print(result.summary)
    raise SystemExit(result.exit_code)

Tags:
    orchestration, build, runner, platforms, pipeline
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from pathlib import Path
from typing import Any

from tsforge.build.aggregator import PlatformAggregator
from tsforge.build.commands import CommandRunner
from tsforge.build.compiler import GrammarCompiler
from tsforge.build.config import BuildConfig
from tsforge.build.fetcher import Fetcher
from tsforge.build.generator import ParserGenerator
from tsforge.build.manifest import GrammarSpec, load_manifest
from tsforge.build.platforms import HOST_NAME, PLATFORMS, PlatformTarget, detect_host_platform, get_platform
from tsforge.build.pool import run_parallel
from tsforge.build.results import (
    BuildRunResult,
    CompileResult,
    FetchResult,
    FetchStageResult,
    PlatformResult,
)
from tsforge.build.toolchain import Toolchain, select_toolchain, zig_available
from tsforge.core.errors import ConfigError, ForgeError, ToolchainError
from tsforge.core.logging import LogContext, get_logger
from tsforge.core.settings import ForgeSettings

logger = get_logger(__name__)

SUMMARY_FILE = "build-summary.json"

ProgressCallback = Callable[[str, int, int, Any], None]


class BuildRunner:
    """Runs one build from manifest to combined archives.

    Parameters
    ----------
    config
        Run options (stages, platforms, jobs).
    settings
        Paths and timeouts; loaded from the environment when omitted.
    runner
        External command runner shared by every stage.
    on_progress
        Optional ``(stage, completed, total, result)`` callback.
    """

    def __init__(
        self,
        config: BuildConfig,
        settings: ForgeSettings | None = None,
        *,
        runner: CommandRunner | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or ForgeSettings()
        self.runner = runner or CommandRunner()
        self.on_progress = on_progress

        self.fetcher = Fetcher(
            self.settings.cache_dir,
            self.runner,
            clone_timeout=self.settings.clone_timeout,
            checkout_timeout=self.settings.checkout_timeout,
        )
        self.generator = ParserGenerator(self.runner, timeout=self.settings.compile_timeout)
        self.compiler = GrammarCompiler(
            self.settings.cache_dir,
            self.runner,
            self.generator,
            compile_timeout=self.settings.compile_timeout,
        )
        self.aggregator = PlatformAggregator(
            self.settings.dist_dir,
            self.runner,
            timeout=self.settings.compile_timeout,
        )

    def run(self) -> BuildRunResult:
        """Execute the full build.

        Returns
        -------
        BuildRunResult
            Aggregated results; ``exit_code`` is non-zero only on a
            stage-level failure.
        """
        result = BuildRunResult(run_id=self.config.run_id)

        with LogContext(run_id=self.config.run_id):
            try:
                grammars = load_manifest(self.settings.manifest_path)
                result.grammar_count = len(grammars)

                if self.config.compile_only:
                    ready = grammars
                else:
                    result.fetch = self._fetch_stage(grammars)
                    fetched = set(result.fetch.succeeded)
                    ready = [spec for spec in grammars if spec.name in fetched]

                if not self.config.fetch_only:
                    # Resolve every toolchain before any compile work starts
                    targets = self._resolve_targets()
                    for platform, toolchain in targets:
                        result.platforms.append(self._build_platform(platform, toolchain, ready))

            except ForgeError as exc:
                result.error = exc.message
                logger.error("build.aborted", **exc.to_dict())

            finally:
                result.mark_complete()
                self._write_summary(result)

            logger.info("build.complete", summary=result.summary, exit_code=result.exit_code)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _fetch_stage(self, grammars: list[GrammarSpec]) -> FetchStageResult:
        cache_dir = Path(self.settings.cache_dir)
        try:
            cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Cannot create cache directory {cache_dir}: {exc}", cause=exc) from exc

        logger.info("fetch.stage_started", grammars=len(grammars), jobs=self.config.jobs)
        results, tally = run_parallel(
            grammars,
            self.fetcher.fetch,
            jobs=self.config.jobs,
            on_error=_fetch_crash,
            on_result=self._progress("fetch"),
        )
        logger.info(
            "fetch.stage_complete",
            succeeded=tally.succeeded,
            failed=tally.failed,
        )
        return FetchStageResult(results=_in_manifest_order(results, grammars))

    def _resolve_targets(self) -> list[tuple[PlatformTarget, Toolchain]]:
        host = detect_host_platform(self.runner)
        zig_present = zig_available(self.runner)

        if self.config.all_platforms:
            if not zig_present:
                raise ToolchainError(
                    "--all-platforms requires zig for cross-compilation. "
                    "Install zig: https://ziglang.org/download/"
                )
            names = list(PLATFORMS)
        elif self.config.platform:
            names = [self.config.platform]
        elif host:
            names = [host]
        else:
            logger.warning("platform.host_unsupported", fallback=HOST_NAME)
            names = [HOST_NAME]

        targets = []
        for name in names:
            platform = get_platform(name)
            toolchain = select_toolchain(
                platform,
                is_host=platform.name == host,
                zig_present=zig_present,
                msvc_include_dir=self.settings.msvc_include_dir,
            )
            targets.append((platform, toolchain))
        logger.info(
            "platform.selected",
            platforms=[p.name for p, _ in targets],
            host=host,
            zig=zig_present,
        )
        return targets

    def _build_platform(
        self,
        platform: PlatformTarget,
        toolchain: Toolchain,
        grammars: list[GrammarSpec],
    ) -> PlatformResult:
        pr = PlatformResult(platform=platform.name, toolchain=toolchain.name)
        output_dir = self.aggregator.platform_dir(platform.name)

        with LogContext(platform=platform.name):
            logger.info(
                "platform.started",
                grammars=len(grammars),
                toolchain=toolchain.name,
                cross=toolchain.is_cross,
                jobs=self.config.jobs,
            )
            output_dir.mkdir(parents=True, exist_ok=True)
            _clear_cpp_markers(output_dir)

            results, _ = run_parallel(
                grammars,
                functools.partial(self._compile_one, toolchain=toolchain, output_dir=output_dir),
                jobs=self.config.jobs,
                on_error=functools.partial(_compile_crash, platform.name),
                on_result=self._progress("compile"),
            )

            pr.compile_results = _in_manifest_order(results, grammars)
            pr.compiled = sorted(r.name for r in results if r.success)
            pr.failed = sorted(r.name for r in results if not r.success)
            pr.cpp_grammars = sorted(r.name for r in results if r.success and r.uses_cpp)

            pr.aggregate = self.aggregator.aggregate(toolchain, pr.compiled, grammars)
            pr.overall_status = pr.compute_status()

            logger.info(
                "platform.summary",
                compiled=len(pr.compiled),
                failed=len(pr.failed),
                failed_names=pr.failed,
                status=pr.overall_status.value,
            )
        return pr

    def _compile_one(self, spec: GrammarSpec, *, toolchain: Toolchain, output_dir: Path) -> CompileResult:
        return self.compiler.compile(spec, toolchain, output_dir)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _progress(self, stage: str) -> Callable[[int, int, Any], None] | None:
        if self.on_progress is None:
            return None
        return functools.partial(self.on_progress, stage)

    def _write_summary(self, result: BuildRunResult) -> Path | None:
        dist_dir = Path(self.settings.dist_dir)
        path = dist_dir / SUMMARY_FILE
        try:
            dist_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("summary.write_failed", path=str(path), error=str(exc))
            return None
        logger.info("summary.written", path=str(path))
        return path


def _in_manifest_order(results: list[Any], grammars: list[GrammarSpec]) -> list[Any]:
    by_name = {r.name: r for r in results}
    return [by_name[spec.name] for spec in grammars if spec.name in by_name]


def _fetch_crash(spec: GrammarSpec, exc: BaseException) -> FetchResult:
    return FetchResult(name=spec.name, success=False, message=f"{spec.name} - ERROR: {exc}")


def _compile_crash(platform: str, spec: GrammarSpec, exc: BaseException) -> CompileResult:
    return CompileResult(
        name=spec.name,
        platform=platform,
        success=False,
        message=f"{spec.name} - internal error: {exc}",
    )


def _clear_cpp_markers(output_dir: Path) -> None:
    for marker in output_dir.glob("*.cpp"):
        marker.unlink(missing_ok=True)
