"""Result models for tsforge build runs.

Pydantic v2 models capturing the outcome of every unit of work. They
compose upward: per-grammar ``FetchResult`` / ``CompileResult`` roll up
into a ``PlatformResult`` (plus its ``AggregateResult``), and everything
rolls up into one ``BuildRunResult``.

Per-grammar failures are data, not exceptions: a failed compile is a
``CompileResult(success=False)`` carrying the full command and compiler
output. Only stage-level problems (aborts, merge failures) set ``error``
fields and change the exit code.

Key Concepts:
    OverallStatus: PASSED, FAILED, PARTIAL, ERROR, SKIPPED, RUNNING,
        PENDING, ABORTED.
    PlatformResult.compute_status(): PASSED when everything compiled and
        merged, PARTIAL when some grammars failed, FAILED when none
        compiled, ERROR on a stage-level failure.
    BuildRunResult.mark_complete(): finalises timestamps, duration,
        statuses and the one-line summary.
    BuildRunResult.exit_code: 0 unless a stage-level failure occurred.

Tags:
    results, models, pydantic, reporting, status
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class OverallStatus(str, Enum):
    """Status of a stage, a platform or a whole run."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"
    RUNNING = "RUNNING"
    PENDING = "PENDING"
    ABORTED = "ABORTED"


# ---------------------------------------------------------------------------
# Per-grammar results
# ---------------------------------------------------------------------------


class FetchResult(BaseModel):
    """Outcome of fetching one grammar into the cache."""

    name: str
    success: bool
    message: str
    cached: bool = False
    timed_out: bool = False


class CompileResult(BaseModel):
    """Outcome of compiling one grammar for one platform."""

    name: str
    platform: str
    success: bool
    message: str
    artifact_path: str | None = None
    uses_cpp: bool = False
    command: str | None = None
    output: str | None = None


# ---------------------------------------------------------------------------
# Per-platform results
# ---------------------------------------------------------------------------


class AggregateResult(BaseModel):
    """Outcome of merging a platform's archives into one."""

    platform: str
    included: list[str] = Field(default_factory=list)
    combined_archive: str | None = None
    manifest_path: str | None = None
    success: bool = False
    error: str | None = None
    temp_dir: str | None = None
    """Extraction directory left behind for inspection after a merge failure."""


class PlatformResult(BaseModel):
    """Aggregated result for one target platform."""

    platform: str
    toolchain: str = ""
    compiled: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    cpp_grammars: list[str] = Field(default_factory=list)
    compile_results: list[CompileResult] = Field(default_factory=list)
    aggregate: AggregateResult | None = None
    overall_status: OverallStatus = OverallStatus.PENDING
    error: str | None = None

    @property
    def stage_failed(self) -> bool:
        """True when the platform failed as a whole, not per grammar."""
        if self.error:
            return True
        return self.aggregate is not None and not self.aggregate.success

    def compute_status(self) -> OverallStatus:
        """Compute overall status from the compile and merge outcomes."""
        if self.stage_failed:
            return OverallStatus.ERROR
        if not self.compiled and not self.failed:
            return OverallStatus.SKIPPED
        if not self.compiled:
            return OverallStatus.FAILED
        if self.failed:
            return OverallStatus.PARTIAL
        return OverallStatus.PASSED


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class FetchStageResult(BaseModel):
    """Outcome of the fetch stage across all grammars."""

    results: list[FetchResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return sorted(r.name for r in self.results if r.success)

    @property
    def failed(self) -> list[str]:
        return sorted(r.name for r in self.results if not r.success)

    @property
    def cached(self) -> list[str]:
        return sorted(r.name for r in self.results if r.success and r.cached)


class BuildRunResult(BaseModel):
    """Result of a full build run."""

    run_id: str
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    grammar_count: int = 0
    fetch: FetchStageResult | None = None
    platforms: list[PlatformResult] = Field(default_factory=list)
    overall_status: OverallStatus = OverallStatus.PENDING
    error: str | None = None
    summary: str = ""

    @property
    def exit_code(self) -> int:
        """0 only if no stage-level failure occurred."""
        if self.error:
            return 1
        if any(p.stage_failed for p in self.platforms):
            return 1
        return 0

    def mark_complete(self) -> None:
        """Finalize run: compute durations, statuses, summary."""
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()

        for pr in self.platforms:
            pr.overall_status = pr.compute_status()

        fetch_failed = bool(self.fetch and self.fetch.failed)
        if self.error:
            self.overall_status = OverallStatus.ABORTED
        elif any(p.stage_failed for p in self.platforms):
            self.overall_status = OverallStatus.ERROR
        elif not self.platforms:
            self.overall_status = OverallStatus.PARTIAL if fetch_failed else OverallStatus.PASSED
        elif fetch_failed or any(p.overall_status != OverallStatus.PASSED for p in self.platforms):
            self.overall_status = OverallStatus.PARTIAL
        else:
            self.overall_status = OverallStatus.PASSED

        details = [
            f"{p.platform}: {len(p.compiled)} compiled, {len(p.failed)} failed"
            for p in self.platforms
        ]
        if self.fetch is not None:
            details.insert(
                0, f"fetch: {len(self.fetch.succeeded)} ok, {len(self.fetch.failed)} failed"
            )
        details_str = "; ".join(details) if details else "nothing built"
        self.summary = (
            f"{self.overall_status.value} ({details_str}) in {self.duration_seconds:.1f}s"
        )
