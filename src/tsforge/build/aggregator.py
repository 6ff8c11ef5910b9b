"""Platform aggregation.

After every grammar has been compiled for a platform, the single-grammar
archives in ``<dist_dir>/<platform>/`` are merged into one combined
archive and the platform manifest is written beside it::

    dist/
    ├── libtree-sitter-parsers-all-<platform>.a
    ├── grammars-<platform>.json
    └── <platform>/               (kept only while it holds C++ markers)
        └── <name>.cpp

The manifest and the archive always describe the same grammar set. The
included set is the compiled names whose archive actually exists, the
combined archive is written under a temporary name and renamed into
place, and the manifest is only written once that rename has happened.

Failure semantics:
    - Merge or extract failure: the archiver error is surfaced,
      ``temp_objects/`` is left for inspection, no manifest is written,
      and stale outputs from an earlier run are removed.
    - Empty set: an empty manifest is written and any stale combined
      archive is removed.

Tags:
    aggregate, archive, manifest, ar
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from tsforge.build.commands import CommandRunner
from tsforge.build.compiler import archive_name
from tsforge.build.manifest import GrammarSpec
from tsforge.build.results import AggregateResult
from tsforge.build.toolchain import Toolchain
from tsforge.core.errors import ArchiveError, CommandError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

TEMP_OBJECTS_DIR = "temp_objects"


def combined_archive_name(platform: str) -> str:
    return f"libtree-sitter-parsers-all-{platform}.a"


def platform_manifest_name(platform: str) -> str:
    return f"grammars-{platform}.json"


class PlatformAggregator:
    """Merges a platform's single-grammar archives.

    Parameters
    ----------
    dist_dir
        Output root; per-platform build dirs live directly below it.
    runner
        External command runner (the toolchain archiver).
    timeout
        Seconds before one archiver invocation is killed.
    """

    def __init__(
        self,
        dist_dir: Path,
        runner: CommandRunner | None = None,
        timeout: float | None = None,
    ) -> None:
        self.dist_dir = Path(dist_dir)
        self.runner = runner or CommandRunner()
        self.timeout = timeout

    def platform_dir(self, platform: str) -> Path:
        return self.dist_dir / platform

    def aggregate(
        self,
        toolchain: Toolchain,
        compiled: list[str],
        grammars: list[GrammarSpec],
    ) -> AggregateResult:
        """Merge archives for ``compiled`` and write the platform manifest."""
        platform = toolchain.platform.name
        platform_dir = self.platform_dir(platform)
        combined = self.dist_dir / combined_archive_name(platform)
        manifest_path = self.dist_dir / platform_manifest_name(platform)

        known = {spec.name for spec in grammars}
        included = sorted(
            name
            for name in set(compiled)
            if name in known and (platform_dir / archive_name(name)).is_file()
        )
        missing = sorted(set(compiled) - set(included))
        if missing:
            logger.warning("aggregate.archives_missing", platform=platform, grammars=missing)

        self.dist_dir.mkdir(parents=True, exist_ok=True)
        result = AggregateResult(platform=platform, included=included)

        if not included:
            combined.unlink(missing_ok=True)
            self._write_manifest(manifest_path, [], grammars)
            _remove_if_empty(platform_dir)
            logger.info("aggregate.empty", platform=platform)
            result.manifest_path = str(manifest_path)
            result.success = True
            return result

        temp_dir = platform_dir / TEMP_OBJECTS_DIR
        try:
            objects = self._extract(toolchain, platform_dir, temp_dir, included)
            self._merge(toolchain, combined, objects)
        except ArchiveError as exc:
            # A manifest must never outlive the archive it describes
            combined.unlink(missing_ok=True)
            manifest_path.unlink(missing_ok=True)
            logger.error("aggregate.failed", platform=platform, error=exc.message)
            result.error = exc.message
            result.temp_dir = str(temp_dir)
            return result

        shutil.rmtree(temp_dir, ignore_errors=True)
        for name in included:
            (platform_dir / archive_name(name)).unlink(missing_ok=True)
        self._write_manifest(manifest_path, included, grammars)
        _remove_if_empty(platform_dir)

        logger.info("aggregate.merged", platform=platform, grammars=len(included), archive=str(combined))
        result.combined_archive = str(combined)
        result.manifest_path = str(manifest_path)
        result.success = True
        return result

    def _extract(
        self,
        toolchain: Toolchain,
        platform_dir: Path,
        temp_dir: Path,
        included: list[str],
    ) -> list[Path]:
        if temp_dir.exists():
            shutil.rmtree(temp_dir)
        objects: list[Path] = []
        for name in included:
            # One directory per grammar so identical member names never collide
            extract_dir = temp_dir / name
            extract_dir.mkdir(parents=True)
            archive = (platform_dir / archive_name(name)).resolve()
            self._run_archiver(toolchain, ["x", str(archive)], cwd=extract_dir)
            objects.extend(sorted(extract_dir.glob("*.o")))
        return objects

    def _merge(self, toolchain: Toolchain, combined: Path, objects: list[Path]) -> None:
        staging = combined.with_name(f".{combined.name}.tmp")
        staging.unlink(missing_ok=True)
        try:
            self._run_archiver(toolchain, ["rcs", str(staging), *(str(obj) for obj in objects)])
            staging.replace(combined)
        except ArchiveError:
            staging.unlink(missing_ok=True)
            raise

    def _run_archiver(self, toolchain: Toolchain, args: list[str], *, cwd: Path | None = None) -> None:
        command = [*toolchain.archiver(), *args]
        try:
            self.runner.run(command, cwd=cwd, timeout=self.timeout)
        except CommandError as exc:
            raise ArchiveError(
                f"Failed to create combined archive: {exc.output.strip()}",
                cause=exc,
            ).with_context(platform=toolchain.platform.name, command=" ".join(command)) from exc

    @staticmethod
    def _write_manifest(path: Path, included: list[str], grammars: list[GrammarSpec]) -> None:
        by_name = {spec.name: spec for spec in grammars}
        entries = [by_name[name].to_manifest_entry() for name in sorted(included)]
        path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")


def _remove_if_empty(path: Path) -> None:
    if path.is_dir() and not any(path.iterdir()):
        path.rmdir()
