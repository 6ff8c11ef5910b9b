"""Output verification.

Checks that a built platform's outputs agree with each other: the
combined archive and ``grammars-<platform>.json`` both exist, and the
set of grammars with members in the archive (``<name>_parser.o``,
``<name>_scanner.o``) equals the set of grammars in the manifest.

Tags:
    verify, archive, manifest, consistency
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from tsforge.build.aggregator import combined_archive_name, platform_manifest_name
from tsforge.build.commands import CommandRunner
from tsforge.core.errors import CommandError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class VerifyReport:
    """Verification outcome for one platform."""

    platform: str
    archive_path: Path
    manifest_path: Path
    manifest_names: list[str] = field(default_factory=list)
    archive_names: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def member_grammar(member: str) -> str | None:
    """``json_scanner.o`` → ``json``; None for members we did not produce."""
    if not member.endswith(".o") or "_" not in member:
        return None
    return member[: -len(".o")].rsplit("_", 1)[0]


class OutputVerifier:
    """Cross-checks combined archives against their platform manifests.

    Parameters
    ----------
    dist_dir
        Directory holding the combined archives and manifests.
    runner
        External command runner.
    archiver
        Archiver command prefix used for ``t`` (list members).
    """

    def __init__(
        self,
        dist_dir: Path,
        runner: CommandRunner | None = None,
        archiver: list[str] | None = None,
    ) -> None:
        self.dist_dir = Path(dist_dir)
        self.runner = runner or CommandRunner()
        self.archiver = archiver or ["ar"]

    def built_platforms(self) -> list[str]:
        """Platforms with a manifest in ``dist_dir``."""
        prefix, suffix = "grammars-", ".json"
        return sorted(
            path.name[len(prefix) : -len(suffix)]
            for path in self.dist_dir.glob(f"{prefix}*{suffix}")
        )

    def verify(self, platform: str) -> VerifyReport:
        report = VerifyReport(
            platform=platform,
            archive_path=self.dist_dir / combined_archive_name(platform),
            manifest_path=self.dist_dir / platform_manifest_name(platform),
        )

        if not report.manifest_path.is_file():
            report.problems.append(f"manifest not found: {report.manifest_path}")
            return report
        try:
            entries = json.loads(report.manifest_path.read_text(encoding="utf-8"))
            report.manifest_names = sorted(entry["name"] for entry in entries)
        except (ValueError, TypeError, KeyError) as exc:
            report.problems.append(f"manifest unreadable: {exc}")
            return report

        if not report.archive_path.is_file():
            if report.manifest_names:
                report.problems.append(f"archive not found: {report.archive_path}")
            return report

        try:
            listing = self.runner.run([*self.archiver, "t", str(report.archive_path)], timeout=60)
        except CommandError as exc:
            report.problems.append(f"cannot list archive members: {exc.output.strip()}")
            return report

        members = [line.strip() for line in listing.stdout.splitlines() if line.strip()]
        report.archive_names = sorted({g for g in map(member_grammar, members) if g})

        manifest_set = set(report.manifest_names)
        archive_set = set(report.archive_names)
        for name in sorted(manifest_set - archive_set):
            report.problems.append(f"{name}: in manifest but has no objects in the archive")
        for name in sorted(archive_set - manifest_set):
            report.problems.append(f"{name}: objects in the archive but not in the manifest")

        logger.info("verify.complete", platform=platform, ok=report.ok, problems=len(report.problems))
        return report
