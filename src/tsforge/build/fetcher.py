"""Grammar source fetching.

Clones each grammar into ``<cache_dir>/<name>`` at its pinned revision.
Fetching is idempotent and self-healing:

    ┌──────────────────────────────┬──────────────────────────────────┐
    │ cache state                  │ action                           │
    ├──────────────────────────────┼──────────────────────────────────┤
    │ .git + at least one file     │ hit, no git command run          │
    │ exists, empty or no .git     │ delete, then clone               │
    │ absent, rev set              │ full clone, checkout rev         │
    │ absent, no rev               │ shallow clone (branch/default)   │
    └──────────────────────────────┴──────────────────────────────────┘

A pinned revision needs a full clone because an arbitrary historical
commit is not reachable from a depth-1 clone. Any failure removes the
partial checkout and is reported as a ``FetchResult(success=False)``.
The grammar is then left out of every later stage, and the rest of the
run continues.

Tags:
    fetch, git, cache, idempotent
"""

from __future__ import annotations

import shutil
from pathlib import Path

from tsforge.build.commands import CommandRunner
from tsforge.build.manifest import GrammarSpec
from tsforge.build.results import FetchResult
from tsforge.core.errors import CommandError, CommandTimeoutError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

VCS_DIR = ".git"


def is_valid_checkout(path: Path) -> bool:
    """True when ``path`` holds VCS metadata and at least one other entry."""
    if not path.is_dir() or not (path / VCS_DIR).exists():
        return False
    return any(entry.name != VCS_DIR for entry in path.iterdir())


class Fetcher:
    """Clones grammars into the shared cache directory.

    Parameters
    ----------
    cache_dir
        Cache root; each grammar owns ``cache_dir / spec.name``.
    runner
        External command runner (git).
    clone_timeout
        Seconds before a clone is killed.
    checkout_timeout
        Seconds before a checkout is killed.
    """

    def __init__(
        self,
        cache_dir: Path,
        runner: CommandRunner | None = None,
        clone_timeout: float = 300.0,
        checkout_timeout: float = 60.0,
        git: str = "git",
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.runner = runner or CommandRunner()
        self.clone_timeout = clone_timeout
        self.checkout_timeout = checkout_timeout
        self.git = git

    def grammar_dir(self, spec: GrammarSpec) -> Path:
        return self.cache_dir / spec.name

    def fetch(self, spec: GrammarSpec) -> FetchResult:
        """Ensure ``spec`` is checked out in the cache."""
        name = spec.name
        target = self.grammar_dir(spec)

        if target.exists():
            if is_valid_checkout(target):
                logger.debug("fetch.cached", grammar=name)
                return FetchResult(name=name, success=True, message=f"{name} - already cached", cached=True)
            logger.warning("fetch.corrupt_cache", grammar=name, path=str(target))
            _remove(target)

        url = spec.repo_url
        logger.info("fetch.started", grammar=name, repo=url, rev=spec.rev, branch=spec.branch)

        try:
            if spec.rev:
                self._run_git(["clone", url, str(target)], timeout=self.clone_timeout)
                try:
                    self._run_git(
                        ["checkout", spec.rev],
                        cwd=target,
                        timeout=self.checkout_timeout,
                    )
                except CommandError as exc:
                    _remove(target)
                    logger.error("fetch.bad_revision", grammar=name, rev=spec.rev)
                    detail = exc.stderr.strip() if not isinstance(exc, CommandTimeoutError) else exc.message
                    return FetchResult(
                        name=name,
                        success=False,
                        message=f"{name} - ERROR: Revision {spec.rev[:8]} not found: {detail}",
                        timed_out=isinstance(exc, CommandTimeoutError),
                    )
            else:
                args = ["clone", "--depth", "1"]
                if spec.branch:
                    args.extend(["-b", spec.branch])
                args.extend([url, str(target)])
                self._run_git(args, timeout=self.clone_timeout)

        except CommandTimeoutError:
            _remove(target)
            logger.error("fetch.timeout", grammar=name, timeout=self.clone_timeout)
            return FetchResult(
                name=name,
                success=False,
                message=f"{name} - ERROR: Clone timeout after {self.clone_timeout:g} seconds",
                timed_out=True,
            )
        except CommandError as exc:
            _remove(target)
            logger.error("fetch.failed", grammar=name, error=exc.output.strip())
            return FetchResult(name=name, success=False, message=f"{name} - ERROR: {exc.output.strip()}")

        logger.info("fetch.cloned", grammar=name)
        return FetchResult(name=name, success=True, message=f"{name} - cloned successfully")

    def _run_git(self, args: list[str], *, cwd: Path | None = None, timeout: float) -> None:
        self.runner.run([self.git, *args], cwd=cwd, timeout=timeout)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    elif path.exists() or path.is_symlink():
        path.unlink()
