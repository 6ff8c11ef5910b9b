"""
Shared pytest fixtures for tsforge tests.

This module provides:
- ``FakeRunner``: a stand-in for ``CommandRunner`` that records every
  command and simulates git, compilers, ``ar`` and the parser generator
  on the real filesystem, so whole builds run without any toolchain
- Grammar spec and manifest factories
- Fake grammar checkouts under ``tmp_path``

Usage::

    def test_something(fake_runner, make_checkout):
        make_checkout("json")
        fake_runner.fail_when(lambda args: "scanner.c" in " ".join(args), stderr="boom")
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

# Ensure tsforge package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tsforge.build.commands import CommandResult
from tsforge.build.manifest import GrammarSpec
from tsforge.core.errors import CommandError, CommandNotFoundError, CommandTimeoutError
from tsforge.core.settings import ForgeSettings


# =============================================================================
# Fake command runner
# =============================================================================


@dataclass
class RecordedCall:
    args: list[str]
    cwd: Path | None
    timeout: float | None

    @property
    def line(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """Simulates the external tools a build shells out to.

    - ``git clone ... <dir>`` creates ``<dir>/.git`` plus whatever files
      were registered for the URL with :meth:`add_repo`
    - ``cc``/``c++``/``zig cc``/``zig c++`` write the ``-o`` object file
    - ``ar rcs`` adds members to a JSON "archive" of member names → contents;
      ``ar x`` unpacks it into ``cwd`` and ``ar t`` lists it
    - ``npx tree-sitter generate``/``tree-sitter generate`` write
      ``src/parser.c`` when ``generator_works`` is true
    - ``zig version`` answers when ``zig_installed`` is true
    """

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self.repos: dict[str, dict[str, str]] = {}
        self.zig_installed = True
        self.generator_works = True
        self.ldd_output = "ldd (GNU libc) 2.39"
        self._faults: list[tuple[Callable[[list[str]], bool], Callable[[list[str]], CommandError]]] = []

    # -- configuration ---------------------------------------------------

    def add_repo(self, url: str, files: dict[str, str]) -> None:
        self.repos[url] = files

    def fail_when(
        self,
        predicate: Callable[[list[str]], bool],
        *,
        stderr: str = "simulated failure",
        returncode: int = 1,
        timeout: bool = False,
    ) -> None:
        def factory(args: list[str]) -> CommandError:
            if timeout:
                return CommandTimeoutError(f"Command timed out: {' '.join(args)}", args=args, timeout=1.0)
            return CommandError(
                f"Command failed (exit {returncode}): {' '.join(args)}",
                args=args,
                returncode=returncode,
                stderr=stderr,
            )

        self._faults.append((predicate, factory))

    # -- inspection ------------------------------------------------------

    def lines(self) -> list[str]:
        return [call.line for call in self.calls]

    def calls_matching(self, fragment: str) -> list[RecordedCall]:
        return [call for call in self.calls if fragment in call.line]

    # -- CommandRunner interface -------------------------------------------

    @staticmethod
    def which(executable: str) -> str | None:
        return f"/usr/bin/{executable}"

    def run(
        self,
        args: list[str],
        *,
        cwd: Path | str | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        args = list(args)
        cwd_path = Path(cwd) if cwd is not None else None
        self.calls.append(RecordedCall(args, cwd_path, timeout))

        for predicate, factory in self._faults:
            if predicate(args):
                raise factory(args)

        stdout = self._simulate(args, cwd_path)
        return CommandResult(args=tuple(args), returncode=0, stdout=stdout, stderr="")

    # -- simulation --------------------------------------------------------

    def _simulate(self, args: list[str], cwd: Path | None) -> str:
        head = args[0]
        if head == "git":
            return self._git(args[1:], cwd)
        if head == "ldd":
            return self.ldd_output
        if head == "zig" and args[1:2] == ["version"]:
            if not self.zig_installed:
                raise CommandNotFoundError("Cannot execute 'zig'", args=args)
            return "0.13.0\n"
        if head == "zig" and args[1] == "ar":
            return self._ar(args[2:], cwd)
        if head == "ar":
            return self._ar(args[1:], cwd)
        if head in ("cc", "c++") or (head == "zig" and args[1] in ("cc", "c++")):
            return self._compile(args)
        if "generate" in args:
            return self._generate(args, cwd)
        return ""

    def _git(self, args: list[str], cwd: Path | None) -> str:
        if args[0] == "clone":
            url, target = args[-2], Path(args[-1])
            (target / ".git").mkdir(parents=True)
            (target / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
            files = self.repos.get(url, {"README.md": "grammar"})
            for rel, content in files.items():
                path = target / rel
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content)
        return ""

    @staticmethod
    def _compile(args: list[str]) -> str:
        out = Path(args[args.index("-o") + 1])
        source = args[args.index("-o") - 1]
        out.write_text(f"object for {source}")
        return ""

    @staticmethod
    def _ar(args: list[str], cwd: Path | None) -> str:
        op, archive = args[0], Path(args[1])
        if op == "rcs":
            members = json.loads(archive.read_text()) if archive.exists() else {}
            members.update({Path(m).name: Path(m).read_text() for m in args[2:]})
            archive.write_text(json.dumps(members))
        elif op == "x":
            members = json.loads(archive.read_text())
            for name, content in members.items():
                (cwd / name).write_text(content)
        elif op == "t":
            return "\n".join(json.loads(archive.read_text())) + "\n"
        return ""

    def _generate(self, args: list[str], cwd: Path | None) -> str:
        if not self.generator_works:
            raise CommandError("generator failed", args=args, returncode=1, stderr="tree-sitter: not found")
        (cwd / "src").mkdir(exist_ok=True)
        (cwd / "src" / "parser.c").write_text("/* generated */")
        return ""


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "grammars"
    path.mkdir()
    return path


@pytest.fixture
def dist_dir(tmp_path: Path) -> Path:
    return tmp_path / "dist"


@pytest.fixture
def make_spec() -> Callable[..., GrammarSpec]:
    """Factory for GrammarSpec with sensible defaults."""

    def _make(name: str = "json", **overrides: Any) -> GrammarSpec:
        values: dict[str, Any] = {
            "name": name,
            "repo": f"https://github.com/tree-sitter/tree-sitter-{name}",
            "rev": "46aa487b3ade14b7b05ef92507fdaa3915a662a3",
        }
        values.update(overrides)
        return GrammarSpec(**values)

    return _make


@pytest.fixture
def make_checkout(cache_dir: Path) -> Callable[..., Path]:
    """Create a fake fetched grammar under the cache dir.

    ``scanner`` may be None, "scanner.c", "scanner.cc" or "scanner.cpp".
    """

    def _make(
        name: str,
        *,
        scanner: str | None = None,
        parser: bool = True,
        grammar_js: bool = False,
        subdir: str | None = None,
    ) -> Path:
        root = cache_dir / name
        (root / ".git").mkdir(parents=True, exist_ok=True)
        (root / "README.md").write_text(name)
        base = root / subdir if subdir else root
        src = base / "src"
        src.mkdir(parents=True, exist_ok=True)
        if parser:
            (src / "parser.c").write_text("/* parser */")
        if scanner:
            (src / scanner).write_text("/* scanner */")
        if grammar_js:
            (base / "grammar.js").write_text("module.exports = grammar({});")
        return root

    return _make


@pytest.fixture
def write_manifest(tmp_path: Path) -> Callable[..., Path]:
    """Write a ``grammars.json`` from entry dicts; returns its path."""

    def _write(entries: list[dict[str, Any]], path: Path | None = None) -> Path:
        target = path or tmp_path / "grammars.json"
        target.write_text(json.dumps({"grammars": entries}))
        return target

    return _write


@pytest.fixture
def settings(tmp_path: Path, cache_dir: Path, dist_dir: Path) -> ForgeSettings:
    return ForgeSettings(
        manifest_path=tmp_path / "grammars.json",
        cache_dir=cache_dir,
        dist_dir=dist_dir,
        msvc_include_dir=tmp_path / "include" / "msvc",
    )
