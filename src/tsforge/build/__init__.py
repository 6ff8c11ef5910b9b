"""tsforge.build: fetch, compile and package tree-sitter grammars.

Turns a manifest of several hundred grammar repositories into one static
archive per target platform, plus a JSON sidecar listing exactly the
grammars inside it.

Key Concepts:
    GrammarSpec: Frozen pydantic record for one manifest entry.
    Fetcher: Idempotent, self-healing clone of each grammar at its
        pinned revision.
    GrammarCompiler: One grammar × one platform → one
        ``libtree-sitter-parsers-<name>.a``, with per-grammar symbol
        renaming.
    PlatformAggregator: Merges single-grammar archives and writes
        ``grammars-<platform>.json``.
    BuildRunner: Config in, ``BuildRunResult`` out.
    Toolchain: Native compiler or zig cross compiler, picked per platform.

Architecture::

    ┌──────────────────────────────────────────────────────────────┐
    │                         BuildRunner                          │
    ├──────────────┬──────────────┬─────────────┬──────────────────┤
    │   Manifest   │   Fetcher    │  Compiler   │   Aggregator     │
    │   Loader     │   (git)      │ (+generator)│   (ar)           │
    ├──────────────┴──────────────┴─────────────┴──────────────────┤
    │     Worker pool │ Toolchain / platforms │ CommandRunner       │
    └──────────────────────────────────────────────────────────────┘

Tags:
    build, grammars, tree-sitter, cross-compilation, archives

Example:
    >>> from tsforge.build import get_platform
    >>> get_platform("linux-x86_64-musl").zig_target
    'x86_64-linux-musl'
"""

from __future__ import annotations

from tsforge.build.aggregator import PlatformAggregator
from tsforge.build.commands import CommandResult, CommandRunner
from tsforge.build.compiler import GrammarCompiler
from tsforge.build.config import BuildConfig
from tsforge.build.fetcher import Fetcher
from tsforge.build.generator import ParserGenerator
from tsforge.build.inspect import CacheReport, CacheState, inspect_cache
from tsforge.build.manifest import GrammarSpec, load_manifest
from tsforge.build.orchestrator import BuildRunner
from tsforge.build.platforms import HOST, PLATFORMS, PlatformTarget, detect_host_platform, get_platform
from tsforge.build.results import (
    AggregateResult,
    BuildRunResult,
    CompileResult,
    FetchResult,
    FetchStageResult,
    OverallStatus,
    PlatformResult,
)
from tsforge.build.toolchain import NativeToolchain, Toolchain, ZigToolchain, select_toolchain
from tsforge.build.verify import OutputVerifier, VerifyReport

__all__ = [
    "AggregateResult",
    "BuildConfig",
    "BuildRunResult",
    "BuildRunner",
    "CacheReport",
    "CacheState",
    "CommandResult",
    "CommandRunner",
    "CompileResult",
    "FetchResult",
    "FetchStageResult",
    "Fetcher",
    "GrammarCompiler",
    "GrammarSpec",
    "HOST",
    "NativeToolchain",
    "OutputVerifier",
    "OverallStatus",
    "PLATFORMS",
    "ParserGenerator",
    "PlatformAggregator",
    "PlatformResult",
    "PlatformTarget",
    "Toolchain",
    "VerifyReport",
    "ZigToolchain",
    "detect_host_platform",
    "get_platform",
    "inspect_cache",
    "load_manifest",
    "select_toolchain",
]
