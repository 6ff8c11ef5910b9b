"""Compiler/archiver selection per target platform.

The build never branches on "native or cross" at call sites. Instead a
``Toolchain`` strategy is selected once per platform and asked for its
compiler, archiver and extra flags.

Key Concepts:
    NativeToolchain: ``cc`` / ``c++`` / ``ar`` from PATH, no target flags.
    ZigToolchain: ``zig cc`` / ``zig c++`` / ``zig ar`` with
        ``-target <triple>``. Windows targets add the bundled MSVC
        CRT/SDK include directories.
    select_toolchain(): picks the strategy for a platform.
    zig_available() / require_zig(): run ``zig version``. A missing
        zig is a run-level precondition failure (``ToolchainError``), not
        a per-grammar one.

Tags:
    toolchain, zig, cross-compilation, strategy
"""

from __future__ import annotations

from pathlib import Path

from tsforge.build.commands import CommandRunner
from tsforge.build.platforms import PlatformTarget
from tsforge.core.errors import CommandError, ToolchainError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)

# Relative to the bundled MSVC header root
MSVC_INCLUDE_SUBDIRS = (
    ("crt", "include"),
    ("sdk", "include", "ucrt"),
    ("sdk", "include", "um"),
    ("sdk", "include", "shared"),
)


class Toolchain:
    """Base strategy. Subclasses supply the executables."""

    name = "base"
    is_cross = False

    def __init__(self, platform: PlatformTarget) -> None:
        self.platform = platform

    def c_compiler(self) -> list[str]:
        raise NotImplementedError

    def cxx_compiler(self) -> list[str]:
        raise NotImplementedError

    def archiver(self) -> list[str]:
        raise NotImplementedError

    def target_args(self) -> list[str]:
        return []

    def extra_include_dirs(self) -> list[Path]:
        return []

    def compiler_for(self, source: Path) -> list[str]:
        """Compiler command prefix (with target flags) for a source file."""
        base = self.cxx_compiler() if is_cpp_source(source) else self.c_compiler()
        return [*base, *self.target_args()]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(platform={self.platform.name!r})"


class NativeToolchain(Toolchain):
    """Host compiler and archiver."""

    name = "native"

    def __init__(
        self,
        platform: PlatformTarget,
        cc: str = "cc",
        cxx: str = "c++",
        ar: str = "ar",
    ) -> None:
        super().__init__(platform)
        self._cc = cc
        self._cxx = cxx
        self._ar = ar

    def c_compiler(self) -> list[str]:
        return [self._cc]

    def cxx_compiler(self) -> list[str]:
        return [self._cxx]

    def archiver(self) -> list[str]:
        return [self._ar]


class ZigToolchain(Toolchain):
    """zig as a drop-in cross compiler for every registry target."""

    name = "zig"
    is_cross = True

    def __init__(
        self,
        platform: PlatformTarget,
        zig: str = "zig",
        msvc_include_dir: Path | None = None,
    ) -> None:
        if not platform.zig_target:
            raise ToolchainError(f"Platform {platform.name!r} has no zig target triple")
        super().__init__(platform)
        self._zig = zig
        self.msvc_include_dir = msvc_include_dir

    def c_compiler(self) -> list[str]:
        return [self._zig, "cc"]

    def cxx_compiler(self) -> list[str]:
        return [self._zig, "c++"]

    def archiver(self) -> list[str]:
        return [self._zig, "ar"]

    def target_args(self) -> list[str]:
        return ["-target", self.platform.zig_target]

    def extra_include_dirs(self) -> list[Path]:
        if not self.platform.is_windows or self.msvc_include_dir is None:
            return []
        if not self.msvc_include_dir.is_dir():
            logger.warning(
                "toolchain.msvc_headers_missing",
                platform=self.platform.name,
                path=str(self.msvc_include_dir),
            )
            return []
        return [self.msvc_include_dir.joinpath(*parts) for parts in MSVC_INCLUDE_SUBDIRS]


def is_cpp_source(source: Path) -> bool:
    return source.suffix in (".cc", ".cpp")


def zig_version(runner: CommandRunner | None = None) -> str | None:
    """Return ``zig version`` output, or None if zig is unusable."""
    runner = runner or CommandRunner()
    try:
        result = runner.run(["zig", "version"], timeout=30)
    except CommandError:
        return None
    return result.stdout.strip() or None


def zig_available(runner: CommandRunner | None = None) -> bool:
    return zig_version(runner) is not None


def require_zig(runner: CommandRunner | None = None) -> str:
    """Return the zig version or raise ``ToolchainError``."""
    version = zig_version(runner)
    if version is None:
        raise ToolchainError(
            "zig not found. Cross-compilation requires zig: https://ziglang.org/download/"
        )
    logger.info("toolchain.zig_found", version=version)
    return version


def select_toolchain(
    platform: PlatformTarget,
    *,
    is_host: bool,
    zig_present: bool,
    msvc_include_dir: Path | None = None,
) -> Toolchain:
    """Pick the toolchain for one platform.

    zig is used whenever it is installed and the target is not the
    machine we are running on. A non-host target without zig cannot be
    built at all.

    Raises
    ------
    ToolchainError
        Cross-compilation needed but zig is not available.
    """
    if is_host or platform.is_generic_host:
        return NativeToolchain(platform)
    if not zig_present:
        raise ToolchainError(
            f"Building for {platform.name} requires zig for cross-compilation, "
            "but zig is not installed"
        )
    return ZigToolchain(platform, msvc_include_dir=msvc_include_dir)
