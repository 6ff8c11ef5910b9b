"""Target platform registry for tsforge.

Each ``PlatformTarget`` is an immutable description of one
(OS, architecture, libc) combination, with the zig target triple used to
cross compile for it and the matching Rust target triple recorded for
downstream build scripts.

Key Concepts:
    PlatformTarget: Frozen dataclass (name, os, arch, libc, zig_target,
        rust_target).
    PLATFORMS: Registry dict mapping name → PlatformTarget (8 entries).
    HOST: Generic target used when the build machine is not in the
        registry. It is always compiled with the native toolchain.
    detect_host_platform(): Maps the running machine to a registry name
        (musl detected via ``ldd --version``), or None.

Architecture Decisions:
    - Frozen dataclasses (not Pydantic): targets are constants, not input.
    - Case-insensitive lookup: ``get_platform("Linux-X86_64-GLIBC")`` works.

Tags:
    platforms, targets, cross-compilation, zig, registry
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass

from tsforge.build.commands import CommandRunner
from tsforge.core.errors import CommandError, ConfigError


@dataclass(frozen=True)
class PlatformTarget:
    """Specification of one build target."""

    name: str
    """Registry key (e.g., 'linux-x86_64-glibc')."""

    os: str
    """Operating system: linux, macos, windows (or 'host')."""

    arch: str
    """CPU architecture: x86_64, aarch64 (or 'host')."""

    zig_target: str | None
    """Target triple passed to ``zig cc -target``; None for HOST."""

    rust_target: str | None = None
    """Rust target triple consumed by downstream build scripts."""

    libc: str | None = None
    """glibc or musl on Linux, None elsewhere."""

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def is_generic_host(self) -> bool:
        return self.name == HOST_NAME


# ---------------------------------------------------------------------------
# Pre-defined targets
# ---------------------------------------------------------------------------

LINUX_X86_64_GLIBC = PlatformTarget(
    name="linux-x86_64-glibc",
    os="linux",
    arch="x86_64",
    libc="glibc",
    zig_target="x86_64-linux-gnu",
    rust_target="x86_64-unknown-linux-gnu",
)

LINUX_X86_64_MUSL = PlatformTarget(
    name="linux-x86_64-musl",
    os="linux",
    arch="x86_64",
    libc="musl",
    zig_target="x86_64-linux-musl",
    rust_target="x86_64-unknown-linux-musl",
)

LINUX_AARCH64_GLIBC = PlatformTarget(
    name="linux-aarch64-glibc",
    os="linux",
    arch="aarch64",
    libc="glibc",
    zig_target="aarch64-linux-gnu",
    rust_target="aarch64-unknown-linux-gnu",
)

LINUX_AARCH64_MUSL = PlatformTarget(
    name="linux-aarch64-musl",
    os="linux",
    arch="aarch64",
    libc="musl",
    zig_target="aarch64-linux-musl",
    rust_target="aarch64-unknown-linux-musl",
)

WINDOWS_X86_64 = PlatformTarget(
    name="windows-x86_64",
    os="windows",
    arch="x86_64",
    zig_target="x86_64-windows-msvc",
    rust_target="x86_64-pc-windows-msvc",
)

WINDOWS_AARCH64 = PlatformTarget(
    name="windows-aarch64",
    os="windows",
    arch="aarch64",
    zig_target="aarch64-windows-msvc",
    rust_target="aarch64-pc-windows-msvc",
)

MACOS_X86_64 = PlatformTarget(
    name="macos-x86_64",
    os="macos",
    arch="x86_64",
    zig_target="x86_64-macos",
    rust_target="x86_64-apple-darwin",
)

MACOS_AARCH64 = PlatformTarget(
    name="macos-aarch64",
    os="macos",
    arch="aarch64",
    zig_target="aarch64-macos",
    rust_target="aarch64-apple-darwin",
)

HOST_NAME = "host"

HOST = PlatformTarget(name=HOST_NAME, os="host", arch="host", zig_target=None)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PLATFORMS: dict[str, PlatformTarget] = {
    p.name: p
    for p in [
        LINUX_X86_64_GLIBC,
        LINUX_X86_64_MUSL,
        LINUX_AARCH64_GLIBC,
        LINUX_AARCH64_MUSL,
        WINDOWS_X86_64,
        WINDOWS_AARCH64,
        MACOS_X86_64,
        MACOS_AARCH64,
    ]
}


def get_platform(name: str) -> PlatformTarget:
    """Look up a platform by name (case-insensitive). ``host`` is accepted.

    Raises
    ------
    ConfigError
        If the platform is not in the registry.
    """
    key = name.lower()
    if key == HOST_NAME:
        return HOST
    if key not in PLATFORMS:
        available = ", ".join(PLATFORMS)
        raise ConfigError(f"Unknown platform {name!r}. Available platforms: {available}")
    return PLATFORMS[key]


# ---------------------------------------------------------------------------
# Host detection
# ---------------------------------------------------------------------------

_OS_NAMES = {"darwin": "macos", "windows": "windows", "linux": "linux"}
_ARCH_NAMES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


def detect_libc(runner: CommandRunner | None = None) -> str:
    """Return 'musl' when ``ldd --version`` mentions musl, else 'glibc'."""
    runner = runner or CommandRunner()
    try:
        # musl's ldd prints its banner to stderr and exits 1
        result = runner.run(["ldd", "--version"], timeout=10, check=False)
    except CommandError:
        return "glibc"
    output = f"{result.stdout}\n{result.stderr}".lower()
    return "musl" if "musl" in output else "glibc"


def detect_host_platform(
    runner: CommandRunner | None = None,
    system: str | None = None,
    machine: str | None = None,
) -> str | None:
    """Detect the running machine's platform name.

    Returns None when the OS or architecture is not supported; callers
    then fall back to the generic ``host`` target.
    """
    system = (system or _platform.system()).lower()
    machine = (machine or _platform.machine()).lower()

    os_name = _OS_NAMES.get(system)
    arch = _ARCH_NAMES.get(machine)
    if os_name is None or arch is None:
        return None

    if os_name == "linux":
        name = f"linux-{arch}-{detect_libc(runner)}"
    else:
        name = f"{os_name}-{arch}"
    return name if name in PLATFORMS else None
