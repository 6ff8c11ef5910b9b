"""Environment-driven settings for tsforge.

Paths and timeouts that rarely change between runs live here, read from
``TSFORGE_*`` environment variables and an optional ``.env`` file.
Per-run options (mode, platform, job count) live in
:class:`tsforge.build.config.BuildConfig`.

Examples:
    >>> settings = ForgeSettings(cache_dir="/tmp/grammars")
    >>> settings.cache_dir
    PosixPath('/tmp/grammars')

    Overriding from the environment::

        TSFORGE_CACHE_DIR=/var/cache/grammars TSFORGE_CLONE_TIMEOUT=600 tsforge build

Tags:
    settings, configuration, pydantic, environment, tsforge
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeSettings(BaseSettings):
    """Settings shared by every build run.

    Fields
    ──────
    manifest_path     : Grammar manifest (``grammars.json``)
    cache_dir         : Checkout cache, one subdirectory per grammar
    dist_dir          : Output directory for combined archives and metadata
    msvc_include_dir  : Bundled Windows CRT/SDK headers for cross builds
    clone_timeout     : Seconds before a ``git clone`` is killed
    checkout_timeout  : Seconds before a ``git checkout`` is killed
    compile_timeout   : Seconds before a compiler/archiver call is killed
    log_level         : Structlog log level
    json_logs         : Force JSON logs (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="TSFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Paths ────────────────────────────────────────────────────
    manifest_path: Path = Field(default=Path("grammars.json"))
    cache_dir: Path = Field(default=Path("grammars"))
    dist_dir: Path = Field(default=Path("dist"))
    msvc_include_dir: Path = Field(
        default=Path("include") / "msvc",
        description="Minimal Windows CRT/SDK header set for zig cross builds",
    )

    # ── Timeouts (seconds) ───────────────────────────────────────
    clone_timeout: float = Field(default=300.0, gt=0)
    checkout_timeout: float = Field(default=60.0, gt=0)
    compile_timeout: float = Field(default=1800.0, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
