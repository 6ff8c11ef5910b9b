"""Run options for a tsforge build.

``BuildConfig`` holds what one invocation should do (which stages, which
platforms, how wide the pools are). Where the files live and how long
commands may take are settings, see :mod:`tsforge.core.settings`.

Key Concepts:
    BuildConfig: Pydantic v2 model, validated on construction.
        ``fetch_only`` and ``compile_only`` are mutually exclusive, as
        are ``platform`` and ``all_platforms``. Unknown platform names
        and ``jobs < 1`` raise ``ConfigError``.
    from_env(): Reads ``TSFORGE_BUILD_*`` variables; keyword overrides
        win over the environment.

Architecture Decisions:
    - Validation raises ``ConfigError`` directly, so callers see the same
      error type as for every other configuration problem.
    - run_id auto-generated so every summary and log line is traceable.

Tags:
    config, pydantic, build, environment
"""

from __future__ import annotations

import os
import uuid
from typing import Any

from pydantic import BaseModel, Field, model_validator

from tsforge.build.platforms import get_platform
from tsforge.build.pool import default_jobs
from tsforge.core.errors import ConfigError

_TRUTHY = ("true", "1", "yes")


class BuildConfig(BaseModel):
    """Options for one build run.

    Example::

        config = BuildConfig(platform="linux-x86_64-musl", jobs=4)
    """

    # Stages
    fetch_only: bool = Field(default=False, description="Stop after fetching sources")
    compile_only: bool = Field(default=False, description="Skip fetching; compile the existing cache")

    # Platforms
    platform: str | None = Field(default=None, description="Single target platform name")
    all_platforms: bool = Field(default=False, description="Build every registry platform (needs zig)")

    # Execution
    jobs: int = Field(default_factory=default_jobs, description="Parallel workers per stage")

    # Internal
    run_id: str = Field(default="", description="Unique run identifier (auto-generated)")

    @model_validator(mode="after")
    def _validate(self) -> BuildConfig:
        if self.fetch_only and self.compile_only:
            raise ConfigError("--fetch-only and --compile-only are mutually exclusive")
        if self.platform and self.all_platforms:
            raise ConfigError("--platform and --all-platforms are mutually exclusive")
        if self.jobs < 1:
            raise ConfigError(f"jobs must be at least 1, got {self.jobs}")
        if self.platform:
            self.platform = get_platform(self.platform).name
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:12]
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> BuildConfig:
        """Create config from TSFORGE_BUILD_* environment variables."""
        env_map = {
            "fetch_only": "TSFORGE_BUILD_FETCH_ONLY",
            "compile_only": "TSFORGE_BUILD_COMPILE_ONLY",
            "platform": "TSFORGE_BUILD_PLATFORM",
            "all_platforms": "TSFORGE_BUILD_ALL_PLATFORMS",
            "jobs": "TSFORGE_BUILD_JOBS",
        }
        values: dict[str, Any] = {}
        for field_name, env_var in env_map.items():
            env_val = os.environ.get(env_var)
            if env_val is None:
                continue
            if field_name == "jobs":
                try:
                    values[field_name] = int(env_val)
                except ValueError as exc:
                    raise ConfigError(f"{env_var} must be an integer, got {env_val!r}") from exc
            elif field_name == "platform":
                values[field_name] = env_val.strip() or None
            else:
                values[field_name] = env_val.lower() in _TRUTHY
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
