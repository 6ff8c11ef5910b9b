"""External command execution for tsforge.

Every tool the build shells out to (git, cc/c++, ar, zig, npx,
tree-sitter) goes through :class:`CommandRunner`. It captures stdout,
stderr and the exit code, and enforces a timeout. A timed-out child is
killed by ``subprocess.run`` before the worker slot is released.

Key Concepts:
    CommandRunner: ``run(args, cwd=..., timeout=..., check=...)`` returning
        a ``CommandResult``. Raises ``CommandError`` on non-zero exit
        (when ``check``), ``CommandTimeoutError`` on timeout and
        ``CommandNotFoundError`` when the executable is not on PATH.
    CommandResult: Frozen record of one finished command.

Architecture Decisions:
    - subprocess, not a process library: same approach as the docker CLI
      wrapper this layer grew out of.
    - Errors carry both streams: compile diagnostics must be surfaced
      verbatim, so nothing is truncated here.
    - Tests swap in a fake runner with the same ``run`` signature.

Tags:
    subprocess, commands, timeout, toolchain
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from tsforge.core.errors import CommandError, CommandNotFoundError, CommandTimeoutError
from tsforge.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one finished external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.args)


class CommandRunner:
    """Runs external commands with captured output and a timeout.

    Parameters
    ----------
    default_timeout
        Timeout applied when ``run`` is called without one (None = no limit).
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self.default_timeout = default_timeout

    @staticmethod
    def which(executable: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(executable)

    def run(
        self,
        args: list[str],
        *,
        cwd: Path | str | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a command and capture its output.

        Raises
        ------
        CommandTimeoutError
            The command exceeded ``timeout`` and was killed.
        CommandNotFoundError
            ``args[0]`` could not be executed.
        CommandError
            Non-zero exit and ``check`` is true.
        """
        timeout = timeout if timeout is not None else self.default_timeout
        command_line = " ".join(args)
        logger.debug("command.exec", cmd=command_line, cwd=str(cwd) if cwd else None)

        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"Command timed out after {timeout:g}s: {command_line}",
                args=args,
                timeout=timeout,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                cause=exc,
            ) from exc
        except (FileNotFoundError, PermissionError) as exc:
            raise CommandNotFoundError(
                f"Cannot execute {args[0]!r}: {exc}",
                args=args,
                cause=exc,
            ) from exc

        result = CommandResult(
            args=tuple(args),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if check and not result.ok:
            raise CommandError(
                f"Command failed (exit {result.returncode}): {command_line}",
                args=args,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


def _decode(stream: bytes | str | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream
