"""Tests for tsforge.build.commands."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from tsforge.build.commands import CommandResult, CommandRunner
from tsforge.core.errors import CommandError, CommandNotFoundError, CommandTimeoutError


def _completed(returncode=0, stdout="", stderr=""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.stdout = stdout
    proc.stderr = stderr
    return proc


class TestCommandRunner:
    @patch("tsforge.build.commands.subprocess.run")
    def test_success_captures_output(self, mock_run, tmp_path):
        mock_run.return_value = _completed(stdout="0.13.0\n")
        result = CommandRunner().run(["zig", "version"], cwd=tmp_path, timeout=30)

        assert result.ok
        assert result.stdout == "0.13.0\n"
        assert result.command_line == "zig version"
        mock_run.assert_called_once_with(
            ["zig", "version"], cwd=tmp_path, capture_output=True, text=True, timeout=30,
        )

    @patch("tsforge.build.commands.subprocess.run")
    def test_default_timeout_applies(self, mock_run):
        mock_run.return_value = _completed()
        CommandRunner(default_timeout=12).run(["git", "status"])
        assert mock_run.call_args.kwargs["timeout"] == 12

    @patch("tsforge.build.commands.subprocess.run")
    def test_nonzero_raises_with_streams(self, mock_run):
        mock_run.return_value = _completed(returncode=1, stdout="out", stderr="parser.c:1: error")
        with pytest.raises(CommandError) as exc_info:
            CommandRunner().run(["cc", "-c", "parser.c"])

        err = exc_info.value
        assert err.returncode == 1
        assert err.stderr == "parser.c:1: error"
        assert err.output == "parser.c:1: error"
        assert err.context.command == "cc -c parser.c"

    @patch("tsforge.build.commands.subprocess.run")
    def test_nonzero_without_check(self, mock_run):
        mock_run.return_value = _completed(returncode=1, stderr="musl libc")
        result = CommandRunner().run(["ldd", "--version"], check=False)
        assert not result.ok
        assert result.stderr == "musl libc"

    @patch("tsforge.build.commands.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["git", "clone"], timeout=300, stderr=b"partial")
        with pytest.raises(CommandTimeoutError) as exc_info:
            CommandRunner().run(["git", "clone", "x"], timeout=300)
        assert exc_info.value.timeout == 300
        assert exc_info.value.stderr == "partial"
        assert isinstance(exc_info.value, CommandError)

    @patch("tsforge.build.commands.subprocess.run")
    def test_missing_executable(self, mock_run):
        mock_run.side_effect = FileNotFoundError("No such file or directory: 'zig'")
        with pytest.raises(CommandNotFoundError, match="zig"):
            CommandRunner().run(["zig", "version"])

    def test_output_falls_back_to_stdout_then_message(self):
        assert CommandError("msg", stdout="so").output == "so"
        assert CommandError("msg").output == "msg"


class TestCommandResult:
    def test_frozen(self):
        result = CommandResult(args=("ar", "t"), returncode=0)
        with pytest.raises(AttributeError):
            result.returncode = 1  # type: ignore[misc]
