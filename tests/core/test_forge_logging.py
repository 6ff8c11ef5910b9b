"""
Tests for tsforge.core.logging.

Tests verify:
- JSON output carries the service name, logger name and bound context
- LogContext binds and unbinds its keys
- Records below the configured level are dropped
"""

import io
import json

import pytest
import structlog

from tsforge.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


@pytest.fixture
def buf():
    return io.StringIO()


def _records(buf):
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


class TestConfigureLogging:
    def test_json_output(self, buf):
        configure_logging(json_format=True, stream=buf)
        get_logger("tsforge.test").info("fetch.cloned", grammar="json")

        (record,) = _records(buf)
        assert record["event"] == "fetch.cloned"
        assert record["grammar"] == "json"
        assert record["level"] == "info"
        assert record["logger"] == "tsforge.test"
        assert record["service.name"] == "tsforge"
        assert "timestamp" in record

    def test_defaults_to_stderr(self, capsys):
        configure_logging(json_format=True)
        get_logger("tsforge.test").info("hello")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert json.loads(captured.err.strip())["event"] == "hello"

    def test_level_filtering(self, buf):
        configure_logging(level="WARNING", json_format=True, stream=buf)
        logger = get_logger("tsforge.test")
        logger.info("quiet")
        logger.warning("loud")
        assert [r["event"] for r in _records(buf)] == ["loud"]

    def test_custom_service(self, buf):
        configure_logging(json_format=True, service="tsforge-ci", stream=buf)
        get_logger().info("hello")
        assert _records(buf)[0]["service.name"] == "tsforge-ci"

    def test_console_renderer(self, buf):
        configure_logging(json_format=False, stream=buf)
        get_logger("tsforge.test").info("compile.succeeded", grammar="json")
        output = buf.getvalue()
        assert "compile.succeeded" in output
        assert "grammar" in output


class TestLogContext:
    def test_binds_within_block(self, buf):
        configure_logging(json_format=True, stream=buf)
        logger = get_logger("tsforge.test")
        with LogContext(run_id="abc123", platform="host"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _records(buf)
        assert inside["run_id"] == "abc123"
        assert inside["platform"] == "host"
        assert "run_id" not in outside

    def test_nested_keeps_outer(self, buf):
        configure_logging(json_format=True, stream=buf)
        logger = get_logger("tsforge.test")
        with LogContext(run_id="abc123"):
            with LogContext(platform="macos-aarch64"):
                logger.info("compile.started")
            logger.info("after")

        first, second = _records(buf)
        assert first["run_id"] == "abc123" and first["platform"] == "macos-aarch64"
        assert second["run_id"] == "abc123" and "platform" not in second

    def test_bind_context(self, buf):
        configure_logging(json_format=True, stream=buf)
        bind_context(grammar="lua")
        get_logger().info("x")
        assert _records(buf)[0]["grammar"] == "lua"
