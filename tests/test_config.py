"""Tests for the config module."""
import asyncio
import io
import logging
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config.command_runner import CommandRunner, get_command_runner, safe_run
from config.constants import ALLOWED_SUBPROCESS_COMMANDS, INTERVALS, SCAN, STORAGE
from config.exceptions import (
    ConfigurationError,
    NetworkNotAvailableError,
    PrivilegeRequiredError,
    ScanCancelledError,
    ScanError,
    ScanTimeoutError,
    StorageError,
    SubprocessError,
    SurveyError,
    UnreachableError,
    UploadError,
)
from config.logging_config import (
    ConsoleFormatter,
    LogContext,
    get_logger,
    log_command,
    log_exception,
    setup_logging,
)


class TestConstants:
    """Tests for constants module."""

    def test_intervals_are_positive(self):
        """All interval values should be positive."""
        assert INTERVALS.SCAN_INTERVAL_SECONDS > 0
        assert INTERVALS.HEALTH_CHECK_INTERVAL_SECONDS > 0
        assert INTERVALS.LOOP_POLL_SECONDS > 0
        assert INTERVALS.SUBPROCESS_TIMEOUT_SECONDS > 0

    def test_default_intervals_within_allowed_range(self):
        for value in (INTERVALS.SCAN_INTERVAL_SECONDS, INTERVALS.HEALTH_CHECK_INTERVAL_SECONDS):
            assert INTERVALS.MIN_INTERVAL_SECONDS <= value <= INTERVALS.MAX_INTERVAL_SECONDS

    def test_sweep_limits(self):
        """The sweep never probes more than one /24 worth of hosts."""
        assert SCAN.PING_BATCH_SIZE == 50
        assert SCAN.MAX_SWEEP_HOSTS == 253
        assert SCAN.HEALTH_PING_TIMEOUT_SECONDS > SCAN.SWEEP_PING_TIMEOUT_SECONDS

    def test_resolve_timeouts(self):
        assert SCAN.RESOLVE_TIMEOUT_WINDOWS_SECONDS > SCAN.RESOLVE_TIMEOUT_SECONDS

    def test_storage_config_has_required_fields(self):
        """Storage config should have all required fields."""
        assert STORAGE.DATA_DIR_NAME
        assert STORAGE.STATE_FILE
        assert STORAGE.LOG_FILE
        assert STORAGE.LAST_SCAN_UPLOAD_FILE
        assert STORAGE.LAST_HEALTH_UPLOAD_FILE

    def test_constants_are_frozen(self):
        with pytest.raises(AttributeError):
            SCAN.PING_BATCH_SIZE = 10

    def test_allowlist_has_no_shells(self):
        for shell in ("sh", "bash", "cmd", "rm"):
            assert shell not in ALLOWED_SUBPROCESS_COMMANDS


class TestExceptions:
    """Tests for custom exceptions."""

    def test_base_exception(self):
        """SurveyError should work with message and details."""
        exc = SurveyError("Test error", {"key": "value"})
        assert exc.message == "Test error"
        assert exc.details == {"key": "value"}
        assert "Test error" in str(exc)
        assert "key" in str(exc)

    def test_exception_without_details(self):
        """Exceptions should work without details."""
        exc = StorageError("Storage failed")
        assert exc.message == "Storage failed"
        assert exc.details == {}
        assert str(exc) == "Storage failed"

    def test_subprocess_error_with_full_info(self):
        """SubprocessError should capture command details."""
        exc = SubprocessError(
            "Command failed",
            command=["ping", "-c", "1", "192.168.1.1"],
            returncode=1,
            stdout="output",
            stderr="error"
        )
        assert exc.command == ["ping", "-c", "1", "192.168.1.1"]
        assert exc.returncode == 1
        assert "command" in exc.details
        assert exc.timed_out is False

    def test_subprocess_error_timeout(self):
        exc = SubprocessError("Command timed out", command=["arp"], details={"timeout": 5})
        assert exc.timed_out is True

    def test_privilege_error_carries_instructions(self):
        exc = PrivilegeRequiredError("Cannot ping", "Run with sudo", {"platform": "linux"})
        assert exc.instructions == "Run with sudo"
        assert exc.details == {"platform": "linux"}

    def test_unreachable_error(self):
        exc = UnreachableError("10.0.0.9")
        assert exc.ip == "10.0.0.9"
        assert str(exc) == "Device 10.0.0.9 is unreachable"

    def test_scan_errors_share_a_base(self):
        """Every scan failure can be caught with ScanError."""
        for cls in (PrivilegeRequiredError, NetworkNotAvailableError,
                    ScanTimeoutError, ScanCancelledError):
            assert issubclass(cls, ScanError)

    def test_exception_inheritance(self):
        """All custom exceptions should inherit from SurveyError."""
        for cls in (ScanError, UnreachableError, StorageError, UploadError,
                    ConfigurationError, SubprocessError):
            assert issubclass(cls, SurveyError)


class TestLogging:
    """Tests for logging configuration."""

    def test_setup_logging_creates_logger(self, temp_data_dir):
        """setup_logging should return a configured logger."""
        logger = setup_logging(data_dir=temp_data_dir, console_output=False)
        assert logger is not None
        assert logger.name == 'netsurvey'
        assert (temp_data_dir / STORAGE.LOG_FILE).exists()

    def test_get_logger_returns_child(self, temp_data_dir):
        """get_logger should return child of root logger."""
        setup_logging(data_dir=temp_data_dir, console_output=False)
        logger = get_logger("discovery.sweep")
        assert logger.name == 'netsurvey.discovery.sweep'

    def test_get_logger_is_cached(self):
        assert get_logger("agent.scheduler") is get_logger("agent.scheduler")

    def test_debug_level(self, temp_data_dir):
        logger = setup_logging(data_dir=temp_data_dir, debug=True, console_output=False)
        assert logger.level == logging.DEBUG

    def test_log_context_measures_duration(self, temp_data_dir):
        """LogContext should measure operation duration."""
        setup_logging(data_dir=temp_data_dir, console_output=False)
        logger = get_logger(__name__)

        with LogContext(logger, "Test operation") as ctx:
            time.sleep(0.01)  # Sleep 10ms

        assert ctx.start_time is not None
        assert ctx.elapsed_ms >= 10

    def test_log_context_does_not_swallow(self):
        logger = MagicMock()
        with pytest.raises(ValueError):
            with LogContext(logger, "Failing operation"):
                raise ValueError("boom")
        logger.error.assert_called_once()

    def test_reconfigure_replaces_handlers(self, temp_data_dir):
        setup_logging(data_dir=temp_data_dir, console_output=True)
        logger = setup_logging(data_dir=temp_data_dir, console_output=True)
        assert len(logger.handlers) == 2

    def test_console_only_has_no_file(self, temp_data_dir):
        logger = setup_logging(data_dir=temp_data_dir / "unused", log_to_file=False)
        assert not (temp_data_dir / "unused").exists()
        assert [type(h) for h in logger.handlers] == [logging.StreamHandler]

    def test_console_formatter_plain_when_not_a_tty(self):
        stream = io.StringIO()
        formatter = ConsoleFormatter(stream)
        record = logging.makeLogRecord(
            {"name": "netsurvey.discovery.arp", "levelno": logging.WARNING,
             "levelname": "WARNING", "msg": "ARP table unavailable"})
        assert formatter.format(record) == \
            "WARNING netsurvey.discovery.arp: ARP table unavailable"

    def test_log_command_stays_at_debug(self):
        logger = MagicMock()
        log_command(logger, ["ping", "-c", "1", "-W", "1", "10.0.0.9"], 1, 1002.4)
        logger.debug.assert_called_once_with("ping -c 1 ...: rc=1 in 1002.4ms")

    def test_log_exception_includes_type(self):
        logger = MagicMock()
        log_exception(logger, "Scan failed", ScanError("no subnet"))
        message = logger.error.call_args[0][0]
        assert message == "Scan failed: ScanError: no subnet"


def _fake_process(stdout=b"", stderr=b"", returncode=0):
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestCommandRunner:
    """Tests for the async subprocess runner."""

    def test_captures_output(self):
        runner = CommandRunner()
        proc = _fake_process(stdout=b"64 bytes from 10.0.0.1: time=1.2 ms\n")
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(return_value=proc)) as spawn:
            result = asyncio.run(runner.run(["ping", "-c", "1", "10.0.0.1"]))

        assert result.ok is True
        assert result.command == ("ping", "-c", "1", "10.0.0.1")
        assert "time=1.2" in result.stdout
        assert spawn.call_args[0] == ("ping", "-c", "1", "10.0.0.1")

    def test_nonzero_exit_is_not_an_error(self):
        runner = CommandRunner()
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(return_value=_fake_process(returncode=1))):
            result = asyncio.run(runner.run(["ping", "-c", "1", "10.0.0.99"]))
        assert result.ok is False
        assert result.returncode == 1

    def test_rejects_commands_outside_allowlist(self):
        """The runner should reject commands not in the allowlist."""
        with pytest.raises(SubprocessError) as exc_info:
            asyncio.run(CommandRunner().run(['rm', '-rf', '/']))
        assert "not in allowlist" in str(exc_info.value)

    def test_allowlist_ignores_path_and_exe(self):
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(return_value=_fake_process())):
            asyncio.run(CommandRunner().run(["/usr/sbin/arp", "-n"]))
            asyncio.run(CommandRunner().run(["C:\\Windows\\System32\\ARP.EXE", "-a"]))

    def test_empty_command(self):
        with pytest.raises(SubprocessError):
            asyncio.run(CommandRunner().run([]))

    def test_missing_binary(self):
        with patch("asyncio.create_subprocess_exec",
                   AsyncMock(side_effect=FileNotFoundError("arp"))):
            with pytest.raises(SubprocessError) as exc_info:
                asyncio.run(CommandRunner().run(["arp", "-n"]))
        assert "Command not found" in str(exc_info.value)

    def test_timeout_kills_process(self):
        async def hang():
            await asyncio.sleep(10)

        proc = _fake_process()
        proc.communicate = hang
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(SubprocessError) as exc_info:
                asyncio.run(CommandRunner().run(["ping", "10.0.0.1"], timeout=0.01))

        assert exc_info.value.timed_out is True
        proc.kill.assert_called_once()

    def test_cancellation_kills_and_reaps_process(self):
        """A caller cancelling the run must not leave the child running."""
        async def hang():
            await asyncio.sleep(10)

        proc = _fake_process()
        proc.communicate = hang

        async def cancel_midway():
            task = asyncio.create_task(
                CommandRunner().run(["ping", "10.0.0.1"], timeout=5))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            asyncio.run(cancel_midway())

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    def test_already_exited_process_is_still_reaped(self):
        async def hang():
            await asyncio.sleep(10)

        proc = _fake_process()
        proc.communicate = hang
        proc.kill.side_effect = ProcessLookupError()
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(SubprocessError):
                asyncio.run(CommandRunner().run(["ping", "10.0.0.1"], timeout=0.01))

        proc.wait.assert_awaited_once()

    def test_ttl_reuses_result(self):
        """A positive ttl should return the cached snapshot."""
        runner = CommandRunner()
        spawn = AsyncMock(return_value=_fake_process(stdout=b"arp table"))
        with patch("asyncio.create_subprocess_exec", spawn):
            asyncio.run(runner.run(["arp", "-n"], ttl=60.0))
            result = asyncio.run(runner.run(["arp", "-n"], ttl=60.0))

        assert spawn.await_count == 1
        assert result.stdout == "arp table"
        assert runner.get_stats()["hits"] == 1

    def test_zero_ttl_always_runs(self):
        runner = CommandRunner()
        spawn = AsyncMock(side_effect=lambda *a, **k: _fake_process())
        with patch("asyncio.create_subprocess_exec", spawn):
            asyncio.run(runner.run(["arp", "-n"]))
            asyncio.run(runner.run(["arp", "-n"]))
        assert spawn.await_count == 2
        assert runner.get_stats()["hits"] == 0

    def test_invalidate_specific_command(self):
        """invalidate should clear specific cached command."""
        runner = CommandRunner()
        spawn = AsyncMock(side_effect=lambda *a, **k: _fake_process())
        with patch("asyncio.create_subprocess_exec", spawn):
            asyncio.run(runner.run(["arp", "-n"], ttl=60.0))
            asyncio.run(runner.run(["arp", "-a"], ttl=60.0))
            runner.invalidate(["arp", "-n"])
            asyncio.run(runner.run(["arp", "-n"], ttl=60.0))
            asyncio.run(runner.run(["arp", "-a"], ttl=60.0))

        assert spawn.await_count == 3

    def test_cache_size_bounded(self):
        runner = CommandRunner(max_cache_size=2)
        spawn = AsyncMock(side_effect=lambda *a, **k: _fake_process())
        with patch("asyncio.create_subprocess_exec", spawn):
            for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
                asyncio.run(runner.run(["host", ip], ttl=60.0))
        assert runner.get_stats()["cache_size"] == 2

    def test_safe_run_validates_command(self):
        """safe_run should reject commands not in allowlist."""
        with pytest.raises(SubprocessError):
            asyncio.run(safe_run(['curl', 'http://example.com']))

    def test_global_runner_is_singleton(self):
        """get_command_runner should return same instance."""
        assert get_command_runner() is get_command_runner()
