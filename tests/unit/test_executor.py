"""Unit tests for the secure executor."""
import os
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from rtd_core.config import RTDConfig
from rtd_core.executor import (
    EXEC_FAILED_EXIT_CODE,
    SANITIZED_PATH,
    TIMEOUT_EXIT_CODE,
    ExecResult,
    SecureExecutor,
    output_sinks,
    sanitized_environment,
)
from rtd_core.resolver import CommandResolver, is_executable_file


def _first_existing(*paths):
    for path in paths:
        if is_executable_file(path):
            return path
    return None


SLEEP = _first_existing("/bin/sleep", "/usr/bin/sleep")
ECHO = _first_existing("/bin/echo", "/usr/bin/echo")


def _executor(whitelist, tmp_path, **config):
    resolver = CommandResolver(whitelist=whitelist)
    return SecureExecutor(resolver, config=RTDConfig(**config), environ={"HOME": "/home/dev"}, tmp_dir=str(tmp_path))


class TestFailClosed:
    """Commands outside the whitelist are never spawned."""

    @patch("rtd_core.executor.subprocess.Popen")
    def test_rm_never_spawned(self, mock_popen, tmp_path):
        executor = SecureExecutor(CommandResolver(is_executable=lambda p: True), config=RTDConfig(), tmp_dir=str(tmp_path))

        result = executor.run("rm", ["-rf", "/"])

        assert result.exit_code == EXEC_FAILED_EXIT_CODE
        assert "whitelist" in result.stderr
        mock_popen.assert_not_called()
        assert executor.spawn_count == 0
        assert list(tmp_path.iterdir()) == []

    @patch("rtd_core.executor.subprocess.Popen")
    def test_unresolvable_command_not_spawned(self, mock_popen, tmp_path):
        executor = SecureExecutor(CommandResolver(is_executable=lambda p: False), config=RTDConfig(), tmp_dir=str(tmp_path))

        result = executor.run("uname", ["-s"])

        assert result.exit_code == EXEC_FAILED_EXIT_CODE
        mock_popen.assert_not_called()
        assert executor.output("uname", "-s") is None

    @patch("rtd_core.executor.subprocess.Popen", side_effect=OSError("exec format error"))
    def test_spawn_failure_returns_generic_failure(self, mock_popen, tmp_path):
        resolver = CommandResolver(whitelist={"uname": ("/usr/bin/uname",)}, is_executable=lambda p: True)
        executor = SecureExecutor(resolver, config=RTDConfig(), tmp_dir=str(tmp_path))

        result = executor.run("uname", ["-s"])

        assert result.exit_code == EXEC_FAILED_EXIT_CODE
        assert list(tmp_path.iterdir()) == []


class TestSpawnArguments:
    """Tests for how the child is started."""

    @patch("rtd_core.executor.subprocess.Popen")
    def test_stdin_closed_and_env_sanitized(self, mock_popen, tmp_path):
        proc = MagicMock()
        proc.poll.return_value = 0
        proc.returncode = 0
        mock_popen.return_value = proc

        resolver = CommandResolver(whitelist={"uname": ("/usr/bin/uname",)}, is_executable=lambda p: True)
        executor = SecureExecutor(
            resolver,
            config=RTDConfig(),
            environ={"HOME": "/home/dev", "USER": "dev", "AWS_SECRET_ACCESS_KEY": "x"},
            tmp_dir=str(tmp_path),
        )
        result = executor.run("uname", ["-s"])

        assert result.exit_code == 0
        argv = mock_popen.call_args[0][0]
        kwargs = mock_popen.call_args[1]
        assert argv == ["/usr/bin/uname", "-s"]
        assert kwargs["stdin"] == subprocess.DEVNULL
        assert kwargs["env"]["PATH"] == SANITIZED_PATH
        assert "AWS_SECRET_ACCESS_KEY" not in kwargs["env"]
        assert executor.spawn_count == 1

    @patch("rtd_core.executor.subprocess.Popen")
    def test_wrapped_with_timeout_tool(self, mock_popen, tmp_path):
        proc = MagicMock()
        proc.poll.return_value = 0
        proc.returncode = 0
        mock_popen.return_value = proc

        resolver = CommandResolver(
            whitelist={"uname": ("/usr/bin/uname",), "timeout": ("/usr/bin/timeout",)},
            is_executable=lambda p: True,
        )
        executor = SecureExecutor(resolver, config=RTDConfig(cmd_timeout=7), tmp_dir=str(tmp_path))
        executor.run("uname", ["-m"])

        assert mock_popen.call_args[0][0] == ["/usr/bin/timeout", "7", "/usr/bin/uname", "-m"]

    @patch("rtd_core.executor.subprocess.Popen")
    def test_zero_timeout_disables_limit(self, mock_popen, tmp_path):
        proc = MagicMock()
        proc.wait.return_value = 0
        mock_popen.return_value = proc

        resolver = CommandResolver(
            whitelist={"uname": ("/usr/bin/uname",), "timeout": ("/usr/bin/timeout",)},
            is_executable=lambda p: True,
        )
        executor = SecureExecutor(resolver, config=RTDConfig(cmd_timeout=0), tmp_dir=str(tmp_path))
        result = executor.run("uname")

        assert result.ok
        assert mock_popen.call_args[0][0] == ["/usr/bin/uname"]
        proc.poll.assert_not_called()


class TestSanitizedEnvironment:
    """Tests for the minimal probe environment."""

    def test_fixed_keys(self):
        env = sanitized_environment({"HOME": "/root", "USERNAME": "admin", "LD_PRELOAD": "/evil.so"})
        assert env == {
            "PATH": SANITIZED_PATH,
            "HOME": "/root",
            "USER": "admin",
            "LANG": "C",
            "LC_ALL": "C",
            "TZ": "UTC",
        }

    def test_user_and_tz_preserved(self):
        env = sanitized_environment({"USER": "dev", "USERNAME": "other", "TZ": "Europe/Berlin"})
        assert env["USER"] == "dev"
        assert env["TZ"] == "Europe/Berlin"


class TestOutputSinks:
    """Temp files are private and always removed."""

    def test_removed_after_use(self, tmp_path):
        with output_sinks(str(tmp_path)) as (out, err):
            files = list(tmp_path.iterdir())
            assert len(files) == 2
            for path in files:
                assert path.name.startswith("rtd_exec.")
                assert os.stat(path).st_mode & 0o077 == 0
        assert list(tmp_path.iterdir()) == []

    def test_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with output_sinks(str(tmp_path)):
                raise RuntimeError("boom")
        assert list(tmp_path.iterdir()) == []


class TestRealCommands:
    """Tests that spawn real processes."""

    @pytest.mark.skipif(ECHO is None, reason="echo not available")
    def test_captures_stdout(self, tmp_path):
        executor = _executor({"echo": ("/bin/echo", "/usr/bin/echo")}, tmp_path)

        result = executor.run("echo", ["hello"])

        assert result == ExecResult(0, "hello\n", "")
        assert executor.output("echo", "  padded  ") == "padded"
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.skipif(SLEEP is None, reason="sleep not available")
    def test_timeout_returns_124_and_cleans_up(self, tmp_path):
        executor = _executor({"sleep": ("/bin/sleep", "/usr/bin/sleep")}, tmp_path)

        result = executor.run("sleep", ["5"], timeout=1)

        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert result.timed_out
        assert list(tmp_path.iterdir()) == []
