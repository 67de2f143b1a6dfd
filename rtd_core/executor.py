"""Secure execution of whitelisted probe commands.

Every probe runs with stdin closed, output captured into owner-only temp
files that are removed on every exit path, an optional minimal environment,
and a hard time limit. Failures are reported through the exit code and never
raised to callers.
"""
import logging
import os
import subprocess
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import psutil

from .config import RTDConfig, get_config
from .exceptions import ProbeDeniedError, ProbeError, ProbeTimeoutError, ProbeUnavailableError
from .resolver import NOT_FOUND, CommandResolver

logger = logging.getLogger(__name__)

# Same status GNU timeout uses on expiry
TIMEOUT_EXIT_CODE = 124
EXEC_FAILED_EXIT_CODE = 127

POLL_INTERVAL = 0.25
GRACE_PERIOD = 0.25
TEMP_PREFIX = "rtd_exec."

SANITIZED_PATH = "/usr/bin:/bin:/usr/sbin:/sbin:/opt/homebrew/bin:/usr/local/bin:/run/current-system/sw/bin"


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a probe command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == TIMEOUT_EXIT_CODE


def sanitized_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Build the minimal fixed environment used for probe commands.

    Args:
        environ: Source of HOME/USER/TZ. Defaults to os.environ.

    Returns:
        A fresh environment dictionary.
    """
    environ = os.environ if environ is None else environ
    return {
        "PATH": SANITIZED_PATH,
        "HOME": environ.get("HOME", ""),
        "USER": environ.get("USER") or environ.get("USERNAME", ""),
        "LANG": "C",
        "LC_ALL": "C",
        "TZ": environ.get("TZ") or "UTC",
    }


@contextmanager
def _private_umask() -> Iterator[None]:
    old = os.umask(0o077)
    try:
        yield
    finally:
        os.umask(old)


@contextmanager
def output_sinks(tmp_dir: Optional[str] = None) -> Iterator[Tuple[IO[bytes], IO[bytes]]]:
    """Allocate stdout/stderr temp files readable only by the owner.

    Both files are closed and deleted when the context exits, whatever the
    reason.
    """
    paths: List[str] = []
    handles: List[IO[bytes]] = []
    try:
        with _private_umask():
            for suffix in ("out", "err"):
                fd, path = tempfile.mkstemp(prefix=f"{TEMP_PREFIX}{suffix}.", dir=tmp_dir)
                paths.append(path)
                handles.append(os.fdopen(fd, "w+b"))
        yield handles[0], handles[1]
    finally:
        for handle in handles:
            handle.close()
        for path in paths:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass


def _read_sink(sink: IO[bytes]) -> str:
    sink.flush()
    sink.seek(0)
    return sink.read().decode("utf-8", errors="replace")


def terminate_process(pid: int, grace: float = GRACE_PERIOD) -> None:
    """Send SIGTERM, wait one grace interval, then SIGKILL."""
    try:
        proc = psutil.Process(pid)
        proc.terminate()
        try:
            proc.wait(timeout=grace)
        except psutil.TimeoutExpired:
            proc.kill()
    except psutil.NoSuchProcess:
        # Process already gone
        pass


class SecureExecutor:
    """Runs whitelisted commands with bounded time and captured output."""

    def __init__(
        self,
        resolver: Optional[CommandResolver] = None,
        config: Optional[RTDConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
        tmp_dir: Optional[str] = None,
    ):
        """Initialize the executor.

        Args:
            resolver: Resolver used for every command. A new one is created if None.
            config: Configuration providing default timeout and sanitization.
            environ: Environment passed through when sanitization is off.
            tmp_dir: Directory for output temp files. Defaults to the system temp dir.
        """
        self.resolver = resolver or CommandResolver()
        self._config = config
        self._environ = environ
        self.tmp_dir = tmp_dir
        self.spawn_count = 0

    @property
    def config(self) -> RTDConfig:
        return self._config if self._config is not None else get_config()

    def _resolve(self, name: str) -> str:
        if not self.resolver.is_allowed(name):
            raise ProbeDeniedError(name, "command not in whitelist")
        path = self.resolver.resolve(name)
        if path is NOT_FOUND:
            raise ProbeUnavailableError(name)
        return path  # type: ignore[return-value]

    def _timeout_wrapper(self, seconds: int) -> List[str]:
        """Return the platform timeout prefix, if the tool is present."""
        path = self.resolver.resolve("timeout")
        if path is NOT_FOUND:
            return []
        return [path, str(seconds)]  # type: ignore[list-item]

    def _supervise(self, proc: subprocess.Popen, name: str, timeout: float) -> int:
        """Wait for a child, killing it when the deadline passes."""
        deadline = time.monotonic() + timeout
        while proc.poll() is None:
            if time.monotonic() >= deadline:
                terminate_process(proc.pid)
                proc.wait()
                raise ProbeTimeoutError(name, timeout)
            time.sleep(POLL_INTERVAL)
        return proc.returncode

    def run(
        self,
        name: str,
        args: Sequence[str] = (),
        timeout: Optional[int] = None,
        sanitize_env: Optional[bool] = None,
    ) -> ExecResult:
        """Run a whitelisted command.

        Args:
            name: Logical command name from the whitelist.
            args: Arguments passed verbatim to the command.
            timeout: Seconds before the command is killed (0 = no limit).
                Defaults to config.cmd_timeout.
            sanitize_env: Replace the child environment with a minimal fixed one.
                Defaults to config.sanitize_env.

        Returns:
            ExecResult; exit code 124 on timeout, 127 when the command could
            not be resolved or started.
        """
        config = self.config
        timeout = config.cmd_timeout if timeout is None else timeout
        sanitize_env = config.sanitize_env if sanitize_env is None else sanitize_env

        try:
            path = self._resolve(name)
        except ProbeError as e:
            logger.debug(str(e))
            return ExecResult(EXEC_FAILED_EXIT_CODE, "", str(e))

        argv = [path, *[str(a) for a in args]]
        supervise_for = float(timeout)
        if timeout > 0:
            prefix = self._timeout_wrapper(timeout)
            if prefix:
                argv = prefix + argv
                # Backstop in case the timeout tool itself hangs
                supervise_for = timeout + 2 * GRACE_PERIOD

        if sanitize_env:
            env = sanitized_environment(self._environ)
        else:
            env = dict(os.environ if self._environ is None else self._environ)

        try:
            with output_sinks(self.tmp_dir) as (out, err):
                try:
                    proc = subprocess.Popen(
                        argv,
                        stdin=subprocess.DEVNULL,
                        stdout=out,
                        stderr=err,
                        env=env,
                        close_fds=True,
                    )
                except OSError as e:
                    logger.debug(f"Failed to start {name}: {e}")
                    return ExecResult(EXEC_FAILED_EXIT_CODE, "", str(e))

                self.spawn_count += 1
                try:
                    if timeout > 0:
                        code = self._supervise(proc, name, supervise_for)
                    else:
                        code = proc.wait()
                except ProbeTimeoutError as e:
                    logger.warning(f"Command timed out [{name}] after {timeout}s")
                    return ExecResult(TIMEOUT_EXIT_CODE, _read_sink(out), str(e))
                except BaseException:
                    # Interrupted while waiting: never leave the child behind
                    terminate_process(proc.pid)
                    raise

                stdout = _read_sink(out)
                stderr = _read_sink(err)
        except OSError as e:
            logger.debug(f"Failed to allocate output files for {name}: {e}")
            return ExecResult(EXEC_FAILED_EXIT_CODE, "", str(e))

        if code == TIMEOUT_EXIT_CODE:
            logger.warning(f"Command timed out [{name}] after {timeout}s")
        elif code != 0 and stderr.strip():
            logger.debug(f"Command error [{name}]: {stderr.strip()}")

        return ExecResult(code, stdout, stderr)

    def output(self, name: str, *args: str) -> Optional[str]:
        """Run a command and return its stripped stdout on success.

        Returns:
            Stdout without surrounding whitespace, or None on any failure or
            empty output.
        """
        result = self.run(name, args)
        if not result.ok:
            return None
        text = result.stdout.strip()
        return text or None
