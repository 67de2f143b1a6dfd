"""Host probe facade used by the detectors.

HostProbes bundles the resolver, executor, capability table and file reader
behind a small interface that returns plain values (None/False when a source
is unavailable). Detectors only talk to this interface, so tests can swap in
a fake host.
"""
import logging
import os
import subprocess
import sys
from typing import Mapping, Optional

from .capabilities import DEVICE_ID, INODE, CapabilityTable
from .config import RTDConfig, get_config
from .executor import SecureExecutor
from .reader import BoundedFileReader
from .resolver import CommandResolver

logger = logging.getLogger(__name__)


class HostProbes:
    """Read-only access to commands, files and session state of this host."""

    def __init__(
        self,
        config: Optional[RTDConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
        resolver: Optional[CommandResolver] = None,
        executor: Optional[SecureExecutor] = None,
    ):
        self._config = config
        self.environ = os.environ if environ is None else environ
        self.resolver = resolver or (executor.resolver if executor else CommandResolver())
        self.executor = executor or SecureExecutor(self.resolver, config=config, environ=self.environ)
        self.capabilities = CapabilityTable(self.executor)
        self.reader = BoundedFileReader(self.capabilities, config=config)

    @property
    def config(self) -> RTDConfig:
        return self._config if self._config is not None else get_config()

    # Environment

    def env(self, name: str) -> str:
        """Return an environment variable, or "" when unset."""
        return self.environ.get(name, "") or ""

    # Commands

    def has_command(self, name: str) -> bool:
        return self.resolver.available(name)

    def run(self, name: str, *args: str) -> Optional[str]:
        """Run a whitelisted command; stripped stdout or None."""
        return self.executor.output(name, *args)

    def run_unsandboxed(self, name: str, *args: str) -> Optional[str]:
        """Run a command found on PATH, outside the whitelist.

        Never used in strict mode.
        """
        if self.config.strict_cmds:
            return None
        timeout = self.config.cmd_timeout or None
        try:
            result = subprocess.run(
                [name, *args],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Unsandboxed {name} failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def run_with_fallback(self, name: str, *args: str) -> Optional[str]:
        """Run a whitelisted command, falling back to PATH when not strict."""
        out = self.run(name, *args)
        if out is None:
            out = self.run_unsandboxed(name, *args)
        return out

    # Files

    def read(self, path: str, max_bytes: Optional[int] = None) -> Optional[str]:
        """Bounded read; None when denied or unavailable."""
        return self.reader.read(path, max_bytes)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def is_readable(self, path: str) -> bool:
        return os.access(path, os.R_OK)

    def has_entries(self, path: str) -> bool:
        """Check that a directory is readable and not empty."""
        try:
            with os.scandir(path) as it:
                return any(True for _ in it)
        except OSError:
            return False

    def can_stat(self) -> bool:
        """Check whether inode/device queries are possible."""
        return self.capabilities.available(INODE)

    def device_id(self, path: str) -> Optional[int]:
        return self.capabilities.call(DEVICE_ID, path)

    def inode(self, path: str) -> Optional[int]:
        return self.capabilities.call(INODE, path)

    # Session

    def euid(self) -> int:
        geteuid = getattr(os, "geteuid", None)
        return geteuid() if geteuid is not None else -1

    def is_interactive(self) -> bool:
        try:
            return sys.stdin.isatty() and sys.stdout.isatty()
        except (AttributeError, ValueError, OSError):
            return False

    def reset(self) -> None:
        """Drop resolved paths and capability selections."""
        self.resolver.invalidate()
        self.capabilities.reset()
