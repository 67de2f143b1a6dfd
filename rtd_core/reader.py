"""Bounded, policy-checked reads of small system files."""
import fnmatch
import logging
import os
from typing import Optional, Union

from .capabilities import FILE_SIZE, READ_PREFIX, CapabilityTable
from .config import RTDConfig, get_config
from .exceptions import ProbeDeniedError, ProbeError, ProbeUnavailableError

logger = logging.getLogger(__name__)

MAX_PATH_LENGTH = 256

# Special files that must never be read: device nodes, descriptors of other
# processes, kernel memory, RNG pools, the sysrq trigger and debugfs
DENIED_PATH_PATTERNS = (
    "/dev/*",
    "/proc/*/fd/*",
    "/proc/*/task/*",
    "/proc/kcore",
    "/proc/sys/kernel/random/*",
    "/proc/sysrq-trigger",
    "/sys/kernel/debug/*",
)


class _Denied:
    """Sentinel for a refused read."""

    def __repr__(self) -> str:
        return "DENIED"

    def __bool__(self) -> bool:
        return False


DENIED = _Denied()

ReadResult = Union[str, _Denied]


def is_denied_path(path: str) -> bool:
    """Check a path against the special-file denylist."""
    return any(fnmatch.fnmatchcase(path, pattern) for pattern in DENIED_PATH_PATTERNS)


class BoundedFileReader:
    """Reads at most N bytes of a regular file."""

    def __init__(self, capabilities: CapabilityTable, config: Optional[RTDConfig] = None):
        self.capabilities = capabilities
        self._config = config

    @property
    def config(self) -> RTDConfig:
        return self._config if self._config is not None else get_config()

    def _validate(self, path: str) -> None:
        """Enforce the path policy before any I/O.

        Raises:
            ProbeDeniedError: If the path is too long or on the denylist.
            ProbeUnavailableError: If the path is not a readable regular file.
        """
        if len(path.encode("utf-8", errors="surrogateescape")) > MAX_PATH_LENGTH:
            raise ProbeDeniedError(path[:64], "path too long")
        if is_denied_path(path):
            raise ProbeDeniedError(path, "special file")
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise ProbeUnavailableError(path)

    def read_prefix(self, path: str, max_bytes: Optional[int] = None) -> ReadResult:
        """Read the start of a file under the safety policy.

        Args:
            path: Absolute path of the file.
            max_bytes: Byte ceiling. Defaults to config.max_file_size.

        Returns:
            File content as text, or DENIED if the policy refuses the read or
            the file cannot be read.
        """
        max_bytes = self.config.max_file_size if max_bytes is None else max_bytes
        try:
            self._validate(path)
        except ProbeError as e:
            logger.debug(str(e))
            return DENIED

        size = self.capabilities.call(FILE_SIZE, path)
        if size is not None and size > max_bytes:
            logger.info(f"File too large: {path} ({size} bytes)")
            return DENIED

        content = self.capabilities.call(READ_PREFIX, path, max_bytes)
        if content is None:
            return DENIED
        return content

    def read(self, path: str, max_bytes: Optional[int] = None) -> Optional[str]:
        """Like read_prefix, but returns None instead of DENIED."""
        content = self.read_prefix(path, max_bytes)
        return None if content is DENIED else content  # type: ignore[return-value]
